from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from holddesk.dependencies.auth_d import get_current_user_id
from holddesk.db.session import get_db, get_db_transactional
from holddesk.errors import raise_http_error_from_exception
from holddesk.schemas import (
    BlockAgentRequest,
    CommissionOverrideRequest,
    CreateProductRequest,
    PatchProductRequest,
)
from holddesk.services.products_s import (
    block_agent,
    create_product,
    get_product,
    list_blocked_agents,
    list_products,
    set_commission_override,
    unblock_agent,
    update_product,
)

router = APIRouter()


@router.get("/products")
def get_products(
    country: Optional[Literal["ES", "DE", "FR", "IT", "UK"]] = Query(None),
    only_reservable: bool = Query(False),
    _: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        products = list_products(db=db, country=country, only_reservable=only_reservable)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {
        "data": products,
        "meta": {
            "filters": {
                "country": country,
                "only_reservable": only_reservable,
            }
        },
    }


@router.get("/products/{product_id}")
def get_product_by_id(
    product_id: int,
    _: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        product = get_product(product_id=product_id, db=db)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": product}


@router.post("/products", status_code=status.HTTP_201_CREATED)
def create_product_for_seller(
    payload: CreateProductRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        product = create_product(owner_id=user_id, data=payload.model_dump(), db=db)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": product}


@router.patch("/products/{product_id}")
def patch_product(
    product_id: int,
    payload: PatchProductRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        product = update_product(
            actor_id=user_id,
            product_id=product_id,
            data=payload.model_dump(exclude_unset=True),
            db=db,
        )
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": product}


@router.get("/products/{product_id}/blocked-agents")
def get_blocked_agents(
    product_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        agent_ids = list_blocked_agents(actor_id=user_id, product_id=product_id, db=db)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": agent_ids}


@router.post("/products/{product_id}/blocked-agents", status_code=status.HTTP_201_CREATED)
def block_agent_for_product(
    product_id: int,
    payload: BlockAgentRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        result = block_agent(
            actor_id=user_id,
            product_id=product_id,
            agent_id=payload.agent_id,
            db=db,
        )
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": result}


@router.delete("/products/{product_id}/blocked-agents/{agent_id}")
def unblock_agent_for_product(
    product_id: int,
    agent_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        result = unblock_agent(
            actor_id=user_id,
            product_id=product_id,
            agent_id=agent_id,
            db=db,
        )
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": result}


@router.put("/products/{product_id}/commission-overrides/{agent_id}")
def put_commission_override(
    product_id: int,
    agent_id: int,
    payload: CommissionOverrideRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        result = set_commission_override(
            actor_id=user_id,
            product_id=product_id,
            agent_id=agent_id,
            commission=payload.commission,
            db=db,
        )
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": result}
