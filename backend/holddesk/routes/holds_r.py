from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from holddesk.dependencies.auth_d import get_current_user_id
from holddesk.db.session import get_db_transactional
from holddesk.errors import raise_http_error_from_exception
from holddesk.schemas import ConvertHoldRequest, CreateHoldRequest
from holddesk.services.capabilities_s import CAN_EXPIRE_HOLDS, require_capability
from holddesk.services.conversion_s import convert_hold_to_deal
from holddesk.services.holds_s import (
    cancel_hold,
    create_hold,
    expire_stale_holds,
    extend_hold,
    get_hold,
    list_holds,
)

router = APIRouter()


@router.post("/holds", status_code=status.HTTP_201_CREATED)
def create_hold_for_product(
    payload: CreateHoldRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        hold = create_hold(agent_id=user_id, product_id=payload.product_id, db=db)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": hold}


@router.get("/holds")
def get_holds(
    hold_status: Optional[Literal["active", "expired", "converted", "cancelled"]] = Query(
        None,
        alias="status",
    ),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        holds = list_holds(viewer_id=user_id, db=db, status=hold_status)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {
        "data": holds,
        "meta": {"filters": {"status": hold_status}},
    }


@router.get("/holds/{hold_id}")
def get_hold_by_id(
    hold_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        hold = get_hold(hold_id=hold_id, viewer_id=user_id, db=db)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": hold}


@router.post("/holds/{hold_id}/extend")
def extend_hold_by_id(
    hold_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        hold = extend_hold(agent_id=user_id, hold_id=hold_id, db=db)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": hold}


@router.post("/holds/{hold_id}/cancel")
def cancel_hold_by_id(
    hold_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        hold = cancel_hold(agent_id=user_id, hold_id=hold_id, db=db)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": hold}


@router.post("/holds/{hold_id}/convert", status_code=status.HTTP_201_CREATED)
def convert_hold(
    hold_id: int,
    payload: ConvertHoldRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        deal = convert_hold_to_deal(
            hold_id=hold_id,
            agent_id=user_id,
            order_evidence=payload.order_screenshot_path,
            customer=payload.model_dump(exclude={"order_screenshot_path"}),
            db=db,
        )
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": deal}


@router.post("/admin/holds/expire")
def expire_holds(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        require_capability(user_id, CAN_EXPIRE_HOLDS, db)
        expired_count = expire_stale_holds(db=db)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": {"expired_count": int(expired_count)}}
