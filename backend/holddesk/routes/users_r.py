from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from holddesk.dependencies.auth_d import get_current_user_id
from holddesk.db.session import get_db, get_db_transactional
from holddesk.errors import raise_http_error_from_exception
from holddesk.schemas import (
    RegisterUserRequest,
    UpdateUserCountriesRequest,
    UpdateUserRolesRequest,
    UpdateUserStatusRequest,
)
from holddesk.services.users_s import (
    get_user,
    register_user,
    set_user_countries,
    set_user_roles,
    set_user_status,
)

router = APIRouter()


@router.post("/users/register", status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterUserRequest,
    db: Session = Depends(get_db_transactional),
):
    try:
        user = register_user(
            name=payload.name,
            email=str(payload.email),
            telegram_username=payload.telegram_username,
            paypal=payload.paypal,
            db=db,
        )
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": user}


@router.get("/users/me")
def get_me(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        user = get_user(user_id=user_id, db=db)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": user}


@router.patch("/admin/users/{target_user_id}/status")
def update_user_status(
    target_user_id: int,
    payload: UpdateUserStatusRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        user = set_user_status(
            actor_id=user_id,
            user_id=target_user_id,
            status=payload.status,
            db=db,
        )
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": user}


@router.put("/admin/users/{target_user_id}/roles")
def update_user_roles(
    target_user_id: int,
    payload: UpdateUserRolesRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        user = set_user_roles(
            actor_id=user_id,
            user_id=target_user_id,
            roles=list(payload.roles),
            db=db,
        )
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": user}


@router.put("/admin/users/{target_user_id}/countries")
def update_user_countries(
    target_user_id: int,
    payload: UpdateUserCountriesRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        user = set_user_countries(
            actor_id=user_id,
            user_id=target_user_id,
            countries=list(payload.countries),
            db=db,
        )
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": user}
