from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session, joinedload

from holddesk.db.models import User, UserCountry, UserRole
from holddesk.services.capabilities_s import (
    ALLOWED_ROLES,
    ALLOWED_USER_STATUS,
    CAN_MANAGE_USERS,
    ROLE_AGENT,
    USER_PENDING,
    capabilities_for_user,
    require_capability,
    role_names,
)
from holddesk.services.products_s import ALLOWED_COUNTRIES
from holddesk.services.workflow_errors import NotFoundError, ValidationFailedError

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _normalize_required_text(value: str, *, field_name: str) -> str:
    normalized = str(value).strip()
    if not normalized:
        raise ValidationFailedError(f"{field_name} is required")
    return normalized


def _normalize_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def serialize_user(user: User) -> dict:
    return {
        "id": int(user.id),
        "name": user.name,
        "email": user.email,
        "telegram_username": user.telegram_username,
        "paypal": user.paypal,
        "status": user.status,
        "roles": role_names(user),
        "countries": sorted(row.country for row in user.countries),
        "capabilities": sorted(capabilities_for_user(user)),
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }


def _get_user_model(user_id: int, db: Session) -> User:
    user = (
        db.query(User)
        .options(joinedload(User.roles), joinedload(User.countries))
        .filter(User.id == user_id)
        .first()
    )
    if user is None:
        raise NotFoundError("user not found")
    return user


def register_user(
    name: str,
    email: str,
    db: Session,
    telegram_username: str | None = None,
    paypal: str | None = None,
    now: datetime | None = None,
) -> dict:
    now = now or _utc_now()
    normalized_name = _normalize_required_text(name, field_name="name")
    normalized_email = _normalize_required_text(email, field_name="email").lower()

    existing_user = db.query(User.id).filter(User.email == normalized_email).first()
    if existing_user is not None:
        raise ValueError("email already registered")

    user = User(
        name=normalized_name,
        email=normalized_email,
        telegram_username=_normalize_optional_text(telegram_username),
        paypal=_normalize_optional_text(paypal),
        status=USER_PENDING,
        created_at=now,
        updated_at=now,
    )
    user.roles.append(UserRole(role=ROLE_AGENT))
    db.add(user)
    db.flush()
    logger.info("user %s registered, pending approval", user.id)
    return serialize_user(user)


def get_user(user_id: int, db: Session) -> dict:
    return serialize_user(_get_user_model(user_id, db))


def set_user_status(
    actor_id: int,
    user_id: int,
    status: str,
    db: Session,
    now: datetime | None = None,
) -> dict:
    now = now or _utc_now()
    require_capability(actor_id, CAN_MANAGE_USERS, db)
    if status not in ALLOWED_USER_STATUS:
        raise ValidationFailedError(f"unknown user status: {status}")

    user = _get_user_model(user_id, db)
    previous = user.status
    user.status = status
    user.updated_at = now
    db.flush()
    logger.info("user %s status %s -> %s by user %s", user.id, previous, status, actor_id)
    return serialize_user(user)


def set_user_roles(actor_id: int, user_id: int, roles: list[str], db: Session) -> dict:
    require_capability(actor_id, CAN_MANAGE_USERS, db)
    requested = {str(role).strip().lower() for role in roles}
    if not requested:
        raise ValidationFailedError("at least one role is required")
    unknown = requested - ALLOWED_ROLES
    if unknown:
        raise ValidationFailedError(f"unknown roles: {', '.join(sorted(unknown))}")

    user = _get_user_model(user_id, db)
    current = {row.role: row for row in user.roles}
    for role, row in current.items():
        if role not in requested:
            user.roles.remove(row)
    for role in sorted(requested - set(current)):
        user.roles.append(UserRole(role=role))
    db.flush()
    return serialize_user(user)


def set_user_countries(
    actor_id: int,
    user_id: int,
    countries: list[str],
    db: Session,
) -> dict:
    require_capability(actor_id, CAN_MANAGE_USERS, db)
    requested = {str(country).strip().upper() for country in countries}
    unknown = requested - ALLOWED_COUNTRIES
    if unknown:
        raise ValidationFailedError(f"unknown countries: {', '.join(sorted(unknown))}")

    user = _get_user_model(user_id, db)
    current = {row.country: row for row in user.countries}
    for country, row in current.items():
        if country not in requested:
            user.countries.remove(row)
    for country in sorted(requested - set(current)):
        user.countries.append(UserCountry(country=country))
    db.flush()
    return serialize_user(user)
