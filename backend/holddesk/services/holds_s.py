from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from holddesk.db.models import Hold, Product, ProductBlockedAgent, User
from holddesk.services.capabilities_s import (
    CAN_CREATE_HOLD,
    is_admin,
    require_capability,
)
from holddesk.services.workflow_errors import (
    AlreadyExtendedError,
    AlreadyHeldError,
    ConflictError,
    CooldownError,
    DailyLimitReachedError,
    ForbiddenError,
    HoldExpiredError,
    InactiveProductError,
    InvalidStateError,
    NotFoundError,
    NotOwnerError,
    SoldOutError,
    TooEarlyError,
)

logger = logging.getLogger(__name__)

HOLD_TTL_MINUTES = 30
HOLD_EXTENSION_MINUTES = 5
HOLD_EXTENSION_WINDOW_SECONDS = 60
HOLD_COOLDOWN_MINUTES = 5
HOLD_ACTIVE = "active"
HOLD_EXPIRED = "expired"
HOLD_CONVERTED = "converted"
HOLD_CANCELLED = "cancelled"
ALLOWED_HOLD_STATUS = {HOLD_ACTIVE, HOLD_EXPIRED, HOLD_CONVERTED, HOLD_CANCELLED}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def is_reservable(product: Product, now: datetime) -> bool:
    if not product.is_active:
        return False
    if product.start_date is not None and product.start_date > now:
        return False
    if product.end_date is not None and product.end_date < now:
        return False
    return True


def hold_to_dict(hold: Hold, now: datetime | None = None) -> dict:
    now = now or _utc_now()
    is_live = hold.status == HOLD_ACTIVE and hold.expires_at > now
    seconds_remaining = (
        max(0, int((hold.expires_at - now).total_seconds())) if is_live else 0
    )
    return {
        "id": hold.id,
        "product_id": hold.product_id,
        "product_title": hold.product.title if hold.product is not None else None,
        "agent_id": hold.agent_id,
        "status": hold.status,
        "extended": bool(hold.extended),
        "expires_at": hold.expires_at,
        "released_at": hold.released_at,
        "seconds_remaining": seconds_remaining,
        "can_extend": bool(
            is_live
            and not hold.extended
            and seconds_remaining <= HOLD_EXTENSION_WINDOW_SECONDS
        ),
        "created_at": hold.created_at,
        "updated_at": hold.updated_at,
    }


def count_committed_holds(
    product_id: int,
    db: Session,
    *,
    now: datetime,
    since: datetime | None = None,
) -> int:
    query = db.query(func.count(Hold.id)).filter(
        Hold.product_id == product_id,
        (
            (Hold.status == HOLD_CONVERTED)
            | ((Hold.status == HOLD_ACTIVE) & (Hold.expires_at > now))
        ),
    )
    if since is not None:
        query = query.filter(Hold.created_at >= since)
    return int(query.scalar() or 0)


def _lock_hold(hold_id: int, db: Session) -> Hold | None:
    return (
        db.query(Hold)
        .filter(Hold.id == hold_id)
        .with_for_update()
        .first()
    )


def _ensure_agent_may_reserve(agent: User, product: Product, db: Session) -> None:
    blocked = (
        db.query(ProductBlockedAgent.id)
        .filter(
            ProductBlockedAgent.product_id == product.id,
            ProductBlockedAgent.agent_id == agent.id,
        )
        .first()
    )
    if blocked is not None:
        raise ForbiddenError("agent is blocked for this product")

    agent_countries = {row.country for row in agent.countries}
    if (
        agent_countries
        and product.marketplace_country is not None
        and product.marketplace_country not in agent_countries
    ):
        raise ForbiddenError(
            f"agent is not assigned to marketplace {product.marketplace_country}"
        )


def _ensure_not_cooling_down(agent_id: int, product_id: int, db: Session, *, now: datetime) -> None:
    cooldown = timedelta(minutes=HOLD_COOLDOWN_MINUTES)
    released_at = func.coalesce(Hold.released_at, Hold.updated_at)
    latest_expired = (
        db.query(Hold)
        .filter(
            Hold.agent_id == agent_id,
            Hold.product_id == product_id,
            Hold.status == HOLD_EXPIRED,
            released_at > now - cooldown,
        )
        .order_by(released_at.desc())
        .first()
    )
    if latest_expired is None:
        return

    anchor = latest_expired.released_at or latest_expired.updated_at
    retry_after = math.ceil((anchor + cooldown - now).total_seconds())
    raise CooldownError(
        f"cooldown active, retry in {retry_after} seconds",
        retry_after=retry_after,
    )


def expire_stale_holds(
    db: Session,
    now: datetime | None = None,
    *,
    product_id: int | None = None,
    agent_id: int | None = None,
    hold_id: int | None = None,
) -> int:
    """Flip overdue active holds to expired, optionally scoped.

    Request paths pass a scope so the lazy sweep only touches rows the request
    is about; the background sweeper runs it unscoped.
    """
    now = now or _utc_now()
    query = db.query(Hold).filter(
        Hold.status == HOLD_ACTIVE,
        Hold.expires_at <= now,
    )
    if product_id is not None:
        query = query.filter(Hold.product_id == product_id)
    if agent_id is not None:
        query = query.filter(Hold.agent_id == agent_id)
    if hold_id is not None:
        query = query.filter(Hold.id == hold_id)
    expired_count = query.update(
        {
            Hold.status: HOLD_EXPIRED,
            Hold.released_at: Hold.expires_at,
            Hold.updated_at: now,
        },
        synchronize_session="fetch",
    )
    if expired_count:
        logger.info("expired %s stale holds", expired_count)
    return int(expired_count or 0)


def create_hold(
    agent_id: int,
    product_id: int,
    db: Session,
    now: datetime | None = None,
) -> dict:
    now = now or _utc_now()
    expire_stale_holds(db, now=now, product_id=product_id)
    agent = require_capability(agent_id, CAN_CREATE_HOLD, db)

    product = (
        db.query(Product)
        .filter(Product.id == product_id)
        .with_for_update()
        .first()
    )
    if product is None:
        raise NotFoundError("product not found")
    if not is_reservable(product, now):
        raise InactiveProductError("product is not available for reservation")

    _ensure_agent_may_reserve(agent, product, db)

    already_held = (
        db.query(Hold.id)
        .filter(
            Hold.agent_id == agent_id,
            Hold.product_id == product_id,
            Hold.status == HOLD_ACTIVE,
        )
        .first()
    )
    if already_held is not None:
        raise AlreadyHeldError("agent already holds this product")

    _ensure_not_cooling_down(agent_id, product_id, db, now=now)

    committed = count_committed_holds(product_id, db, now=now)
    if committed >= int(product.total_qty):
        raise SoldOutError("product is sold out")

    if product.daily_limit is not None:
        committed_today = count_committed_holds(
            product_id,
            db,
            now=now,
            since=_start_of_day(now),
        )
        if committed_today >= int(product.daily_limit):
            raise DailyLimitReachedError("daily limit reached for this product")

    hold = Hold(
        product_id=product_id,
        agent_id=agent_id,
        status=HOLD_ACTIVE,
        extended=False,
        expires_at=now + timedelta(minutes=HOLD_TTL_MINUTES),
        released_at=None,
        created_at=now,
        updated_at=now,
    )
    db.add(hold)
    db.flush()
    logger.info(
        "hold %s created: agent=%s product=%s expires_at=%s",
        hold.id,
        agent_id,
        product_id,
        hold.expires_at.isoformat(),
    )
    return hold_to_dict(hold, now)


def extend_hold(
    agent_id: int,
    hold_id: int,
    db: Session,
    now: datetime | None = None,
) -> dict:
    now = now or _utc_now()
    hold = _lock_hold(hold_id, db)
    if hold is None:
        raise NotFoundError("hold not found")
    if hold.agent_id != agent_id:
        raise NotOwnerError("hold belongs to another agent")
    if hold.extended:
        raise AlreadyExtendedError("hold was already extended")
    if hold.status == HOLD_EXPIRED or (
        hold.status == HOLD_ACTIVE and hold.expires_at <= now
    ):
        raise HoldExpiredError("hold has expired")
    if hold.status != HOLD_ACTIVE:
        raise InvalidStateError(f"hold is {hold.status}")

    remaining = (hold.expires_at - now).total_seconds()
    if remaining > HOLD_EXTENSION_WINDOW_SECONDS:
        raise TooEarlyError(
            f"hold can only be extended in its last {HOLD_EXTENSION_WINDOW_SECONDS} seconds"
        )

    current_expires_at = hold.expires_at
    updated = (
        db.query(Hold)
        .filter(
            Hold.id == hold_id,
            Hold.status == HOLD_ACTIVE,
            Hold.extended.is_(False),
            Hold.expires_at == current_expires_at,
        )
        .update(
            {
                Hold.expires_at: current_expires_at
                + timedelta(minutes=HOLD_EXTENSION_MINUTES),
                Hold.extended: True,
                Hold.updated_at: now,
            },
            synchronize_session="fetch",
        )
    )
    if int(updated or 0) != 1:
        raise ConflictError("hold changed while extending, refresh and retry")

    db.flush()
    db.refresh(hold)
    logger.info("hold %s extended until %s", hold.id, hold.expires_at.isoformat())
    return hold_to_dict(hold, now)


def cancel_hold(
    agent_id: int,
    hold_id: int,
    db: Session,
    now: datetime | None = None,
) -> dict:
    now = now or _utc_now()
    hold = _lock_hold(hold_id, db)
    if hold is None:
        raise NotFoundError("hold not found")
    if hold.agent_id != agent_id:
        raise NotOwnerError("hold belongs to another agent")
    if hold.status == HOLD_EXPIRED or (
        hold.status == HOLD_ACTIVE and hold.expires_at <= now
    ):
        raise HoldExpiredError("hold has expired")
    if hold.status != HOLD_ACTIVE:
        raise InvalidStateError(f"hold is {hold.status}")

    updated = (
        db.query(Hold)
        .filter(
            Hold.id == hold_id,
            Hold.status == HOLD_ACTIVE,
            Hold.expires_at > now,
        )
        .update(
            {
                Hold.status: HOLD_CANCELLED,
                Hold.released_at: now,
                Hold.updated_at: now,
            },
            synchronize_session="fetch",
        )
    )
    if int(updated or 0) != 1:
        raise ConflictError("hold changed while cancelling, refresh and retry")

    db.flush()
    db.refresh(hold)
    logger.info("hold %s cancelled by agent %s", hold.id, agent_id)
    return hold_to_dict(hold, now)


def _load_viewer(viewer_id: int, db: Session) -> User:
    viewer = (
        db.query(User)
        .options(joinedload(User.roles))
        .filter(User.id == viewer_id)
        .first()
    )
    if viewer is None:
        raise NotFoundError("user not found")
    return viewer


def get_hold(
    hold_id: int,
    viewer_id: int,
    db: Session,
    now: datetime | None = None,
) -> dict:
    now = now or _utc_now()
    expire_stale_holds(db, now=now, hold_id=hold_id)
    viewer = _load_viewer(viewer_id, db)
    hold = (
        db.query(Hold)
        .options(joinedload(Hold.product))
        .filter(Hold.id == hold_id)
        .first()
    )
    if hold is None:
        raise NotFoundError("hold not found")
    if hold.agent_id != viewer_id and not is_admin(viewer):
        raise NotOwnerError("hold belongs to another agent")
    return hold_to_dict(hold, now)


def list_holds(
    viewer_id: int,
    db: Session,
    status: str | None = None,
    now: datetime | None = None,
) -> list[dict]:
    now = now or _utc_now()
    if status is not None and status not in ALLOWED_HOLD_STATUS:
        raise ValueError(f"unknown hold status: {status}")
    viewer = _load_viewer(viewer_id, db)
    if is_admin(viewer):
        expire_stale_holds(db, now=now)
    else:
        expire_stale_holds(db, now=now, agent_id=viewer_id)

    query = db.query(Hold).options(joinedload(Hold.product))
    if not is_admin(viewer):
        query = query.filter(Hold.agent_id == viewer_id)
    if status is not None:
        query = query.filter(Hold.status == status)
    rows = query.order_by(Hold.created_at.desc(), Hold.id.desc()).all()
    return [hold_to_dict(row, now) for row in rows]
