from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session, joinedload

from holddesk.db.models import CommissionOverride, Product, ProductBlockedAgent, User
from holddesk.services.capabilities_s import (
    CAN_BLOCK_AGENTS,
    CAN_MANAGE_PRODUCTS,
    CAN_SET_COMMISSION_OVERRIDE,
    is_admin,
    require_capability,
)
from holddesk.services.holds_s import count_committed_holds, is_reservable
from holddesk.services.workflow_errors import (
    NotFoundError,
    NotOwnerError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

ALLOWED_COUNTRIES = {"ES", "DE", "FR", "IT", "UK"}
EDITABLE_PRODUCT_FIELDS = (
    "title",
    "asin",
    "amazon_url",
    "main_image_url",
    "price",
    "commission",
    "total_qty",
    "daily_limit",
    "start_date",
    "end_date",
    "is_active",
    "marketplace_country",
)
REQUIRED_PRODUCT_FIELDS = ("title", "commission", "total_qty", "is_active")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _normalize_dates(fields: dict) -> None:
    for key in ("start_date", "end_date"):
        if key in fields:
            fields[key] = _to_naive_utc(fields[key])


def _available_qty(product: Product, db: Session, *, now: datetime) -> int:
    available = int(product.total_qty) - count_committed_holds(product.id, db, now=now)
    if product.daily_limit is not None:
        committed_today = count_committed_holds(
            product.id,
            db,
            now=now,
            since=now.replace(hour=0, minute=0, second=0, microsecond=0),
        )
        available = min(available, int(product.daily_limit) - committed_today)
    return max(0, available)


def _product_to_dict(product: Product, db: Session, *, now: datetime) -> dict:
    return {
        "id": product.id,
        "owner_id": product.owner_id,
        "title": product.title,
        "asin": product.asin,
        "amazon_url": product.amazon_url,
        "main_image_url": product.main_image_url,
        "price": float(product.price) if product.price is not None else None,
        "commission": float(product.commission or 0),
        "total_qty": int(product.total_qty),
        "daily_limit": product.daily_limit,
        "start_date": product.start_date,
        "end_date": product.end_date,
        "is_active": bool(product.is_active),
        "marketplace_country": product.marketplace_country,
        "reservable": is_reservable(product, now),
        "available_qty": _available_qty(product, db, now=now),
        "created_at": product.created_at,
        "updated_at": product.updated_at,
    }


def _validate_product_fields(fields: dict) -> None:
    title = fields.get("title")
    if title is not None and not str(title).strip():
        raise ValidationFailedError("title is required")

    total_qty = fields.get("total_qty")
    if total_qty is not None and int(total_qty) < 0:
        raise ValidationFailedError("total_qty must be 0 or greater")

    daily_limit = fields.get("daily_limit")
    if daily_limit is not None and int(daily_limit) <= 0:
        raise ValidationFailedError("daily_limit must be greater than 0")

    commission = fields.get("commission")
    if commission is not None and float(commission) < 0:
        raise ValidationFailedError("commission must be 0 or greater")

    country = fields.get("marketplace_country")
    if country is not None and country not in ALLOWED_COUNTRIES:
        raise ValidationFailedError(f"unknown marketplace country: {country}")

    start_date = fields.get("start_date")
    end_date = fields.get("end_date")
    if start_date is not None and end_date is not None and start_date > end_date:
        raise ValidationFailedError("start_date must be before end_date")


def _get_product_model(product_id: int, db: Session) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError("product not found")
    return product


def _require_product_owner(actor: User, product: Product) -> None:
    if product.owner_id != actor.id and not is_admin(actor):
        raise NotOwnerError("product belongs to another seller")


def create_product(
    owner_id: int,
    data: dict,
    db: Session,
    now: datetime | None = None,
) -> dict:
    now = now or _utc_now()
    require_capability(owner_id, CAN_MANAGE_PRODUCTS, db)

    fields = {key: data.get(key) for key in EDITABLE_PRODUCT_FIELDS if key in data}
    _normalize_dates(fields)
    if not fields.get("title"):
        raise ValidationFailedError("title is required")
    _validate_product_fields(fields)

    fields["title"] = str(fields["title"]).strip()
    fields.setdefault("commission", 0.0)
    fields.setdefault("total_qty", 1)
    fields.setdefault("is_active", True)

    product = Product(owner_id=owner_id, created_at=now, updated_at=now, **fields)
    db.add(product)
    db.flush()
    logger.info("product %s created by user %s", product.id, owner_id)
    return _product_to_dict(product, db, now=now)


def update_product(
    actor_id: int,
    product_id: int,
    data: dict,
    db: Session,
    now: datetime | None = None,
) -> dict:
    now = now or _utc_now()
    actor = require_capability(actor_id, CAN_MANAGE_PRODUCTS, db)
    product = _get_product_model(product_id, db)
    _require_product_owner(actor, product)

    changes = {key: data[key] for key in EDITABLE_PRODUCT_FIELDS if key in data}
    _normalize_dates(changes)
    cleared = [key for key in REQUIRED_PRODUCT_FIELDS if key in changes and changes[key] is None]
    if cleared:
        raise ValidationFailedError(f"fields cannot be null: {', '.join(cleared)}")
    if "title" in changes:
        changes["title"] = str(changes["title"]).strip()
    merged = {key: getattr(product, key) for key in EDITABLE_PRODUCT_FIELDS}
    merged.update(changes)
    _validate_product_fields(merged)

    for key, value in changes.items():
        setattr(product, key, value)
    product.updated_at = now
    db.flush()
    return _product_to_dict(product, db, now=now)


def get_product(product_id: int, db: Session, now: datetime | None = None) -> dict:
    now = now or _utc_now()
    return _product_to_dict(_get_product_model(product_id, db), db, now=now)


def list_products(
    db: Session,
    country: str | None = None,
    only_reservable: bool = False,
    now: datetime | None = None,
) -> list[dict]:
    now = now or _utc_now()
    query = db.query(Product)
    if country is not None:
        query = query.filter(Product.marketplace_country == country)
    rows = query.order_by(Product.created_at.desc(), Product.id.desc()).all()
    products = [_product_to_dict(row, db, now=now) for row in rows]
    if only_reservable:
        products = [
            product
            for product in products
            if product["reservable"] and product["available_qty"] > 0
        ]
    return products


def block_agent(actor_id: int, product_id: int, agent_id: int, db: Session) -> dict:
    actor = require_capability(actor_id, CAN_BLOCK_AGENTS, db)
    product = _get_product_model(product_id, db)
    _require_product_owner(actor, product)
    if db.query(User.id).filter(User.id == agent_id).first() is None:
        raise NotFoundError("agent not found")

    existing = (
        db.query(ProductBlockedAgent)
        .filter(
            ProductBlockedAgent.product_id == product_id,
            ProductBlockedAgent.agent_id == agent_id,
        )
        .first()
    )
    if existing is None:
        db.add(ProductBlockedAgent(product_id=product_id, agent_id=agent_id))
        db.flush()
        logger.info("agent %s blocked for product %s", agent_id, product_id)
    return {"product_id": product_id, "agent_id": agent_id, "blocked": True}


def unblock_agent(actor_id: int, product_id: int, agent_id: int, db: Session) -> dict:
    actor = require_capability(actor_id, CAN_BLOCK_AGENTS, db)
    product = _get_product_model(product_id, db)
    _require_product_owner(actor, product)

    removed = (
        db.query(ProductBlockedAgent)
        .filter(
            ProductBlockedAgent.product_id == product_id,
            ProductBlockedAgent.agent_id == agent_id,
        )
        .delete(synchronize_session=False)
    )
    if not removed:
        raise NotFoundError("agent is not blocked for this product")
    return {"product_id": product_id, "agent_id": agent_id, "blocked": False}


def list_blocked_agents(actor_id: int, product_id: int, db: Session) -> list[int]:
    actor = require_capability(actor_id, CAN_BLOCK_AGENTS, db)
    product = (
        db.query(Product)
        .options(joinedload(Product.blocked_agents))
        .filter(Product.id == product_id)
        .first()
    )
    if product is None:
        raise NotFoundError("product not found")
    _require_product_owner(actor, product)
    return sorted(int(row.agent_id) for row in product.blocked_agents)


def set_commission_override(
    actor_id: int,
    product_id: int,
    agent_id: int,
    commission: float,
    db: Session,
) -> dict:
    require_capability(actor_id, CAN_SET_COMMISSION_OVERRIDE, db)
    _get_product_model(product_id, db)
    if db.query(User.id).filter(User.id == agent_id).first() is None:
        raise NotFoundError("agent not found")
    if float(commission) < 0:
        raise ValidationFailedError("commission must be 0 or greater")

    override = (
        db.query(CommissionOverride)
        .filter(
            CommissionOverride.product_id == product_id,
            CommissionOverride.agent_id == agent_id,
        )
        .first()
    )
    if override is None:
        override = CommissionOverride(
            product_id=product_id,
            agent_id=agent_id,
            commission=float(commission),
        )
        db.add(override)
    else:
        override.commission = float(commission)
    db.flush()
    return {
        "product_id": product_id,
        "agent_id": agent_id,
        "commission": float(override.commission),
    }
