from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from holddesk.db.models import CommissionOverride, Deal, Hold, Product
from holddesk.services.capabilities_s import CAN_CONVERT_HOLD, require_capability
from holddesk.services.deals_s import DEAL_SOLD_SUBMITTED, deal_to_dict
from holddesk.services.holds_s import HOLD_ACTIVE, HOLD_CONVERTED
from holddesk.services.workflow_errors import (
    ConflictError,
    InvalidHoldError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

REQUIRED_CUSTOMER_FIELDS = ("customer_name", "amazon_profile_url")
OPTIONAL_CUSTOMER_FIELDS = ("customer_paypal", "customer_telegram")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _normalize_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def _normalize_customer(customer: dict | None) -> dict:
    customer = customer or {}
    normalized: dict[str, str | None] = {}
    missing = []
    for field_name in REQUIRED_CUSTOMER_FIELDS:
        value = _normalize_optional_text(customer.get(field_name))
        if value is None:
            missing.append(field_name)
        normalized[field_name] = value
    if missing:
        raise ValidationFailedError(f"missing required fields: {', '.join(missing)}")
    for field_name in OPTIONAL_CUSTOMER_FIELDS:
        normalized[field_name] = _normalize_optional_text(customer.get(field_name))
    return normalized


def commission_snapshot_for(product: Product, agent_id: int, db: Session) -> float:
    override = (
        db.query(CommissionOverride)
        .filter(
            CommissionOverride.product_id == product.id,
            CommissionOverride.agent_id == agent_id,
        )
        .first()
    )
    if override is not None:
        return float(override.commission)
    return float(product.commission or 0)


def convert_hold_to_deal(
    hold_id: int,
    agent_id: int,
    order_evidence: str | None,
    customer: dict | None,
    db: Session,
    now: datetime | None = None,
) -> dict:
    """Turn an active hold plus order evidence into a submitted deal.

    The hold flips to converted through a conditional update keyed on its
    current status and deadline, so of two concurrent attempts exactly one
    inserts a deal and the other fails. A hold past its deadline is refused
    even if the expiry sweep has not reached it yet.
    """
    now = now or _utc_now()
    require_capability(agent_id, CAN_CONVERT_HOLD, db)

    hold = db.query(Hold).filter(Hold.id == hold_id).first()
    if hold is None:
        raise InvalidHoldError("hold not found")
    if hold.agent_id != agent_id:
        raise InvalidHoldError("hold belongs to another agent")
    if hold.status != HOLD_ACTIVE:
        raise InvalidHoldError(f"hold is {hold.status}")
    if hold.expires_at <= now:
        raise InvalidHoldError("hold has expired")

    evidence = _normalize_optional_text(order_evidence)
    if evidence is None:
        raise ValidationFailedError("order evidence is required")
    customer_fields = _normalize_customer(customer)

    updated = (
        db.query(Hold)
        .filter(
            Hold.id == hold_id,
            Hold.agent_id == agent_id,
            Hold.status == HOLD_ACTIVE,
            Hold.expires_at > now,
        )
        .update(
            {
                Hold.status: HOLD_CONVERTED,
                Hold.released_at: now,
                Hold.updated_at: now,
            },
            synchronize_session="fetch",
        )
    )
    if int(updated or 0) != 1:
        raise ConflictError("hold was changed by another request")

    product = db.query(Product).filter(Product.id == hold.product_id).first()
    deal = Deal(
        hold_id=hold.id,
        product_id=hold.product_id,
        agent_id=agent_id,
        status=DEAL_SOLD_SUBMITTED,
        order_screenshot_path=evidence,
        commission=commission_snapshot_for(product, agent_id, db),
        created_at=now,
        updated_at=now,
        **customer_fields,
    )
    db.add(deal)
    db.flush()
    logger.info(
        "hold %s converted to deal %s (agent=%s commission=%.2f)",
        hold.id,
        deal.id,
        agent_id,
        deal.commission,
    )
    return deal_to_dict(deal)
