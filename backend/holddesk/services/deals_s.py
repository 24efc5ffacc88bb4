from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session, joinedload

from holddesk.db.models import CommissionCredit, Deal, User
from holddesk.services.capabilities_s import (
    CAN_ADVANCE_DEAL,
    CAN_UPLOAD_REVIEW,
    is_admin,
    require_capability,
)
from holddesk.services.workflow_errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    NotOwnerError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

DEAL_SOLD_SUBMITTED = "sold_submitted"
DEAL_APPROVED = "approved"
DEAL_REVIEW_UPLOADED = "review_uploaded"
DEAL_PAID_TO_CLIENT = "paid_to_client"
DEAL_COMPLETED = "completed"
DEAL_REJECTED = "rejected"

# sold_submitted -> approved -> review_uploaded -> paid_to_client -> completed
DEAL_STATUS_ORDER = (
    DEAL_SOLD_SUBMITTED,
    DEAL_APPROVED,
    DEAL_REVIEW_UPLOADED,
    DEAL_PAID_TO_CLIENT,
    DEAL_COMPLETED,
)
ALLOWED_DEAL_STATUS = set(DEAL_STATUS_ORDER) | {DEAL_REJECTED}
TERMINAL_DEAL_STATUS = {DEAL_COMPLETED, DEAL_REJECTED}
PENDING_DEAL_STATUS = {DEAL_SOLD_SUBMITTED, DEAL_REVIEW_UPLOADED}

# Forward steps an admin may take; approved -> review_uploaded belongs to the agent.
ADMIN_NEXT_STATUS = {
    DEAL_SOLD_SUBMITTED: DEAL_APPROVED,
    DEAL_REVIEW_UPLOADED: DEAL_PAID_TO_CLIENT,
    DEAL_PAID_TO_CLIENT: DEAL_COMPLETED,
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _normalize_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def deal_to_dict(deal: Deal) -> dict:
    return {
        "id": deal.id,
        "hold_id": deal.hold_id,
        "product_id": deal.product_id,
        "product_title": deal.product.title if deal.product is not None else None,
        "marketplace_country": (
            deal.product.marketplace_country if deal.product is not None else None
        ),
        "agent_id": deal.agent_id,
        "status": deal.status,
        "customer_name": deal.customer_name,
        "customer_paypal": deal.customer_paypal,
        "customer_telegram": deal.customer_telegram,
        "amazon_profile_url": deal.amazon_profile_url,
        "order_screenshot_path": deal.order_screenshot_path,
        "review_link": deal.review_link,
        "review_screenshot_path": deal.review_screenshot_path,
        "commission": float(deal.commission or 0),
        "admin_note": deal.admin_note,
        "created_at": deal.created_at,
        "updated_at": deal.updated_at,
    }


def _credit_to_dict(credit: CommissionCredit) -> dict:
    return {
        "id": credit.id,
        "deal_id": credit.deal_id,
        "agent_id": credit.agent_id,
        "product_id": credit.product_id,
        "amount": float(credit.amount),
        "created_at": credit.created_at,
    }


def allowed_admin_targets(status: str) -> set[str]:
    if status in TERMINAL_DEAL_STATUS:
        return set()
    targets = {DEAL_REJECTED}
    next_status = ADMIN_NEXT_STATUS.get(status)
    if next_status is not None:
        targets.add(next_status)
    return targets


def _lock_deal(deal_id: int, db: Session) -> Deal | None:
    return (
        db.query(Deal)
        .filter(Deal.id == deal_id)
        .with_for_update()
        .first()
    )


def _transition(
    deal: Deal,
    *,
    from_status: str,
    values: dict,
    db: Session,
) -> None:
    updated = (
        db.query(Deal)
        .filter(
            Deal.id == deal.id,
            Deal.status == from_status,
        )
        .update(values, synchronize_session="fetch")
    )
    if int(updated or 0) != 1:
        raise ConflictError("deal was changed by another request")
    db.flush()
    db.refresh(deal)


def advance_deal_status(
    deal_id: int,
    actor_id: int,
    target_status: str,
    db: Session,
    admin_note: str | None = None,
    now: datetime | None = None,
) -> dict:
    now = now or _utc_now()
    if target_status not in ALLOWED_DEAL_STATUS:
        raise ValidationFailedError(f"unknown deal status: {target_status}")
    require_capability(actor_id, CAN_ADVANCE_DEAL, db)
    if target_status == DEAL_REVIEW_UPLOADED:
        raise ForbiddenError("review evidence is uploaded by the agent")

    deal = _lock_deal(deal_id, db)
    if deal is None:
        raise NotFoundError("deal not found")

    from_status = deal.status
    if target_status not in allowed_admin_targets(from_status):
        raise InvalidTransitionError(
            f"cannot move deal from {from_status} to {target_status}"
        )

    values = {Deal.status: target_status, Deal.updated_at: now}
    note = _normalize_optional_text(admin_note)
    if note is not None:
        values[Deal.admin_note] = note
    _transition(deal, from_status=from_status, values=values, db=db)

    if target_status == DEAL_COMPLETED:
        credit = CommissionCredit(
            deal_id=deal.id,
            agent_id=deal.agent_id,
            product_id=deal.product_id,
            amount=float(deal.commission or 0),
            created_at=now,
        )
        db.add(credit)
        db.flush()
        logger.info(
            "commission credit %s issued for deal %s: agent=%s amount=%.2f",
            credit.id,
            deal.id,
            deal.agent_id,
            credit.amount,
        )

    logger.info(
        "deal %s moved %s -> %s by user %s",
        deal.id,
        from_status,
        target_status,
        actor_id,
    )
    return deal_to_dict(deal)


def upload_review_evidence(
    deal_id: int,
    agent_id: int,
    review_link: str | None,
    evidence_ref: str | None,
    db: Session,
    now: datetime | None = None,
) -> dict:
    now = now or _utc_now()
    require_capability(agent_id, CAN_UPLOAD_REVIEW, db)

    deal = _lock_deal(deal_id, db)
    if deal is None:
        raise NotFoundError("deal not found")
    if deal.agent_id != agent_id:
        raise NotOwnerError("deal belongs to another agent")
    if deal.status != DEAL_APPROVED:
        raise InvalidTransitionError(
            f"review evidence can only be uploaded for approved deals, deal is {deal.status}"
        )

    link = _normalize_optional_text(review_link)
    evidence = _normalize_optional_text(evidence_ref)
    missing = [
        name
        for name, value in (("review_link", link), ("review_screenshot_path", evidence))
        if value is None
    ]
    if missing:
        raise ValidationFailedError(f"missing required fields: {', '.join(missing)}")

    _transition(
        deal,
        from_status=DEAL_APPROVED,
        values={
            Deal.status: DEAL_REVIEW_UPLOADED,
            Deal.review_link: link,
            Deal.review_screenshot_path: evidence,
            Deal.updated_at: now,
        },
        db=db,
    )
    logger.info("review evidence uploaded for deal %s by agent %s", deal.id, agent_id)
    return deal_to_dict(deal)


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


def get_deal(deal_id: int, viewer_id: int, db: Session) -> dict:
    viewer = _load_viewer(viewer_id, db)
    deal = (
        db.query(Deal)
        .options(joinedload(Deal.product))
        .filter(Deal.id == deal_id)
        .first()
    )
    if deal is None:
        raise NotFoundError("deal not found")
    if deal.agent_id != viewer_id and not is_admin(viewer):
        raise NotOwnerError("deal belongs to another agent")
    return deal_to_dict(deal)


def list_deals(viewer_id: int, db: Session, status: str | None = None) -> list[dict]:
    if status is not None and status not in ALLOWED_DEAL_STATUS:
        raise ValueError(f"unknown deal status: {status}")
    viewer = _load_viewer(viewer_id, db)

    query = db.query(Deal).options(joinedload(Deal.product))
    if not is_admin(viewer):
        query = query.filter(Deal.agent_id == viewer_id)
    if status is not None:
        query = query.filter(Deal.status == status)
    rows = query.order_by(Deal.created_at.desc(), Deal.id.desc()).all()
    return [deal_to_dict(row) for row in rows]


def list_commission_credits(viewer_id: int, db: Session) -> list[dict]:
    viewer = _load_viewer(viewer_id, db)
    query = db.query(CommissionCredit)
    if not is_admin(viewer):
        query = query.filter(CommissionCredit.agent_id == viewer_id)
    rows = query.order_by(CommissionCredit.created_at.desc(), CommissionCredit.id.desc()).all()
    return [_credit_to_dict(row) for row in rows]
