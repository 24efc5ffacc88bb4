from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from holddesk.db.models import CommissionCredit, Deal, Hold, Product
from holddesk.services.capabilities_s import CAN_VIEW_METRICS, require_capability
from holddesk.services.deals_s import DEAL_COMPLETED, DEAL_REJECTED, PENDING_DEAL_STATUS
from holddesk.services.holds_s import HOLD_ACTIVE


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def agent_summary(agent_id: int, db: Session, now: datetime | None = None) -> dict:
    now = now or _utc_now()
    active_holds = (
        db.query(func.count(Hold.id))
        .filter(
            Hold.agent_id == agent_id,
            Hold.status == HOLD_ACTIVE,
            Hold.expires_at > now,
        )
        .scalar()
    )
    pending_deals = (
        db.query(func.count(Deal.id))
        .filter(
            Deal.agent_id == agent_id,
            Deal.status.in_(PENDING_DEAL_STATUS),
        )
        .scalar()
    )
    completed_deals = (
        db.query(func.count(Deal.id))
        .filter(
            Deal.agent_id == agent_id,
            Deal.status == DEAL_COMPLETED,
        )
        .scalar()
    )
    total_commission = (
        db.query(func.coalesce(func.sum(CommissionCredit.amount), 0))
        .filter(CommissionCredit.agent_id == agent_id)
        .scalar()
    )
    return {
        "agent_id": agent_id,
        "active_holds": int(active_holds or 0),
        "pending_deals": int(pending_deals or 0),
        "completed_deals": int(completed_deals or 0),
        "total_commission": float(total_commission or 0),
    }


def sales_metrics(actor_id: int, db: Session) -> list[dict]:
    require_capability(actor_id, CAN_VIEW_METRICS, db)
    sale_date = func.date(Deal.created_at)
    rows = (
        db.query(
            sale_date.label("sale_date"),
            Product.marketplace_country.label("country"),
            func.count(Deal.id).label("deal_count"),
            func.coalesce(func.sum(Deal.commission), 0).label("total_commission"),
        )
        .join(Product, Product.id == Deal.product_id)
        .filter(Deal.status != DEAL_REJECTED)
        .group_by(sale_date, Product.marketplace_country)
        .order_by(sale_date.desc(), Product.marketplace_country.asc())
        .all()
    )
    return [
        {
            "sale_date": str(row.sale_date) if row.sale_date is not None else None,
            "country": row.country,
            "deal_count": int(row.deal_count or 0),
            "total_commission": float(row.total_commission or 0),
        }
        for row in rows
    ]
