from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from holddesk.dependencies.auth_d import get_current_user_id
from holddesk.db.session import get_db, get_db_transactional
from holddesk.errors import raise_http_error_from_exception
from holddesk.schemas import AdvanceDealStatusRequest, UploadReviewRequest
from holddesk.services.deals_s import (
    advance_deal_status,
    get_deal,
    list_commission_credits,
    list_deals,
    upload_review_evidence,
)

router = APIRouter()

DealStatusFilter = Literal[
    "sold_submitted",
    "approved",
    "review_uploaded",
    "paid_to_client",
    "completed",
    "rejected",
]


@router.get("/deals")
def get_deals(
    deal_status: Optional[DealStatusFilter] = Query(None, alias="status"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        deals = list_deals(viewer_id=user_id, db=db, status=deal_status)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {
        "data": deals,
        "meta": {"filters": {"status": deal_status}},
    }


@router.get("/deals/{deal_id}")
def get_deal_by_id(
    deal_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        deal = get_deal(deal_id=deal_id, viewer_id=user_id, db=db)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": deal}


@router.post("/deals/{deal_id}/status")
def update_deal_status(
    deal_id: int,
    payload: AdvanceDealStatusRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        deal = advance_deal_status(
            deal_id=deal_id,
            actor_id=user_id,
            target_status=payload.status,
            admin_note=payload.admin_note,
            db=db,
        )
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": deal}


@router.post("/deals/{deal_id}/review")
def upload_deal_review(
    deal_id: int,
    payload: UploadReviewRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db_transactional),
):
    try:
        deal = upload_review_evidence(
            deal_id=deal_id,
            agent_id=user_id,
            review_link=payload.review_link,
            evidence_ref=payload.review_screenshot_path,
            db=db,
        )
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": deal}


@router.get("/commission-credits")
def get_commission_credits(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        credits = list_commission_credits(viewer_id=user_id, db=db)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {
        "data": credits,
        "meta": {"total_amount": round(sum(credit["amount"] for credit in credits), 2)},
    }
