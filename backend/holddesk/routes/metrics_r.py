from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from holddesk.dependencies.auth_d import get_current_user_id
from holddesk.db.session import get_db
from holddesk.errors import raise_http_error_from_exception
from holddesk.services.metrics_s import agent_summary, sales_metrics

router = APIRouter()


@router.get("/metrics/me")
def get_my_metrics(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        summary = agent_summary(agent_id=user_id, db=db)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": summary}


@router.get("/admin/metrics/sales")
def get_sales_metrics(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        rows = sales_metrics(actor_id=user_id, db=db)
    except Exception as exc:
        raise_http_error_from_exception(exc, db=db)
    return {"data": rows}
