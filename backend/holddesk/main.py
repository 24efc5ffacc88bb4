import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from holddesk.db.config import get_hold_sweep_interval_seconds, get_log_level
from holddesk.db.session import SessionLocal
from holddesk.routes.deals_r import router as deals_router
from holddesk.routes.holds_r import router as holds_router
from holddesk.routes.metrics_r import router as metrics_router
from holddesk.routes.products_r import router as products_router
from holddesk.routes.users_r import router as users_router
from holddesk.services.hold_sweeper import HoldSweeper

logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - framework hook
    interval = get_hold_sweep_interval_seconds()
    sweeper = None
    if interval > 0:
        sweeper = HoldSweeper(session_factory=SessionLocal, interval_seconds=interval)
        sweeper.start()
    else:
        logger.info("hold sweeper disabled, holds expire lazily on access")
    app.state.hold_sweeper = sweeper
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.stop()


app = FastAPI(
    title="HoldDesk API",
    version="0.1.0",
    description="Product holds, deal review and commission tracking for sales agents.",
    lifespan=lifespan,
)

app.include_router(products_router, tags=["products"])
app.include_router(holds_router, tags=["holds"])
app.include_router(deals_router, tags=["deals"])
app.include_router(users_router, tags=["users"])
app.include_router(metrics_router, tags=["metrics"])


@app.get("/health")
def health_check():
    return {"status": "ok"}
