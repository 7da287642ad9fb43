"""Fee ledger service - FastAPI entrypoint."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fee_ledger.balances.router import router as balances_router
from fee_ledger.core.config import settings
from fee_ledger.fee_structures.router import router as fee_structures_router
from fee_ledger.promotions.router import router as promotions_router
from fee_ledger.reports.router import router as reports_router
from fee_ledger.utils.logger import configure_logging, get_logger

configure_logging(settings.log_level)
logger = get_logger(__name__)

app = FastAPI(
    title="Fee Ledger",
    description="Student fee balances, installment payments, dashboards and promotion eligibility",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.allowed_cors_urls.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(fee_structures_router)
app.include_router(balances_router)
app.include_router(reports_router)
app.include_router(promotions_router)

logger.info("Fee ledger service started", environment=settings.environment)


@app.get("/health")
def health():
    return {"status": "ok", "environment": settings.environment}
