# fee_ledger/reports/router.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from fee_ledger.balances.models import BalanceKind
from fee_ledger.core.db import get_db
from fee_ledger.core.dependencies import TenantContext, get_tenant_context
from fee_ledger.reports.schemas import DashboardStatsResponse, UnpaidTermsReportResponse
from fee_ledger.reports.services import DashboardReporter
from fee_ledger.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/fee-reports", tags=["Fee Reports"])


def get_dashboard_reporter(db: Session = Depends(get_db)) -> DashboardReporter:
    """Provides an instance of DashboardReporter with the current DB session."""
    return DashboardReporter(db)


@router.get("/{kind}/dashboard", response_model=DashboardStatsResponse, summary="Fee Dashboard Stats")
def get_dashboard_stats(
    kind: BalanceKind,
    class_id: Optional[int] = Query(None),
    section_id: Optional[int] = Query(None),
    period_id: Optional[int] = Query(None),
    tenant: TenantContext = Depends(get_tenant_context),
    reporter: DashboardReporter = Depends(get_dashboard_reporter),
):
    """
    Totals and status counts for the branch, optionally narrowed to a class,
    section and period. An empty scope returns zeros.
    """
    try:
        stats = reporter.get_dashboard_stats(
            kind=kind,
            branch_id=tenant.branch_id,
            class_id=class_id,
            period_id=period_id,
            section_id=section_id,
        )
        return DashboardStatsResponse(**stats)
    except Exception as e:
        logger.error("Error computing %s dashboard: %s", kind.value, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while computing dashboard stats.",
        ) from e


@router.get("/{kind}/unpaid-terms", response_model=UnpaidTermsReportResponse, summary="Unpaid Terms Report")
def get_unpaid_terms_report(
    kind: BalanceKind,
    class_id: Optional[int] = Query(None),
    section_id: Optional[int] = Query(None),
    period_id: Optional[int] = Query(None),
    tenant: TenantContext = Depends(get_tenant_context),
    reporter: DashboardReporter = Depends(get_dashboard_reporter),
):
    try:
        slots = reporter.get_unpaid_terms_report(
            kind=kind,
            branch_id=tenant.branch_id,
            class_id=class_id,
            period_id=period_id,
            section_id=section_id,
        )
        return UnpaidTermsReportResponse(
            kind=kind,
            class_id=class_id,
            section_id=section_id,
            period_id=period_id,
            slots=slots,
        )
    except Exception as e:
        logger.error("Error computing %s unpaid terms report: %s", kind.value, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while computing the unpaid terms report.",
        ) from e
