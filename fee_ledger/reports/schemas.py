# fee_ledger/reports/schemas.py

from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from fee_ledger.balances.models import BalanceKind


class DashboardStatsResponse(BaseModel):
    """
    Fee totals for a branch, class or section.

    total_paid counts term payments only; book payments are in total_book_paid.
    """

    kind: BalanceKind
    total_balances: int = Field(..., description="Number of balance records in scope")
    total_actual_fee: Decimal
    total_concession: Decimal
    total_net_fee: Decimal = Field(..., description="Sum of fees after concession")
    total_paid: Decimal = Field(
        ..., description="Sum of term payments only; book payments are reported in total_book_paid"
    )
    total_outstanding: Decimal = Field(..., description="Sum of overall balances")
    total_book_fee: Optional[Decimal] = Field(None, description="Tuition only")
    total_book_paid: Optional[Decimal] = Field(None, description="Tuition only")
    status_counts: Dict[str, Dict[str, int]] = Field(
        ..., description="Per slot (book, term_1, ...) record counts by PENDING/PARTIAL/PAID"
    )


class UnpaidSlotSummary(BaseModel):
    slot: str = Field(..., description="book, term_1, term_2 or term_3")
    unpaid_count: int = Field(..., description="Records with a balance left on this slot")
    unpaid_amount: Decimal = Field(..., description="Total balance left on this slot")


class UnpaidTermsReportResponse(BaseModel):
    kind: BalanceKind
    class_id: Optional[int] = None
    section_id: Optional[int] = None
    period_id: Optional[int] = None
    slots: List[UnpaidSlotSummary]
