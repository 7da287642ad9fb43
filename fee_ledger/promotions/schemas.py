# fee_ledger/promotions/schemas.py

from decimal import Decimal
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class EligibilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    enrollment_id: int
    student_name: str
    admission_no: str
    class_id: int
    tuition_pending: Decimal = Field(..., description="Unpaid tuition across all terms")
    book_pending: Decimal = Field(..., description="Unpaid book fee")
    transport_pending: Decimal = Field(..., description="Unpaid transport fee; 0 without transport")
    total_pending_amount: Decimal
    pending_fee_types: str = Field(..., description="Comma separated, e.g. 'TUITION,TRANSPORT'")
    is_promotable: bool
    blocking_reasons: List[str] = Field(default_factory=list)


class ClassEligibilityResponse(BaseModel):
    class_id: int
    period_id: int
    total_checked: int
    promotable_count: int
    results: List[EligibilityResponse]
