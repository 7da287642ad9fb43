# fee_ledger/balances/schemas.py

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fee_ledger.balances.models import BalanceKind, PaymentTarget
from fee_ledger.ledger.engine import PaymentStatus


class InitializeBalancesRequest(BaseModel):
    """
    Request schema for creating the missing balance records of a class.
    """
    model_config = ConfigDict(json_schema_extra={
        "examples": [
            {"class_id": 7, "period_id": 2025},
            {"class_id": 7, "period_id": 2025, "section_id": 2, "concessions": {"1041": 500.00}},
        ]
    })

    class_id: int = Field(..., gt=0, description="Class whose active enrollments get balances")
    period_id: int = Field(..., gt=0, description="Academic period")
    section_id: Optional[int] = Field(None, gt=0, description="Limit to one section of the class")
    concessions: Optional[Dict[int, Decimal]] = Field(
        None, description="Per-enrollment concession overriding the enrollment default"
    )


class InitializeEnrollmentRequest(BaseModel):
    """Request schema for creating the balance record of a single enrollment."""

    enrollment_id: int = Field(..., gt=0)
    period_id: int = Field(..., gt=0)
    concession_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)


class InitializationResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: BalanceKind
    total_requested: int = Field(..., description="Active enrollments matched by the request")
    created_count: int = Field(..., description="Balance records created by this call")
    skipped_enrollment_ids: List[int] = Field(..., description="Enrollments that already had a record")
    created_balance_ids: List[int]
    is_noop: bool = Field(..., description="True when nothing was created")
    message: str


class PaymentRequest(BaseModel):
    """
    Request schema for recording a payment against one term or the book fee.
    """
    model_config = ConfigDict(json_schema_extra={
        "examples": [
            {"target": "term_1", "amount": 2970.00},
            {"target": "book", "amount": 500.00, "expected_version": 3},
        ]
    })

    target: PaymentTarget = Field(..., description="book, term_1, term_2 or term_3")
    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Payment amount (must be positive)")
    expected_version: Optional[int] = Field(
        None, ge=1, description="version_id the caller last read; rejects the payment if the record changed"
    )


class PaymentItem(BaseModel):
    target: PaymentTarget
    amount: Decimal = Field(..., gt=0, decimal_places=2)


class MultiPaymentRequest(BaseModel):
    """
    Request schema for paying several parts of one balance together.
    Either every item is recorded or none is.
    """
    model_config = ConfigDict(json_schema_extra={
        "examples": [
            {
                "items": [
                    {"target": "book", "amount": 1500.00},
                    {"target": "term_1", "amount": 2970.00},
                    {"target": "term_2", "amount": 1000.00},
                ]
            },
        ]
    })

    items: List[PaymentItem] = Field(..., min_length=1)
    expected_version: Optional[int] = Field(None, ge=1)


class ConcessionUpdateRequest(BaseModel):
    """Request schema for changing the concession of an unpaid balance record."""

    concession_amount: Decimal = Field(..., ge=0, decimal_places=2)
    expected_version: Optional[int] = Field(None, ge=1)


class BalanceBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    # Identifiers and scope
    id: int = Field(..., description="Balance record ID")
    enrollment_id: int
    period_id: int
    branch_id: int
    class_id: int
    section_id: Optional[int] = None
    admission_no: Optional[str] = None
    student_name: Optional[str] = None

    # Fee breakdown
    actual_fee: Decimal = Field(..., description="Fee before concession")
    concession_amount: Decimal
    total_fee: Decimal = Field(..., description="Net fee split across the terms")
    overall_balance_fee: Decimal = Field(..., description="Unpaid amount across all terms")

    term1_amount: Decimal
    term1_paid: Decimal
    term1_balance: Decimal
    term1_status: PaymentStatus

    term2_amount: Decimal
    term2_paid: Decimal
    term2_balance: Decimal
    term2_status: PaymentStatus

    version_id: int = Field(..., description="Send back as expected_version to guard against concurrent edits")
    created_on: Optional[datetime] = None
    updated_on: Optional[datetime] = None


class TuitionBalanceResponse(BalanceBase):
    book_fee: Decimal
    book_paid: Decimal
    book_paid_status: PaymentStatus

    term3_amount: Decimal
    term3_paid: Decimal
    term3_balance: Decimal
    term3_status: PaymentStatus


class TransportBalanceResponse(BalanceBase):
    route_id: Optional[int] = None
    slab_id: Optional[int] = None


class EnrollmentBalancesResponse(BaseModel):
    """Both balance records of one enrollment; transport is absent for non-transport students."""

    enrollment_id: int
    period_id: int
    tuition: Optional[TuitionBalanceResponse] = None
    transport: Optional[TransportBalanceResponse] = None


class PaginatedTuitionBalanceResponse(BaseModel):
    items: List[TuitionBalanceResponse] = Field(..., description="Balances for the current page")
    total_count: int = Field(..., description="Total number of balances across all pages")
    current_page: int = Field(..., description="Current page number (1-based)")
    page_size: int = Field(..., description="Number of items per page")
    total_pages: int = Field(..., description="Total number of pages available")


class PaginatedTransportBalanceResponse(BaseModel):
    items: List[TransportBalanceResponse]
    total_count: int
    current_page: int
    page_size: int
    total_pages: int
