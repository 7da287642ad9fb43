# fee_ledger/balances/router.py

from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from fee_ledger.balances.exceptions import (
    BalanceConflictError,
    BalanceError,
    BalanceNotFoundError,
    BalanceValidationError,
    ConcessionLockedError,
    OverpaymentError,
)
from fee_ledger.balances.initializer import BulkInitializer
from fee_ledger.balances.models import BalanceKind
from fee_ledger.balances.payments import PaymentPoster
from fee_ledger.balances.schemas import (
    ConcessionUpdateRequest,
    EnrollmentBalancesResponse,
    InitializationResultResponse,
    InitializeBalancesRequest,
    InitializeEnrollmentRequest,
    MultiPaymentRequest,
    PaginatedTransportBalanceResponse,
    PaginatedTuitionBalanceResponse,
    PaymentRequest,
    TransportBalanceResponse,
    TuitionBalanceResponse,
)
from fee_ledger.balances.services import BalanceService
from fee_ledger.core.config import settings
from fee_ledger.core.db import get_db
from fee_ledger.core.dependencies import TenantContext, get_tenant_context
from fee_ledger.enrollments.exceptions import EnrollmentNotFoundError
from fee_ledger.fee_structures.exceptions import FeeStructureNotFoundError, TransportFeeNotFoundError
from fee_ledger.ledger.exceptions import InvariantViolationError
from fee_ledger.reports.exceptions import ReportValidationError
from fee_ledger.reports.services import DashboardReporter
from fee_ledger.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/fee-balances", tags=["Fee Balances"])

BalanceResponse = Union[TuitionBalanceResponse, TransportBalanceResponse]
BALANCE_SCHEMAS = {
    BalanceKind.TUITION: TuitionBalanceResponse,
    BalanceKind.TRANSPORT: TransportBalanceResponse,
}
PAGE_SCHEMAS = {
    BalanceKind.TUITION: PaginatedTuitionBalanceResponse,
    BalanceKind.TRANSPORT: PaginatedTransportBalanceResponse,
}


def get_balance_service(db: Session = Depends(get_db)) -> BalanceService:
    """Provides an instance of BalanceService with the current DB session."""
    return BalanceService(db)


def get_payment_poster(db: Session = Depends(get_db)) -> PaymentPoster:
    return PaymentPoster(db)


def get_bulk_initializer(db: Session = Depends(get_db)) -> BulkInitializer:
    return BulkInitializer(db)


def get_dashboard_reporter(db: Session = Depends(get_db)) -> DashboardReporter:
    return DashboardReporter(db)


def _to_schema(kind: BalanceKind, balance):
    return BALANCE_SCHEMAS[kind].model_validate(balance) if balance is not None else None


def _invariant_error(e: InvariantViolationError) -> HTTPException:
    logger.error("Fee invariant violated: %s", e, total_fee=str(e.total_fee))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Fee schedule failed validation; nothing was saved.",
    )


@router.get(
    "/enrollments/{enrollment_id}",
    response_model=EnrollmentBalancesResponse,
    summary="Get Balances of an Enrollment",
)
def get_enrollment_balances(
    enrollment_id: int,
    period_id: int = Query(..., gt=0),
    tenant: TenantContext = Depends(get_tenant_context),
    service: BalanceService = Depends(get_balance_service),
):
    """
    Returns the tuition and transport balance of one student for a period.
    """
    try:
        balances = service.get_balance(tenant.branch_id, enrollment_id, period_id)
        return EnrollmentBalancesResponse(
            enrollment_id=enrollment_id,
            period_id=period_id,
            tuition=_to_schema(BalanceKind.TUITION, balances["tuition"]),
            transport=_to_schema(BalanceKind.TRANSPORT, balances["transport"]),
        )
    except BalanceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except Exception as e:
        logger.error("Error getting balances for enrollment %s: %s", enrollment_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while retrieving balances.",
        ) from e


@router.post(
    "/{kind}/initialize",
    response_model=InitializationResultResponse,
    summary="Initialize Balances for a Class",
)
def initialize_balances(
    kind: BalanceKind,
    request: InitializeBalancesRequest,
    tenant: TenantContext = Depends(get_tenant_context),
    initializer: BulkInitializer = Depends(get_bulk_initializer),
):
    """
    Creates the missing balance records of every active enrollment in the class.
    Calling it again only creates records for enrollments added since; when
    nothing is created the response says so and is still a success.
    """
    try:
        initialize = (
            initializer.initialize_tuition_balances
            if kind == BalanceKind.TUITION
            else initializer.initialize_transport_balances
        )
        result = initialize(
            branch_id=tenant.branch_id,
            class_id=request.class_id,
            period_id=request.period_id,
            section_id=request.section_id,
            concessions=request.concessions,
        )
        return InitializationResultResponse.model_validate(result)

    except (FeeStructureNotFoundError, TransportFeeNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except BalanceValidationError as e:
        logger.warning("Validation error in initialize_balances: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except InvariantViolationError as e:
        raise _invariant_error(e) from e
    except Exception as e:
        logger.error("Error initializing %s balances: %s", kind.value, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while initializing balances.",
        ) from e


@router.post(
    "/{kind}/initialize-enrollment",
    response_model=InitializationResultResponse,
    summary="Initialize the Balance of One Enrollment",
)
def initialize_enrollment_balance(
    kind: BalanceKind,
    request: InitializeEnrollmentRequest,
    tenant: TenantContext = Depends(get_tenant_context),
    initializer: BulkInitializer = Depends(get_bulk_initializer),
):
    try:
        result = initializer.initialize_enrollment(
            branch_id=tenant.branch_id,
            enrollment_id=request.enrollment_id,
            period_id=request.period_id,
            kind=kind,
            concession=request.concession_amount,
        )
        return InitializationResultResponse.model_validate(result)

    except (EnrollmentNotFoundError, FeeStructureNotFoundError, TransportFeeNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except BalanceValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except InvariantViolationError as e:
        raise _invariant_error(e) from e
    except Exception as e:
        logger.error("Error initializing balance for enrollment %s: %s", request.enrollment_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while initializing the balance.",
        ) from e


@router.get("/{kind}", summary="List Balances")
def list_balances(
    kind: BalanceKind,
    class_id: Optional[int] = Query(None),
    section_id: Optional[int] = Query(None),
    period_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1),
    sort_by: str = Query("student_name", pattern="^(balance_id|enrollment_id|admission_no|student_name|total_fee|overall_balance_fee|created_on)$"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    tenant: TenantContext = Depends(get_tenant_context),
    reporter: DashboardReporter = Depends(get_dashboard_reporter),
):
    """
    Retrieves a paginated list of balance records for a branch, optionally
    narrowed to a class, section and period.
    """
    try:
        items, meta = reporter.list_balances(
            kind=kind,
            branch_id=tenant.branch_id,
            class_id=class_id,
            section_id=section_id,
            period_id=period_id,
            page=page,
            page_size=page_size,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        schema = BALANCE_SCHEMAS[kind]
        return PAGE_SCHEMAS[kind](items=[schema.model_validate(b) for b in items], **meta)

    except ReportValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        logger.error("Error listing %s balances: %s", kind.value, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while retrieving balances.",
        ) from e


@router.get("/{kind}/{balance_id}", response_model=BalanceResponse, summary="Get Balance Details")
def get_balance_details(
    kind: BalanceKind,
    balance_id: int,
    tenant: TenantContext = Depends(get_tenant_context),
    service: BalanceService = Depends(get_balance_service),
):
    try:
        balance = service.get_balance_by_id(kind, balance_id, branch_id=tenant.branch_id)
        return BALANCE_SCHEMAS[kind].model_validate(balance)
    except BalanceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except Exception as e:
        logger.error("Error getting %s balance %s: %s", kind.value, balance_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while retrieving balance details.",
        ) from e


@router.post("/{kind}/{balance_id}/payments", response_model=BalanceResponse, summary="Record a Payment")
def post_payment(
    kind: BalanceKind,
    balance_id: int,
    request: PaymentRequest,
    tenant: TenantContext = Depends(get_tenant_context),
    poster: PaymentPoster = Depends(get_payment_poster),
):
    """
    Records a payment against one term (or the book fee) and returns the
    updated balance. A payment larger than the remaining balance is rejected.
    """
    try:
        balance = poster.post_payment(
            kind=kind,
            balance_id=balance_id,
            target=request.target,
            amount=request.amount,
            branch_id=tenant.branch_id,
            expected_version=request.expected_version,
        )
        return BALANCE_SCHEMAS[kind].model_validate(balance)

    except BalanceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except BalanceValidationError as e:
        logger.warning("Validation error in post_payment: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except (OverpaymentError, BalanceConflictError) as e:
        logger.warning("Payment rejected: %s", e, balance_id=balance_id)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except InvariantViolationError as e:
        raise _invariant_error(e) from e
    except Exception as e:
        logger.error("Error posting payment to %s balance %s: %s", kind.value, balance_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while recording the payment.",
        ) from e


@router.post(
    "/{kind}/{balance_id}/payments/batch",
    response_model=BalanceResponse,
    summary="Record Several Payments Together",
)
def post_payments(
    kind: BalanceKind,
    balance_id: int,
    request: MultiPaymentRequest,
    tenant: TenantContext = Depends(get_tenant_context),
    poster: PaymentPoster = Depends(get_payment_poster),
):
    """
    Records the book fee and one or more terms in a single transaction.
    If any item is rejected, none of them is saved.
    """
    try:
        balance = poster.post_payments(
            kind=kind,
            balance_id=balance_id,
            items=[(item.target, item.amount) for item in request.items],
            branch_id=tenant.branch_id,
            expected_version=request.expected_version,
        )
        return BALANCE_SCHEMAS[kind].model_validate(balance)

    except BalanceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except BalanceValidationError as e:
        logger.warning("Validation error in post_payments: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except (OverpaymentError, BalanceConflictError) as e:
        logger.warning("Payments rejected: %s", e, balance_id=balance_id)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except InvariantViolationError as e:
        raise _invariant_error(e) from e
    except Exception as e:
        logger.error("Error posting payments to %s balance %s: %s", kind.value, balance_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while recording the payments.",
        ) from e


@router.patch("/{kind}/{balance_id}/concession", response_model=BalanceResponse, summary="Change Concession")
def update_concession(
    kind: BalanceKind,
    balance_id: int,
    request: ConcessionUpdateRequest,
    tenant: TenantContext = Depends(get_tenant_context),
    service: BalanceService = Depends(get_balance_service),
):
    """
    Changes the concession of a balance that has no payments yet and re-splits
    the net fee across its terms.
    """
    try:
        balance = service.adjust_concession(
            kind=kind,
            balance_id=balance_id,
            concession_amount=request.concession_amount,
            branch_id=tenant.branch_id,
            expected_version=request.expected_version,
        )
        return BALANCE_SCHEMAS[kind].model_validate(balance)

    except BalanceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except BalanceValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except (ConcessionLockedError, BalanceConflictError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except InvariantViolationError as e:
        raise _invariant_error(e) from e
    except BalanceError as e:
        logger.error("Error adjusting concession on %s: %s", balance_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while changing the concession.",
        ) from e
