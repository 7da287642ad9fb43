# fee_ledger/promotions/router.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from fee_ledger.core.db import get_db
from fee_ledger.core.dependencies import TenantContext, get_tenant_context
from fee_ledger.enrollments.exceptions import EnrollmentNotFoundError
from fee_ledger.promotions.exceptions import PromotionValidationError
from fee_ledger.promotions.schemas import ClassEligibilityResponse, EligibilityResponse
from fee_ledger.promotions.services import PromotionEligibilityChecker
from fee_ledger.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/promotions", tags=["Promotions"])


def get_eligibility_checker(db: Session = Depends(get_db)) -> PromotionEligibilityChecker:
    """Provides an instance of PromotionEligibilityChecker with the current DB session."""
    return PromotionEligibilityChecker(db)


@router.get("/eligibility", response_model=ClassEligibilityResponse, summary="Check Class Promotion Eligibility")
def check_class_eligibility(
    class_id: int = Query(..., gt=0),
    period_id: int = Query(..., gt=0),
    section_id: Optional[int] = Query(None),
    require_fees_paid: bool = Query(True),
    tenant: TenantContext = Depends(get_tenant_context),
    checker: PromotionEligibilityChecker = Depends(get_eligibility_checker),
):
    """
    Checks every active enrollment of a class. Promotion itself happens
    elsewhere; this only reports who may be promoted.
    """
    try:
        results = checker.check_class(
            branch_id=tenant.branch_id,
            class_id=class_id,
            period_id=period_id,
            section_id=section_id,
            require_fees_paid=require_fees_paid,
        )
        return ClassEligibilityResponse(
            class_id=class_id,
            period_id=period_id,
            total_checked=len(results),
            promotable_count=sum(1 for r in results if r.is_promotable),
            results=[EligibilityResponse.model_validate(r) for r in results],
        )
    except Exception as e:
        logger.error("Error checking eligibility for class %s: %s", class_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while checking promotion eligibility.",
        ) from e


@router.get(
    "/eligibility/{enrollment_id}",
    response_model=EligibilityResponse,
    summary="Check Student Promotion Eligibility",
)
def check_enrollment_eligibility(
    enrollment_id: int,
    period_id: int = Query(..., gt=0),
    require_fees_paid: bool = Query(True),
    tenant: TenantContext = Depends(get_tenant_context),
    checker: PromotionEligibilityChecker = Depends(get_eligibility_checker),
):
    try:
        result = checker.check_enrollment(
            branch_id=tenant.branch_id,
            enrollment_id=enrollment_id,
            period_id=period_id,
            require_fees_paid=require_fees_paid,
        )
        return EligibilityResponse.model_validate(result)
    except EnrollmentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except PromotionValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        logger.error("Error checking eligibility for enrollment %s: %s", enrollment_id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while checking promotion eligibility.",
        ) from e
