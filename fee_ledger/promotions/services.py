# fee_ledger/promotions/services.py

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from fee_ledger.balances.models import BalanceKind
from fee_ledger.balances.repository import BalanceRepository
from fee_ledger.core.config import settings
from fee_ledger.enrollments.directory import EnrollmentDirectory, SqlEnrollmentDirectory
from fee_ledger.enrollments.models import Enrollment
from fee_ledger.ledger.engine import ZERO, check_installments, overall_balance, to_money
from fee_ledger.promotions.exceptions import PromotionValidationError
from fee_ledger.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class EligibilityResult:
    enrollment_id: int
    student_name: str
    admission_no: str
    class_id: int
    tuition_pending: Decimal = ZERO
    book_pending: Decimal = ZERO
    transport_pending: Decimal = ZERO
    total_pending_amount: Decimal = ZERO
    pending_fee_types: str = ""
    is_promotable: bool = False
    blocking_reasons: List[str] = field(default_factory=list)


def _record_problems(balance) -> List[str]:
    problems = check_installments(balance.total_fee, balance.installments(), settings.money_tolerance)
    if to_money(balance.overall_balance_fee) != overall_balance(balance.installments()):
        problems.append(
            f"overall balance {balance.overall_balance_fee} does not match the term balances"
        )
    if hasattr(balance, "book_paid"):
        if balance.book_paid < 0 or balance.book_paid > balance.book_fee:
            problems.append(f"book paid {balance.book_paid} is outside 0..{balance.book_fee}")
    return problems


class PromotionEligibilityChecker:
    """
    Decides whether outstanding fees block a student's promotion.

    Read only. A balance record that breaks the money invariants always
    blocks promotion, even when the caller waives the fee requirement.
    """

    def __init__(self, db: Session, directory: Optional[EnrollmentDirectory] = None):
        self.db = db
        self.repo = BalanceRepository(db)
        self.directory = directory or SqlEnrollmentDirectory(db)

    def check_enrollment(
        self, branch_id: int, enrollment_id: int, period_id: int, require_fees_paid: bool = True
    ) -> EligibilityResult:
        """
        Raises:
            EnrollmentNotFoundError: If the enrollment is not in the branch
            PromotionValidationError: If the enrollment is inactive or belongs to another period
        """
        enrollment = self.directory.get_enrollment(branch_id, enrollment_id)
        if not enrollment.is_active:
            raise PromotionValidationError(f"Enrollment {enrollment_id} is not active.")
        if enrollment.period_id != period_id:
            raise PromotionValidationError(
                f"Enrollment {enrollment_id} belongs to period {enrollment.period_id}, not {period_id}."
            )
        tuition = self.repo.get_by_enrollment(BalanceKind.TUITION, enrollment_id, period_id, branch_id)
        transport = None
        if enrollment.transport_enabled:
            transport = self.repo.get_by_enrollment(BalanceKind.TRANSPORT, enrollment_id, period_id, branch_id)
        return self._evaluate(enrollment, tuition, transport, require_fees_paid)

    def check_class(
        self,
        branch_id: int,
        class_id: int,
        period_id: int,
        section_id: Optional[int] = None,
        require_fees_paid: bool = True,
    ) -> List[EligibilityResult]:
        """Checks every active enrollment of a class, in enrollment order."""
        enrollments = self.directory.list_active_enrollments(branch_id, class_id, period_id, section_id)
        ids = [e.id for e in enrollments]
        tuitions = self.repo.get_for_enrollments(BalanceKind.TUITION, ids, period_id)
        transports = self.repo.get_for_enrollments(
            BalanceKind.TRANSPORT, [e.id for e in enrollments if e.transport_enabled], period_id
        )
        results = [
            self._evaluate(e, tuitions.get(e.id), transports.get(e.id), require_fees_paid)
            for e in enrollments
        ]
        logger.info(
            "Checked promotion eligibility",
            branch_id=branch_id,
            class_id=class_id,
            period_id=period_id,
            checked=len(results),
            promotable=sum(1 for r in results if r.is_promotable),
        )
        return results

    def _evaluate(
        self,
        enrollment: Enrollment,
        tuition,
        transport,
        require_fees_paid: bool,
    ) -> EligibilityResult:
        result = EligibilityResult(
            enrollment_id=enrollment.id,
            student_name=enrollment.student_name,
            admission_no=enrollment.admission_no,
            class_id=enrollment.class_id,
        )
        missing = []
        broken = []

        if tuition is None:
            missing.append("Tuition balance has not been initialized")
        else:
            problems = _record_problems(tuition)
            if problems:
                broken.append(f"Tuition balance {tuition.id} is inconsistent: {'; '.join(problems)}")
            result.tuition_pending = to_money(tuition.overall_balance_fee)
            result.book_pending = tuition.book_remaining

        if enrollment.transport_enabled:
            if transport is None:
                missing.append("Transport balance has not been initialized")
            else:
                problems = _record_problems(transport)
                if problems:
                    broken.append(f"Transport balance {transport.id} is inconsistent: {'; '.join(problems)}")
                result.transport_pending = to_money(transport.overall_balance_fee)

        result.total_pending_amount = result.tuition_pending + result.book_pending + result.transport_pending
        result.pending_fee_types = ",".join(
            tag
            for tag, amount in (
                ("TUITION", result.tuition_pending),
                ("BOOK", result.book_pending),
                ("TRANSPORT", result.transport_pending),
            )
            if amount > 0
        )

        result.blocking_reasons.extend(broken)
        if require_fees_paid:
            result.blocking_reasons.extend(missing)
            if result.total_pending_amount > 0:
                result.blocking_reasons.append(
                    f"Outstanding fees of {result.total_pending_amount} ({result.pending_fee_types})"
                )
        result.is_promotable = not result.blocking_reasons

        if broken:
            logger.warning(
                "Balance invariants violated; promotion blocked",
                enrollment_id=enrollment.id,
                reasons=broken,
            )
        return result
