# fee_ledger/tests/test_promotion_eligibility.py

from decimal import Decimal

import pytest
from sqlalchemy import update

from fee_ledger.balances.models import BalanceKind, PaymentTarget, TuitionBalance
from fee_ledger.balances.payments import PaymentPoster
from fee_ledger.enrollments.exceptions import EnrollmentNotFoundError
from fee_ledger.promotions.exceptions import PromotionValidationError
from fee_ledger.promotions.services import PromotionEligibilityChecker
from fee_ledger.tests.conftest import BRANCH_ID, CLASS_ID, PERIOD_ID, ROUTE_ID, SLAB_ID


@pytest.fixture
def checker(db_session):
    return PromotionEligibilityChecker(db_session)


def _pay_everything(db_session, kind, balance):
    poster = PaymentPoster(db_session)
    if kind == BalanceKind.TUITION:
        poster.post_payment(kind, balance.id, PaymentTarget.BOOK, balance.book_fee)
    for number in range(1, balance.TERM_COUNT + 1):
        amount = getattr(balance, f"term{number}_amount")
        poster.post_payment(kind, balance.id, PaymentTarget(f"term_{number}"), amount)


class TestCheckEnrollment:

    def test_fully_paid_student_is_promotable(self, db_session, checker, tuition_balance):
        _pay_everything(db_session, BalanceKind.TUITION, tuition_balance)

        result = checker.check_enrollment(BRANCH_ID, tuition_balance.enrollment_id, PERIOD_ID)

        assert result.is_promotable
        assert result.total_pending_amount == Decimal("0.00")
        assert result.pending_fee_types == ""
        assert result.blocking_reasons == []

    def test_outstanding_tuition_and_books_block(self, checker, tuition_balance):
        result = checker.check_enrollment(BRANCH_ID, tuition_balance.enrollment_id, PERIOD_ID)

        assert not result.is_promotable
        assert result.tuition_pending == Decimal("9000.00")
        assert result.book_pending == Decimal("1500.00")
        assert result.total_pending_amount == Decimal("10500.00")
        assert result.pending_fee_types == "TUITION,BOOK"

    def test_transport_dues_counted(self, db_session, checker, enroll, fee_structure, transport_fee, initializer, balance_repo):
        enrollment = enroll(1, transport_enabled=True, route_id=ROUTE_ID, slab_id=SLAB_ID)[0]
        initializer.initialize_enrollment(BRANCH_ID, enrollment.id, PERIOD_ID, BalanceKind.TUITION)
        initializer.initialize_enrollment(BRANCH_ID, enrollment.id, PERIOD_ID, BalanceKind.TRANSPORT)
        tuition = balance_repo.get_by_enrollment(BalanceKind.TUITION, enrollment.id, PERIOD_ID)
        _pay_everything(db_session, BalanceKind.TUITION, tuition)

        result = checker.check_enrollment(BRANCH_ID, enrollment.id, PERIOD_ID)

        assert not result.is_promotable
        assert result.transport_pending == Decimal("6000.00")
        assert result.total_pending_amount == Decimal("6000.00")
        assert result.pending_fee_types == "TRANSPORT"

    def test_waiving_fee_requirement_still_reports_dues(self, checker, tuition_balance):
        result = checker.check_enrollment(
            BRANCH_ID, tuition_balance.enrollment_id, PERIOD_ID, require_fees_paid=False
        )

        assert result.is_promotable
        assert result.total_pending_amount == Decimal("10500.00")

    def test_missing_balance_blocks(self, checker, enroll):
        enrollment = enroll(1)[0]

        result = checker.check_enrollment(BRANCH_ID, enrollment.id, PERIOD_ID)

        assert not result.is_promotable
        assert "Tuition balance has not been initialized" in result.blocking_reasons

    def test_missing_transport_balance_blocks(self, db_session, checker, enroll, fee_structure, initializer, balance_repo):
        enrollment = enroll(1, transport_enabled=True, route_id=ROUTE_ID, slab_id=SLAB_ID)[0]
        initializer.initialize_enrollment(BRANCH_ID, enrollment.id, PERIOD_ID, BalanceKind.TUITION)
        _pay_everything(
            db_session, BalanceKind.TUITION,
            balance_repo.get_by_enrollment(BalanceKind.TUITION, enrollment.id, PERIOD_ID),
        )

        result = checker.check_enrollment(BRANCH_ID, enrollment.id, PERIOD_ID)

        assert not result.is_promotable
        assert result.blocking_reasons == ["Transport balance has not been initialized"]

    def test_inconsistent_record_blocks_even_when_waived(self, db_session, checker, tuition_balance):
        db_session.execute(
            update(TuitionBalance)
            .where(TuitionBalance.id == tuition_balance.id)
            .values(term1_paid=Decimal("5000.00"))
        )
        db_session.commit()

        result = checker.check_enrollment(
            BRANCH_ID, tuition_balance.enrollment_id, PERIOD_ID, require_fees_paid=False
        )

        assert not result.is_promotable
        assert len(result.blocking_reasons) == 1
        assert "inconsistent" in result.blocking_reasons[0]

    def test_unknown_enrollment(self, checker):
        with pytest.raises(EnrollmentNotFoundError):
            checker.check_enrollment(BRANCH_ID, 4040, PERIOD_ID)

    def test_enrollment_from_another_period(self, checker, enroll):
        enrollment = enroll(1, period_id=PERIOD_ID - 1)[0]
        with pytest.raises(PromotionValidationError):
            checker.check_enrollment(BRANCH_ID, enrollment.id, PERIOD_ID, require_fees_paid=False)

    def test_inactive_enrollment(self, checker, enroll):
        enrollment = enroll(1, is_active=False)[0]
        with pytest.raises(PromotionValidationError):
            checker.check_enrollment(BRANCH_ID, enrollment.id, PERIOD_ID)


class TestCheckClass:

    def test_results_per_active_enrollment(self, db_session, checker, enroll, fee_structure, initializer, balance_repo):
        enrollments = enroll(3)
        enroll(1, is_active=False)
        initializer.initialize_tuition_balances(BRANCH_ID, CLASS_ID, PERIOD_ID)
        _pay_everything(
            db_session, BalanceKind.TUITION,
            balance_repo.get_by_enrollment(BalanceKind.TUITION, enrollments[1].id, PERIOD_ID),
        )

        results = checker.check_class(BRANCH_ID, CLASS_ID, PERIOD_ID)

        assert [r.enrollment_id for r in results] == [e.id for e in enrollments]
        assert [r.is_promotable for r in results] == [False, True, False]

    def test_empty_class(self, checker):
        assert checker.check_class(BRANCH_ID, CLASS_ID, PERIOD_ID) == []
