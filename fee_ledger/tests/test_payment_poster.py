# fee_ledger/tests/test_payment_poster.py

from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.orm.exc import StaleDataError

from fee_ledger.balances.exceptions import (
    BalanceConflictError,
    BalanceNotFoundError,
    BalanceValidationError,
    OverpaymentError,
    PaymentOrderError,
)
from fee_ledger.balances.models import BalanceKind, PaymentTarget
from fee_ledger.balances.payments import PaymentPoster
from fee_ledger.balances.repository import BalanceRepository
from fee_ledger.core.config import settings
from fee_ledger.ledger.engine import PaymentStatus, apply_payment
from fee_ledger.tests.conftest import BRANCH_ID, OTHER_BRANCH_ID, PERIOD_ID


@pytest.fixture
def poster(db_session):
    return PaymentPoster(db_session)


class TestPostPayment:
    """Payments against a 9000 tuition balance split 2970/2970/3060"""

    def test_partial_then_full_term_payment(self, poster, tuition_balance):
        balance = poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("1000"))

        assert balance.term1_paid == Decimal("1000.00")
        assert balance.term1_balance == Decimal("1970.00")
        assert balance.term1_status == PaymentStatus.PARTIAL
        assert balance.overall_balance_fee == Decimal("8000.00")
        assert balance.version_id == 2

        balance = poster.post_payment(BalanceKind.TUITION, tuition_balance.id, "term_1", Decimal("1970"))

        assert balance.term1_balance == Decimal("0.00")
        assert balance.term1_status == PaymentStatus.PAID
        assert balance.overall_balance_fee == Decimal("6030.00")
        assert balance.term2_status == PaymentStatus.PENDING
        assert balance.version_id == 3

        with pytest.raises(OverpaymentError):
            poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("3100"))

    def test_overall_balance_matches_term_balances(self, poster, tuition_balance):
        balance = poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("1234.56"))

        term_balances = balance.term1_balance + balance.term2_balance + balance.term3_balance
        assert balance.overall_balance_fee == term_balances

    def test_book_payment_leaves_term_balance(self, poster, tuition_balance):
        balance = poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.BOOK, Decimal("1500"))

        assert balance.book_paid == Decimal("1500.00")
        assert balance.book_paid_status == PaymentStatus.PAID
        assert balance.overall_balance_fee == Decimal("9000.00")

    def test_transport_payment(self, poster, transport_balance):
        balance = poster.post_payment(BalanceKind.TRANSPORT, transport_balance.id, PaymentTarget.TERM_1, Decimal("3000"))

        assert balance.term1_status == PaymentStatus.PAID
        assert balance.overall_balance_fee == Decimal("3000.00")

    def test_branch_scoped_lookup(self, poster, tuition_balance):
        balance = poster.post_payment(
            BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("10"), branch_id=BRANCH_ID
        )
        assert balance.term1_paid == Decimal("10.00")

        with pytest.raises(BalanceNotFoundError):
            poster.post_payment(
                BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("10"), branch_id=OTHER_BRANCH_ID
            )


class TestOverpayment:

    def test_overpayment_rejected_and_record_untouched(self, poster, balance_repo, tuition_balance):
        with pytest.raises(OverpaymentError) as exc_info:
            poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("2970.01"))

        assert exc_info.value.remaining == Decimal("2970.00")
        balance = balance_repo.get_by_id(BalanceKind.TUITION, tuition_balance.id)
        assert balance.term1_paid == Decimal("0.00")
        assert balance.term1_status == PaymentStatus.PENDING
        assert balance.overall_balance_fee == Decimal("9000.00")
        assert balance.version_id == 1

    def test_paid_term_accepts_nothing_more(self, poster, tuition_balance):
        poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("2970"))
        with pytest.raises(OverpaymentError):
            poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("0.01"))

    def test_book_overpayment(self, poster, tuition_balance):
        with pytest.raises(OverpaymentError):
            poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.BOOK, Decimal("1500.01"))


class TestValidation:

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("10.001"), "abc"])
    def test_invalid_amount(self, poster, tuition_balance, amount):
        with pytest.raises(BalanceValidationError):
            poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, amount)

    def test_trailing_zeros_are_fine(self, poster, tuition_balance):
        balance = poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("10.500"))
        assert balance.term1_paid == Decimal("10.50")

    def test_unknown_target(self, poster, tuition_balance):
        with pytest.raises(BalanceValidationError):
            poster.post_payment(BalanceKind.TUITION, tuition_balance.id, "term_9", Decimal("10"))

    @pytest.mark.parametrize("target", [PaymentTarget.BOOK, PaymentTarget.TERM_3])
    def test_target_not_on_transport(self, poster, transport_balance, target):
        with pytest.raises(BalanceValidationError):
            poster.post_payment(BalanceKind.TRANSPORT, transport_balance.id, target, Decimal("10"))

    def test_missing_balance(self, poster):
        with pytest.raises(BalanceNotFoundError):
            poster.post_payment(BalanceKind.TUITION, 4040, PaymentTarget.TERM_1, Decimal("10"))


class TestPaymentOrder:

    def test_later_term_waits_for_earlier_term(self, poster, balance_repo, tuition_balance):
        with pytest.raises(PaymentOrderError):
            poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_2, Decimal("100"))

        poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("2000"))
        with pytest.raises(PaymentOrderError):
            poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_2, Decimal("100"))

        balance = balance_repo.get_by_id(BalanceKind.TUITION, tuition_balance.id)
        assert balance.term2_paid == Decimal("0.00")
        assert balance.version_id == 2

    def test_next_term_opens_once_previous_is_paid(self, poster, tuition_balance):
        poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("2970"))
        balance = poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_2, Decimal("100"))

        assert balance.term2_status == PaymentStatus.PARTIAL
        with pytest.raises(PaymentOrderError):
            poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_3, Decimal("100"))

    def test_partly_paid_term_can_be_continued(self, monkeypatch, poster, tuition_balance):
        monkeypatch.setattr(settings, "enforce_term_order", False)
        poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_2, Decimal("500"))
        monkeypatch.setattr(settings, "enforce_term_order", True)

        balance = poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_2, Decimal("500"))

        assert balance.term2_paid == Decimal("1000.00")
        assert balance.term1_paid == Decimal("0.00")
        with pytest.raises(PaymentOrderError):
            poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_3, Decimal("10"))

    def test_order_can_be_switched_off(self, monkeypatch, poster, tuition_balance):
        monkeypatch.setattr(settings, "enforce_term_order", False)
        balance = poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_3, Decimal("3060"))
        assert balance.term3_status == PaymentStatus.PAID

    def test_book_fee_first(self, monkeypatch, poster, tuition_balance):
        monkeypatch.setattr(settings, "require_book_fee_first", True)

        with pytest.raises(PaymentOrderError):
            poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("100"))

        poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.BOOK, Decimal("1500"))
        balance = poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("100"))
        assert balance.term1_paid == Decimal("100.00")

    def test_book_fee_first_for_transport(self, monkeypatch, poster, initializer, transport_balance):
        monkeypatch.setattr(settings, "require_book_fee_first", True)
        result = initializer.initialize_enrollment(
            BRANCH_ID, transport_balance.enrollment_id, PERIOD_ID, BalanceKind.TUITION
        )
        tuition_id = result.created_balance_ids[0]

        with pytest.raises(PaymentOrderError):
            poster.post_payment(BalanceKind.TRANSPORT, transport_balance.id, PaymentTarget.TERM_1, Decimal("100"))

        poster.post_payment(BalanceKind.TUITION, tuition_id, PaymentTarget.BOOK, Decimal("1500"))
        balance = poster.post_payment(BalanceKind.TRANSPORT, transport_balance.id, PaymentTarget.TERM_1, Decimal("100"))
        assert balance.term1_paid == Decimal("100.00")

    def test_transport_without_tuition_record(self, monkeypatch, poster, transport_balance):
        monkeypatch.setattr(settings, "require_book_fee_first", True)
        balance = poster.post_payment(BalanceKind.TRANSPORT, transport_balance.id, PaymentTarget.TERM_1, Decimal("100"))
        assert balance.term1_paid == Decimal("100.00")


class TestPostPayments:
    """Several items paid against one record in a single transaction"""

    def test_book_and_consecutive_terms(self, poster, tuition_balance):
        balance = poster.post_payments(
            BalanceKind.TUITION,
            tuition_balance.id,
            [("term_2", Decimal("1000")), (PaymentTarget.BOOK, Decimal("1500")), ("term_1", Decimal("2970"))],
        )

        assert balance.book_paid_status == PaymentStatus.PAID
        assert balance.term1_status == PaymentStatus.PAID
        assert balance.term2_status == PaymentStatus.PARTIAL
        assert balance.term2_balance == Decimal("1970.00")
        assert balance.overall_balance_fee == Decimal("5030.00")
        assert balance.version_id == 2

    def test_one_overpaid_item_saves_nothing(self, poster, balance_repo, tuition_balance):
        with pytest.raises(OverpaymentError):
            poster.post_payments(
                BalanceKind.TUITION,
                tuition_balance.id,
                [("book", Decimal("1500")), ("term_1", Decimal("2970")), ("term_2", Decimal("2970.01"))],
            )

        balance = balance_repo.get_by_id(BalanceKind.TUITION, tuition_balance.id)
        assert balance.book_paid == Decimal("0.00")
        assert balance.term1_paid == Decimal("0.00")
        assert balance.term2_paid == Decimal("0.00")
        assert balance.overall_balance_fee == Decimal("9000.00")
        assert balance.version_id == 1

    def test_partial_term_does_not_open_the_next(self, poster, balance_repo, tuition_balance):
        with pytest.raises(PaymentOrderError):
            poster.post_payments(
                BalanceKind.TUITION,
                tuition_balance.id,
                [("term_1", Decimal("100")), ("term_2", Decimal("100"))],
            )

        balance = balance_repo.get_by_id(BalanceKind.TUITION, tuition_balance.id)
        assert balance.term1_paid == Decimal("0.00")

    def test_duplicate_target(self, poster, tuition_balance):
        with pytest.raises(BalanceValidationError):
            poster.post_payments(
                BalanceKind.TUITION,
                tuition_balance.id,
                [("term_1", Decimal("100")), ("term_1", Decimal("100"))],
            )

    def test_no_items(self, poster, tuition_balance):
        with pytest.raises(BalanceValidationError):
            poster.post_payments(BalanceKind.TUITION, tuition_balance.id, [])


class TestConflicts:

    def test_stale_expected_version(self, poster, balance_repo, tuition_balance):
        poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("100"))

        with pytest.raises(BalanceConflictError):
            poster.post_payment(
                BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("100"), expected_version=1
            )

        balance = balance_repo.get_by_id(BalanceKind.TUITION, tuition_balance.id)
        assert balance.term1_paid == Decimal("100.00")
        assert balance.version_id == 2

    def test_matching_expected_version(self, poster, tuition_balance):
        balance = poster.post_payment(
            BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("100"), expected_version=1
        )
        assert balance.version_id == 2

    def test_stale_flush_maps_to_conflict(self, poster, balance_repo, tuition_balance):
        with patch.object(poster.repo, "update", side_effect=StaleDataError("version mismatch")):
            with pytest.raises(BalanceConflictError):
                poster.post_payment(BalanceKind.TUITION, tuition_balance.id, PaymentTarget.TERM_1, Decimal("100"))

        balance = balance_repo.get_by_id(BalanceKind.TUITION, tuition_balance.id)
        assert balance.term1_paid == Decimal("0.00")
        assert balance.version_id == 1

    def test_second_writer_with_stale_copy_fails(self, db_session, session_factory, poster, balance_repo, tuition_balance):
        balance_id = tuition_balance.id
        # Both sessions use the same connection; end the fixture's read first
        db_session.commit()

        other = session_factory()
        try:
            stale = BalanceRepository(other).get_by_id(BalanceKind.TUITION, balance_id)
            other.commit()
            assert stale.version_id == 1

            poster.post_payment(BalanceKind.TUITION, balance_id, PaymentTarget.TERM_1, Decimal("1000"))

            stale.store_installment(1, apply_payment(stale.term_installment(1), Decimal("500")))
            with pytest.raises(StaleDataError):
                BalanceRepository(other).update(stale)
            other.rollback()
        finally:
            other.close()

        db_session.expire_all()
        balance = balance_repo.get_by_id(BalanceKind.TUITION, balance_id)
        assert balance.term1_paid == Decimal("1000.00")
        assert balance.overall_balance_fee == Decimal("8000.00")
        assert balance.version_id == 2
