# fee_ledger/tests/test_ledger_engine.py

from decimal import Decimal

import pytest

from fee_ledger.ledger.engine import (
    PaymentStatus,
    apply_payment,
    build_schedule,
    check_installments,
    derive_installment,
    derive_status,
    overall_balance,
    split_fee,
    to_money,
)
from fee_ledger.ledger.exceptions import InvariantViolationError

TUITION_SPLIT = (Decimal("33"), Decimal("33"), Decimal("34"))
TRANSPORT_SPLIT = (Decimal("50"), Decimal("50"))


class TestSplitFee:
    """Installment amounts always add up to the net fee"""

    def test_tuition_split_33_33_34(self):
        assert split_fee(Decimal("9000"), 3, TUITION_SPLIT) == [
            Decimal("2970.00"), Decimal("2970.00"), Decimal("3060.00")
        ]

    def test_transport_split_halves(self):
        assert split_fee(Decimal("6000"), 2, TRANSPORT_SPLIT) == [Decimal("3000.00"), Decimal("3000.00")]

    @pytest.mark.parametrize("total", ["1000.01", "0", "7", "12345.67", "0.01", "99999.99"])
    def test_last_installment_absorbs_remainder(self, total):
        amounts = split_fee(Decimal(total), 3, TUITION_SPLIT)
        assert sum(amounts) == Decimal(total)
        assert all(a >= 0 for a in amounts)

    def test_leading_installments_are_floored(self):
        assert split_fee(Decimal("1000.01"), 3, TUITION_SPLIT) == [
            Decimal("330.00"), Decimal("330.00"), Decimal("340.01")
        ]

    def test_equal_split_without_weights(self):
        assert split_fee(Decimal("100"), 3) == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]

    def test_weight_count_must_match(self):
        with pytest.raises(ValueError):
            split_fee(Decimal("100"), 3, TRANSPORT_SPLIT)

    def test_negative_total_rejected(self):
        with pytest.raises(ValueError):
            split_fee(Decimal("-1"), 2)


class TestStatusDerivation:

    @pytest.mark.parametrize(
        "amount,paid,expected",
        [
            ("100", "0", PaymentStatus.PENDING),
            ("100", "0.01", PaymentStatus.PARTIAL),
            ("100", "99.99", PaymentStatus.PARTIAL),
            ("100", "100", PaymentStatus.PAID),
            ("0", "0", PaymentStatus.PAID),
        ],
    )
    def test_derive_status(self, amount, paid, expected):
        assert derive_status(Decimal(amount), Decimal(paid)) == expected

    def test_installment_balance_never_negative(self):
        installment = derive_installment(Decimal("100"), Decimal("150"))
        assert installment.balance == Decimal("0.00")
        assert installment.status == PaymentStatus.PAID

    def test_to_money_rounds_half_up(self):
        assert to_money("2.005") == Decimal("2.01")
        assert to_money(10) == Decimal("10.00")

    def test_to_money_requires_value(self):
        with pytest.raises(ValueError):
            to_money(None)


class TestPaymentSequence:
    """A 9000 tuition fee paid in two parts on term 1"""

    def test_partial_then_full_payment(self):
        schedule = build_schedule(Decimal("9000"), Decimal("0"), TUITION_SPLIT)
        term1, term2, term3 = schedule.installments
        assert schedule.overall_balance_fee == Decimal("9000.00")

        term1 = apply_payment(term1, Decimal("1000"))
        assert term1.status == PaymentStatus.PARTIAL
        assert term1.balance == Decimal("1970.00")
        assert overall_balance((term1, term2, term3)) == Decimal("8000.00")

        term1 = apply_payment(term1, Decimal("1970"))
        assert term1.status == PaymentStatus.PAID
        assert term1.balance == Decimal("0.00")
        assert overall_balance((term1, term2, term3)) == Decimal("6030.00")

    def test_payment_must_be_positive(self):
        installment = derive_installment(Decimal("100"))
        with pytest.raises(ValueError):
            apply_payment(installment, Decimal("0"))


class TestBuildSchedule:

    def test_concession_reduces_total(self):
        schedule = build_schedule(Decimal("9000"), Decimal("900"), TUITION_SPLIT)
        assert schedule.total_fee == Decimal("8100.00")
        assert [i.amount for i in schedule.installments] == [
            Decimal("2673.00"), Decimal("2673.00"), Decimal("2754.00")
        ]

    def test_full_concession_leaves_nothing_owed(self):
        schedule = build_schedule(Decimal("9000"), Decimal("9000"), TUITION_SPLIT)
        assert schedule.total_fee == Decimal("0.00")
        assert schedule.overall_balance_fee == Decimal("0.00")
        assert all(i.status == PaymentStatus.PAID for i in schedule.installments)

    def test_concession_above_fee_rejected(self):
        with pytest.raises(ValueError, match="exceeds actual fee"):
            build_schedule(Decimal("9000"), Decimal("9000.01"), TUITION_SPLIT)

    def test_negative_concession_rejected(self):
        with pytest.raises(ValueError):
            build_schedule(Decimal("9000"), Decimal("-1"), TUITION_SPLIT)

    def test_paid_amounts_carried_over(self):
        schedule = build_schedule(
            Decimal("6000"), Decimal("0"), TRANSPORT_SPLIT, paid=[Decimal("3000"), Decimal("0")]
        )
        assert schedule.installments[0].status == PaymentStatus.PAID
        assert schedule.overall_balance_fee == Decimal("3000.00")

    def test_overpaid_schedule_is_an_invariant_violation(self):
        with pytest.raises(InvariantViolationError):
            build_schedule(Decimal("6000"), Decimal("0"), TRANSPORT_SPLIT, paid=[Decimal("3000.01"), Decimal("0")])


class TestCheckInstallments:

    def test_consistent_installments(self):
        installments = [derive_installment(a) for a in split_fee(Decimal("9000"), 3, TUITION_SPLIT)]
        assert check_installments(Decimal("9000"), installments) == []

    def test_sum_mismatch_reported(self):
        installments = [derive_installment(Decimal("100")), derive_installment(Decimal("100"))]
        problems = check_installments(Decimal("250"), installments)
        assert len(problems) == 1
        assert "expected 250.00" in problems[0]

    def test_within_tolerance_accepted(self):
        installments = [derive_installment(Decimal("100")), derive_installment(Decimal("100.01"))]
        assert check_installments(Decimal("200"), installments) == []
