# fee_ledger/ledger/engine.py

"""
Fee ledger computation.

Everything here is a pure function over money values. Both balance
initialization and payment posting derive installment balances, statuses and
the overall balance through these functions, so a freshly created record and
a record after any number of payments follow one set of rules.
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from enum import Enum as PyEnum
from typing import List, Optional, Sequence, Tuple

from fee_ledger.ledger.exceptions import InvariantViolationError

MONEY_QUANTUM = Decimal("0.01")
ZERO = Decimal("0.00")
DEFAULT_TOLERANCE = Decimal("0.01")


class PaymentStatus(str, PyEnum):
    """Derived payment state of an installment or of the book fee."""

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


@dataclass(frozen=True)
class Installment:
    amount: Decimal
    paid: Decimal
    balance: Decimal
    status: PaymentStatus


@dataclass(frozen=True)
class FeeSchedule:
    """Net fee of one balance record split into its installments."""

    actual_fee: Decimal
    concession_amount: Decimal
    total_fee: Decimal
    installments: Tuple[Installment, ...]

    @property
    def overall_balance_fee(self) -> Decimal:
        return overall_balance(self.installments)


def to_money(value) -> Decimal:
    """Convert ``value`` to a Decimal rounded half-up to the cent."""
    if value is None:
        raise ValueError("Money value is required")
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def _floor_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_DOWN)


def split_fee(total_fee, count: int, weights: Optional[Sequence[Decimal]] = None) -> List[Decimal]:
    """
    Split ``total_fee`` into ``count`` installment amounts.

    The first ``count - 1`` installments get their weighted share (or an equal
    share when no weights are given) floored to the cent. The last installment
    takes the remainder, so the amounts always add up to ``total_fee`` exactly.
    """
    total_fee = to_money(total_fee)
    if count < 1:
        raise ValueError("Installment count must be at least 1")
    if total_fee < 0:
        raise ValueError("Total fee cannot be negative")
    if weights is not None and len(weights) != count:
        raise ValueError(f"Expected {count} split weights, got {len(weights)}")

    amounts: List[Decimal] = []
    if weights is None:
        share = _floor_money(total_fee / count)
        amounts = [share] * (count - 1)
    else:
        weight_total = sum(Decimal(w) for w in weights)
        for weight in list(weights)[:-1]:
            amounts.append(_floor_money(total_fee * Decimal(weight) / weight_total))

    amounts.append(total_fee - sum(amounts, ZERO))
    return amounts


def derive_status(amount, paid) -> PaymentStatus:
    """
    PAID once ``paid`` covers ``amount``, PARTIAL while something is paid,
    PENDING otherwise. A zero amount is PAID since nothing is owed.
    """
    amount = to_money(amount)
    paid = to_money(paid)
    if paid >= amount:
        return PaymentStatus.PAID
    if paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def derive_installment(amount, paid=ZERO) -> Installment:
    amount = to_money(amount)
    paid = to_money(paid)
    return Installment(
        amount=amount,
        paid=paid,
        balance=max(ZERO, amount - paid),
        status=derive_status(amount, paid),
    )


def overall_balance(installments: Sequence[Installment]) -> Decimal:
    return max(ZERO, sum((i.balance for i in installments), ZERO))


def apply_payment(installment: Installment, amount) -> Installment:
    """Return ``installment`` with ``amount`` added to what has been paid."""
    amount = to_money(amount)
    if amount <= 0:
        raise ValueError("Payment amount must be positive")
    return derive_installment(installment.amount, installment.paid + amount)


def check_installments(
    total_fee, installments: Sequence[Installment], tolerance: Decimal = DEFAULT_TOLERANCE
) -> List[str]:
    """Describe every money invariant the installments break (empty when consistent)."""
    problems = []
    total_fee = to_money(total_fee)
    installment_sum = sum((i.amount for i in installments), ZERO)
    if total_fee < 0:
        problems.append(f"total fee {total_fee} is negative")
    if abs(installment_sum - total_fee) > tolerance:
        problems.append(f"installments add up to {installment_sum}, expected {total_fee}")
    for number, installment in enumerate(installments, start=1):
        if installment.paid < 0:
            problems.append(f"term {number} paid {installment.paid} is negative")
        if installment.paid > installment.amount:
            problems.append(
                f"term {number} paid {installment.paid} exceeds amount {installment.amount}"
            )
    return problems


def build_schedule(
    actual_fee,
    concession_amount,
    weights: Sequence[Decimal],
    paid: Optional[Sequence] = None,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> FeeSchedule:
    """
    Compute the net fee and its installments for a balance record.

    ``paid`` defaults to nothing paid on every installment.

    Raises:
        ValueError: if the fee or concession are out of range.
        InvariantViolationError: if the resulting schedule does not balance.
    """
    actual_fee = to_money(actual_fee)
    concession_amount = to_money(concession_amount)
    if actual_fee < 0:
        raise ValueError("Actual fee cannot be negative")
    if concession_amount < 0:
        raise ValueError("Concession amount cannot be negative")
    if concession_amount > actual_fee:
        raise ValueError(
            f"Concession amount {concession_amount} exceeds actual fee {actual_fee}"
        )

    total_fee = actual_fee - concession_amount
    amounts = split_fee(total_fee, len(weights), weights)
    paid = list(paid) if paid is not None else [ZERO] * len(amounts)
    if len(paid) != len(amounts):
        raise ValueError(f"Expected {len(amounts)} paid amounts, got {len(paid)}")

    installments = tuple(derive_installment(a, p) for a, p in zip(amounts, paid))
    problems = check_installments(total_fee, installments, tolerance)
    if problems:
        raise InvariantViolationError(
            "; ".join(problems),
            total_fee=total_fee,
            installment_sum=sum((i.amount for i in installments), ZERO),
        )

    return FeeSchedule(
        actual_fee=actual_fee,
        concession_amount=concession_amount,
        total_fee=total_fee,
        installments=installments,
    )

