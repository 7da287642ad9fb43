# fee_ledger/balances/payments.py

from decimal import Decimal, InvalidOperation
from typing import List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fee_ledger.balances.exceptions import (
    BalanceConflictError,
    BalanceError,
    BalanceNotFoundError,
    BalanceValidationError,
    OverpaymentError,
    PaymentOrderError,
)
from fee_ledger.balances.models import BALANCE_MODELS, BalanceKind, PaymentTarget
from fee_ledger.balances.repository import BalanceRepository
from fee_ledger.core.config import settings
from fee_ledger.ledger.engine import MONEY_QUANTUM, ZERO, apply_payment, check_installments
from fee_ledger.ledger.exceptions import InvariantViolationError
from fee_ledger.utils.logger import get_logger

logger = get_logger(__name__)


def _validate_amount(amount) -> Decimal:
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, TypeError, ValueError) as e:
        raise BalanceValidationError(f"Invalid payment amount '{amount}'") from e
    if not value.is_finite():
        raise BalanceValidationError(f"Invalid payment amount '{amount}'")
    if value <= 0:
        raise BalanceValidationError("Payment amount must be greater than zero")
    if value != value.quantize(MONEY_QUANTUM):
        raise BalanceValidationError("Payment amount cannot have more than two decimal places")
    return value.quantize(MONEY_QUANTUM)


def _validate_target(kind: BalanceKind, target: Union[PaymentTarget, str]) -> PaymentTarget:
    try:
        target = PaymentTarget(target)
    except ValueError as e:
        raise BalanceValidationError(f"Unknown payment target '{target}'") from e

    model = BALANCE_MODELS[kind]
    if target is PaymentTarget.BOOK:
        if kind != BalanceKind.TUITION:
            raise BalanceValidationError("Book fee payments only apply to tuition balances")
    elif target.term_number > model.TERM_COUNT:
        raise BalanceValidationError(
            f"{kind.value.capitalize()} balances have {model.TERM_COUNT} terms; '{target.value}' is not one of them"
        )
    return target


def _slot_position(target: PaymentTarget) -> int:
    return 0 if target is PaymentTarget.BOOK else target.term_number


class PaymentPoster:
    """
    Records payments against a single balance record.

    The record is read under a row lock and written under its version
    counter, so two postings to the same record are serialized and a
    concurrent change surfaces as BalanceConflictError instead of a lost update.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = BalanceRepository(db)

    def post_payment(
        self,
        kind: BalanceKind,
        balance_id: int,
        target: Union[PaymentTarget, str],
        amount,
        branch_id: Optional[int] = None,
        expected_version: Optional[int] = None,
    ):
        """
        Adds ``amount`` to what has been paid on ``target`` and returns the
        updated record.

        Raises:
            BalanceValidationError: If the amount or target is invalid
            PaymentOrderError: If an earlier term (or the book fee) must be paid first
            BalanceNotFoundError: If the record does not exist in the branch
            BalanceConflictError: If the record changed since ``expected_version``
            OverpaymentError: If the amount is larger than the remaining balance
        """
        return self.post_payments(
            kind, balance_id, [(target, amount)], branch_id=branch_id, expected_version=expected_version
        )

    def post_payments(
        self,
        kind: BalanceKind,
        balance_id: int,
        items: Sequence[Tuple[Union[PaymentTarget, str], object]],
        branch_id: Optional[int] = None,
        expected_version: Optional[int] = None,
    ):
        """
        Applies several payments to one record in a single transaction, e.g.
        the book fee, term 1 in full and part of term 2.

        Items are applied book first, then in term order, so a term settled
        earlier in the same call opens the next one. If any item is rejected
        nothing is saved. The record's version moves by one.

        Raises:
            Same as ``post_payment``.
        """
        kind = BalanceKind(kind)
        if not items:
            raise BalanceValidationError("At least one payment item is required")

        validated: List[Tuple[PaymentTarget, Decimal]] = []
        for target, amount in items:
            amount = _validate_amount(amount)
            validated.append((_validate_target(kind, target), amount))
        targets = [target for target, _ in validated]
        duplicates = sorted({t.value for t in targets if targets.count(t) > 1})
        if duplicates:
            raise BalanceValidationError(f"Payment targets appear more than once: {', '.join(duplicates)}")
        validated.sort(key=lambda item: _slot_position(item[0]))

        try:
            balance = self.repo.get_by_id(kind, balance_id, branch_id=branch_id, for_update=True)
            if not balance:
                raise BalanceNotFoundError(balance_id=balance_id, kind=kind.value)

            if expected_version is not None and balance.version_id != expected_version:
                raise BalanceConflictError(
                    balance_id,
                    f"Balance '{balance_id}' is at version {balance.version_id}, "
                    f"expected {expected_version}. Reload and retry.",
                )

            for target, amount in validated:
                self._apply(kind, balance, target, amount)

            problems = check_installments(balance.total_fee, balance.installments(), settings.money_tolerance)
            if problems:
                raise InvariantViolationError("; ".join(problems), total_fee=balance.total_fee)

            balance = self.repo.update(balance)
            self.db.commit()

        except (BalanceError, InvariantViolationError):
            # Releases the row lock and discards items already applied in memory
            self.db.rollback()
            raise
        except StaleDataError as e:
            self.db.rollback()
            logger.warning("Concurrent update on balance", kind=kind.value, balance_id=balance_id)
            raise BalanceConflictError(balance_id) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to post payment.", balance_id=balance_id, error=str(e), exc_info=True)
            raise BalanceError(f"Failed to post payment: {str(e)}") from e

        logger.info(
            "Posted payment",
            kind=kind.value,
            balance_id=balance.id,
            targets=[target.value for target, _ in validated],
            amount=float(sum((amount for _, amount in validated), Decimal("0"))),
            overall_balance_fee=float(balance.overall_balance_fee),
            version_id=balance.version_id,
        )
        return balance

    def _apply(self, kind: BalanceKind, balance, target: PaymentTarget, amount: Decimal) -> None:
        if target is PaymentTarget.BOOK:
            current = balance.book_installment()
        else:
            self._check_order(kind, balance, target.term_number)
            current = balance.term_installment(target.term_number)

        if amount > current.balance:
            raise OverpaymentError(balance.id, target.value, amount, current.balance)

        updated = apply_payment(current, amount)
        if target is PaymentTarget.BOOK:
            balance.store_book(updated)
        else:
            balance.store_installment(target.term_number, updated)

    def _check_order(self, kind: BalanceKind, balance, number: int) -> None:
        if settings.require_book_fee_first:
            book_due = self._book_due(kind, balance)
            if book_due > 0:
                raise PaymentOrderError(
                    f"Book fee balance of {book_due} must be paid before {kind.value} term {number}."
                )

        if settings.enforce_term_order and number > 1:
            previous = balance.term_installment(number - 1)
            current = balance.term_installment(number)
            # A term already partly paid can always be continued
            if previous.balance > 0 and current.paid == 0:
                raise PaymentOrderError(
                    f"Term {number - 1} has {previous.balance} outstanding; "
                    f"it must be paid in full before term {number}."
                )

    def _book_due(self, kind: BalanceKind, balance) -> Decimal:
        if kind == BalanceKind.TUITION:
            return balance.book_installment().balance
        tuition = self.repo.get_by_enrollment(
            BalanceKind.TUITION, balance.enrollment_id, balance.period_id, balance.branch_id
        )
        return tuition.book_installment().balance if tuition else ZERO
