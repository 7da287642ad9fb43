# fee_ledger/balances/services.py

from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fee_ledger.balances.exceptions import (
    BalanceConflictError,
    BalanceError,
    BalanceNotFoundError,
    BalanceValidationError,
    ConcessionLockedError,
)
from fee_ledger.balances.models import BalanceKind
from fee_ledger.balances.repository import BalanceRepository
from fee_ledger.core.config import settings
from fee_ledger.ledger.engine import build_schedule, to_money
from fee_ledger.ledger.exceptions import InvariantViolationError
from fee_ledger.utils.logger import get_logger

logger = get_logger(__name__)

SPLIT_WEIGHTS = {
    BalanceKind.TUITION: lambda: settings.tuition_split_weights,
    BalanceKind.TRANSPORT: lambda: settings.transport_split_weights,
}


class BalanceService:
    """
    Read access to balance records and the concession adjustment.
    Payments go through PaymentPoster, creation through BulkInitializer.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = BalanceRepository(db)

    def get_balance(self, branch_id: int, enrollment_id: int, period_id: int) -> dict:
        """
        Returns {"tuition": record or None, "transport": record or None}.

        Raises:
            BalanceNotFoundError: If the enrollment has neither record for the period
        """
        tuition = self.repo.get_by_enrollment(BalanceKind.TUITION, enrollment_id, period_id, branch_id)
        transport = self.repo.get_by_enrollment(BalanceKind.TRANSPORT, enrollment_id, period_id, branch_id)
        if tuition is None and transport is None:
            raise BalanceNotFoundError(enrollment_id=enrollment_id, period_id=period_id)
        return {"tuition": tuition, "transport": transport}

    def get_balance_by_id(self, kind: BalanceKind, balance_id: int, branch_id: Optional[int] = None):
        balance = self.repo.get_by_id(kind, balance_id, branch_id=branch_id)
        if not balance:
            raise BalanceNotFoundError(balance_id=balance_id, kind=kind.value)
        return balance

    def adjust_concession(
        self,
        kind: BalanceKind,
        balance_id: int,
        concession_amount,
        branch_id: Optional[int] = None,
        expected_version: Optional[int] = None,
    ):
        """
        Replaces the concession of a balance record and re-splits the net fee.

        Only allowed while no term has any payment; the book fee is untouched.

        Raises:
            BalanceValidationError: If the concession is negative or above the actual fee
            BalanceNotFoundError: If the record does not exist in the branch
            BalanceConflictError: If the record changed since ``expected_version``
            ConcessionLockedError: If any term already has a payment
        """
        kind = BalanceKind(kind)
        if concession_amount is None:
            raise BalanceValidationError("Concession amount is required")
        concession_amount = to_money(concession_amount)
        if concession_amount < 0:
            raise BalanceValidationError("Concession amount cannot be negative")

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
            if balance.has_payments():
                raise ConcessionLockedError(balance_id)

            try:
                schedule = build_schedule(
                    balance.actual_fee,
                    concession_amount,
                    SPLIT_WEIGHTS[kind](),
                    tolerance=settings.money_tolerance,
                )
            except ValueError as e:
                raise BalanceValidationError(str(e)) from e

            previous = balance.concession_amount
            balance.apply_schedule(schedule)
            balance = self.repo.update(balance)
            self.db.commit()

        except (BalanceError, InvariantViolationError):
            self.db.rollback()
            raise
        except StaleDataError as e:
            self.db.rollback()
            logger.warning("Concurrent update on balance", kind=kind.value, balance_id=balance_id)
            raise BalanceConflictError(balance_id) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to adjust concession.", balance_id=balance_id, error=str(e), exc_info=True)
            raise BalanceError(f"Failed to adjust concession: {str(e)}") from e

        logger.info(
            "Adjusted concession",
            kind=kind.value,
            balance_id=balance.id,
            previous_concession=float(previous),
            concession_amount=float(concession_amount),
            total_fee=float(balance.total_fee),
        )
        return balance
