# fee_ledger/fee_structures/services.py

from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fee_ledger.fee_structures.exceptions import (
    FeeStructureError,
    FeeStructureNotFoundError,
    FeeStructureValidationError,
    TransportFeeNotFoundError,
)
from fee_ledger.fee_structures.models import FeeStructure, TransportFee
from fee_ledger.fee_structures.repository import FeeStructureRepository
from fee_ledger.ledger.engine import to_money
from fee_ledger.utils.logger import get_logger

logger = get_logger(__name__)


class FeeStructureService:
    """
    Service layer for the Fee Structure Registry: class fee structures and the
    transport route/slab catalog.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = FeeStructureRepository(db)

    @staticmethod
    def _validate_amount(name: str, value) -> Decimal:
        if value is None:
            raise FeeStructureValidationError(f"Required field '{name}' is missing")
        amount = to_money(value)
        if amount < 0:
            raise FeeStructureValidationError(f"{name} cannot be negative")
        return amount

    def get_structure(self, branch_id: int, class_id: int, period_id: int) -> FeeStructure:
        """
        Returns the fee structure of a class.

        Raises:
            FeeStructureNotFoundError: If the class has no structure for the period
        """
        structure = self.repo.get_structure(branch_id, class_id, period_id)
        if not structure:
            raise FeeStructureNotFoundError(class_id=class_id, period_id=period_id)
        return structure

    def list_structures(self, branch_id: int, period_id: Optional[int] = None) -> List[FeeStructure]:
        return self.repo.list_structures(branch_id, period_id)

    def upsert_structure(
        self, branch_id: int, class_id: int, period_id: int, book_fee, tuition_fee
    ) -> FeeStructure:
        """
        Creates or replaces the fee structure of a class.
        Existing balance records keep the amounts they were created with.
        """
        book_fee = self._validate_amount("book_fee", book_fee)
        tuition_fee = self._validate_amount("tuition_fee", tuition_fee)

        try:
            structure = self.repo.get_structure(branch_id, class_id, period_id)
            if structure:
                structure.book_fee = book_fee
                structure.tuition_fee = tuition_fee
                structure = self.repo.update(structure)
            else:
                structure = self.repo.add(
                    FeeStructure(
                        branch_id=branch_id,
                        class_id=class_id,
                        period_id=period_id,
                        book_fee=book_fee,
                        tuition_fee=tuition_fee,
                    )
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to save fee structure.", error=str(e), exc_info=True)
            raise FeeStructureError(f"Failed to save fee structure: {str(e)}") from e

        logger.info(
            "Saved fee structure",
            branch_id=branch_id,
            class_id=class_id,
            period_id=period_id,
            book_fee=float(book_fee),
            tuition_fee=float(tuition_fee),
        )
        return structure

    def get_transport_fee(self, branch_id: int, period_id: int, route_id: int, slab_id: int) -> Decimal:
        """
        Returns the transport fee for a route and slab.

        Raises:
            TransportFeeNotFoundError: If the combination is not in the catalog
        """
        fee = self.repo.get_transport_fee(branch_id, period_id, route_id, slab_id)
        if not fee:
            raise TransportFeeNotFoundError(period_id=period_id, route_slabs=[(route_id, slab_id)])
        return to_money(fee.amount)

    def resolve_transport_fees(
        self, branch_id: int, period_id: int, route_slabs: Iterable[Tuple[int, int]]
    ) -> Dict[Tuple[int, int], Decimal]:
        """
        Looks up every (route_id, slab_id) pair at once so that a missing
        catalog entry is reported before any balance is written.
        """
        fees = {}
        missing = []
        for route_id, slab_id in sorted(set(route_slabs)):
            fee = self.repo.get_transport_fee(branch_id, period_id, route_id, slab_id)
            if fee is None:
                missing.append((route_id, slab_id))
            else:
                fees[(route_id, slab_id)] = to_money(fee.amount)
        if missing:
            raise TransportFeeNotFoundError(period_id=period_id, route_slabs=missing)
        return fees

    def list_transport_fees(self, branch_id: int, period_id: Optional[int] = None) -> List[TransportFee]:
        return self.repo.list_transport_fees(branch_id, period_id)

    def upsert_transport_fee(
        self, branch_id: int, period_id: int, route_id: int, slab_id: int, amount
    ) -> TransportFee:
        amount = self._validate_amount("amount", amount)

        try:
            fee = self.repo.get_transport_fee(branch_id, period_id, route_id, slab_id)
            if fee:
                fee.amount = amount
                fee = self.repo.update(fee)
            else:
                fee = self.repo.add(
                    TransportFee(
                        branch_id=branch_id,
                        period_id=period_id,
                        route_id=route_id,
                        slab_id=slab_id,
                        amount=amount,
                    )
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to save transport fee.", error=str(e), exc_info=True)
            raise FeeStructureError(f"Failed to save transport fee: {str(e)}") from e

        logger.info(
            "Saved transport fee",
            branch_id=branch_id,
            period_id=period_id,
            route_id=route_id,
            slab_id=slab_id,
            amount=float(amount),
        )
        return fee
