# fee_ledger/fee_structures/repository.py

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from fee_ledger.fee_structures.models import FeeStructure, TransportFee
from fee_ledger.utils.logger import get_logger

logger = get_logger(__name__)


class FeeStructureRepository:
    """
    Data Access Layer for the Fee Structure Registry.
    The caller is responsible for committing the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_structure(self, branch_id: int, class_id: int, period_id: int) -> Optional[FeeStructure]:
        stmt = select(FeeStructure).where(
            FeeStructure.branch_id == branch_id,
            FeeStructure.class_id == class_id,
            FeeStructure.period_id == period_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_structures(self, branch_id: int, period_id: Optional[int] = None) -> List[FeeStructure]:
        stmt = select(FeeStructure).where(FeeStructure.branch_id == branch_id)
        if period_id is not None:
            stmt = stmt.where(FeeStructure.period_id == period_id)
        stmt = stmt.order_by(FeeStructure.period_id, FeeStructure.class_id)
        return list(self.db.execute(stmt).scalars().all())

    def get_transport_fee(
        self, branch_id: int, period_id: int, route_id: int, slab_id: int
    ) -> Optional[TransportFee]:
        stmt = select(TransportFee).where(
            TransportFee.branch_id == branch_id,
            TransportFee.period_id == period_id,
            TransportFee.route_id == route_id,
            TransportFee.slab_id == slab_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_transport_fees(self, branch_id: int, period_id: Optional[int] = None) -> List[TransportFee]:
        stmt = select(TransportFee).where(TransportFee.branch_id == branch_id)
        if period_id is not None:
            stmt = stmt.where(TransportFee.period_id == period_id)
        stmt = stmt.order_by(TransportFee.period_id, TransportFee.route_id, TransportFee.slab_id)
        return list(self.db.execute(stmt).scalars().all())

    def add(self, record):
        """Adds a FeeStructure or TransportFee to the session and flushes it."""
        self.db.add(record)
        self.db.flush()
        self.db.refresh(record)
        logger.info("Created fee registry entry", table=record.__tablename__, record_id=record.id)
        return record

    def update(self, record):
        self.db.flush()
        self.db.refresh(record)
        logger.info("Updated fee registry entry", table=record.__tablename__, record_id=record.id)
        return record
