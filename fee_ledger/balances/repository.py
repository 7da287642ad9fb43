# fee_ledger/balances/repository.py

from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fee_ledger.balances.models import BALANCE_MODELS, BalanceKind
from fee_ledger.utils.logger import get_logger

logger = get_logger(__name__)


def apply_scope(
    stmt,
    model,
    branch_id: int,
    class_id: Optional[int] = None,
    section_id: Optional[int] = None,
    period_id: Optional[int] = None,
):
    """Restricts a balance query to a branch and optionally a class, section and period."""
    stmt = stmt.where(model.branch_id == branch_id)
    if class_id is not None:
        stmt = stmt.where(model.class_id == class_id)
    if section_id is not None:
        stmt = stmt.where(model.section_id == section_id)
    if period_id is not None:
        stmt = stmt.where(model.period_id == period_id)
    return stmt


class BalanceRepository:
    """
    Data Access Layer for tuition and transport balance records.
    Repositories flush; the service that owns the transaction commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, kind: BalanceKind, balance_id: int, branch_id: Optional[int] = None, for_update: bool = False):
        """
        Fetches a single balance record by its ID. Returns None if not found.
        With ``for_update`` the row stays locked until the transaction ends.
        """
        model = BALANCE_MODELS[kind]
        stmt = select(model).where(model.id == balance_id)
        if branch_id is not None:
            stmt = stmt.where(model.branch_id == branch_id)
        if for_update:
            # Reload the row even if the object is already in the session
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_enrollment(self, kind: BalanceKind, enrollment_id: int, period_id: int, branch_id: Optional[int] = None):
        model = BALANCE_MODELS[kind]
        stmt = select(model).where(
            model.enrollment_id == enrollment_id,
            model.period_id == period_id,
        )
        if branch_id is not None:
            stmt = stmt.where(model.branch_id == branch_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_for_enrollments(self, kind: BalanceKind, enrollment_ids: Iterable[int], period_id: int) -> dict:
        """Returns {enrollment_id: balance} for the enrollments that have a record."""
        enrollment_ids = list(enrollment_ids)
        if not enrollment_ids:
            return {}
        model = BALANCE_MODELS[kind]
        stmt = select(model).where(
            model.enrollment_id.in_(enrollment_ids),
            model.period_id == period_id,
        )
        return {b.enrollment_id: b for b in self.db.execute(stmt).scalars().all()}

    def existing_enrollment_ids(self, kind: BalanceKind, enrollment_ids: Iterable[int], period_id: int) -> Set[int]:
        enrollment_ids = list(enrollment_ids)
        if not enrollment_ids:
            return set()
        model = BALANCE_MODELS[kind]
        stmt = select(model.enrollment_id).where(
            model.enrollment_id.in_(enrollment_ids),
            model.period_id == period_id,
        )
        return set(self.db.execute(stmt).scalars().all())

    def create(self, balance):
        """
        Adds a new balance record to the session and flushes it so that the
        unique (enrollment_id, period_id) constraint is checked immediately.
        """
        self.db.add(balance)
        self.db.flush()
        self.db.refresh(balance)
        logger.info(
            "Created balance record",
            table=balance.__tablename__,
            balance_id=balance.id,
            enrollment_id=balance.enrollment_id,
            period_id=balance.period_id,
            total_fee=float(balance.total_fee),
        )
        return balance

    def update(self, balance):
        """Flushes pending changes; the version check happens here."""
        self.db.flush()
        self.db.refresh(balance)
        logger.info(
            "Updated balance record",
            table=balance.__tablename__,
            balance_id=balance.id,
            version_id=balance.version_id,
            overall_balance_fee=float(balance.overall_balance_fee),
        )
        return balance

    def list_balances(
        self,
        kind: BalanceKind,
        branch_id: int,
        class_id: Optional[int] = None,
        section_id: Optional[int] = None,
        period_id: Optional[int] = None,
        page: Optional[int] = None,
        per_page: Optional[int] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> Tuple[List, int]:
        """
        Fetches a filtered, sorted, and paginated list of balance records.
        """
        model = BALANCE_MODELS[kind]
        stmt = apply_scope(select(model), model, branch_id, class_id, section_id, period_id)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total_items = self.db.execute(count_stmt).scalar()

        sorting_map = {
            "balance_id": model.id,
            "enrollment_id": model.enrollment_id,
            "admission_no": model.admission_no,
            "student_name": model.student_name,
            "total_fee": model.total_fee,
            "overall_balance_fee": model.overall_balance_fee,
            "created_on": model.created_on,
        }
        order_column = sorting_map.get(sort_by, model.id)
        if sort_order == "desc":
            stmt = stmt.order_by(order_column.desc(), model.id.desc())
        else:
            stmt = stmt.order_by(order_column.asc(), model.id.asc())

        if page and per_page:
            offset = (page - 1) * per_page
            stmt = stmt.offset(offset).limit(per_page)

        balances = list(self.db.execute(stmt).scalars().all())
        return balances, total_items
