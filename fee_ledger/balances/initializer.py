# fee_ledger/balances/initializer.py

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fee_ledger.balances.exceptions import BalanceError, BalanceValidationError
from fee_ledger.balances.models import BalanceKind, TransportBalance, TuitionBalance
from fee_ledger.balances.repository import BalanceRepository
from fee_ledger.core.config import settings
from fee_ledger.enrollments.directory import EnrollmentDirectory, SqlEnrollmentDirectory
from fee_ledger.enrollments.models import Enrollment
from fee_ledger.fee_structures.services import FeeStructureService
from fee_ledger.ledger.engine import ZERO, FeeSchedule, build_schedule, derive_installment, to_money
from fee_ledger.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class InitializationResult:
    """
    Outcome of a bulk initialization.

    ``created_count == 0`` means every requested enrollment already had a
    record; callers report it as information, not as a failure.
    """

    kind: BalanceKind
    total_requested: int
    created_count: int = 0
    skipped_enrollment_ids: List[int] = field(default_factory=list)
    created_balance_ids: List[int] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return self.created_count == 0

    @property
    def message(self) -> str:
        if self.total_requested == 0:
            return "No active enrollments matched the request."
        if self.is_noop:
            return "All requested enrollments already have balance records; nothing was created."
        return (
            f"Created {self.created_count} {self.kind.value} balance records, "
            f"skipped {len(self.skipped_enrollment_ids)} existing."
        )


class BulkInitializer:
    """
    Creates missing balance records for every active enrollment of a class.

    Re-running it is safe: enrollments that already have a record for the
    period are skipped, and the unique (enrollment_id, period_id) constraint
    turns a concurrent insert into a skip as well.
    """

    def __init__(
        self,
        db: Session,
        directory: Optional[EnrollmentDirectory] = None,
        structures: Optional[FeeStructureService] = None,
    ):
        self.db = db
        self.repo = BalanceRepository(db)
        self.directory = directory or SqlEnrollmentDirectory(db)
        self.structures = structures or FeeStructureService(db)

    @staticmethod
    def _resolve_concession(enrollment: Enrollment, overrides: Optional[Dict[int, Decimal]], default_attr: str) -> Decimal:
        if overrides and enrollment.id in overrides:
            value = overrides[enrollment.id]
        else:
            value = getattr(enrollment, default_attr)
        return to_money(value if value is not None else ZERO)

    @staticmethod
    def _schedule(actual_fee, concession, weights, enrollment_id: int) -> FeeSchedule:
        try:
            return build_schedule(actual_fee, concession, weights, tolerance=settings.money_tolerance)
        except ValueError as e:
            raise BalanceValidationError(f"Enrollment {enrollment_id}: {e}") from e

    @staticmethod
    def _scope_columns(enrollment: Enrollment, period_id: int) -> dict:
        return {
            "enrollment_id": enrollment.id,
            "period_id": period_id,
            "branch_id": enrollment.branch_id,
            "class_id": enrollment.class_id,
            "section_id": enrollment.section_id,
            "admission_no": enrollment.admission_no,
            "student_name": enrollment.student_name,
        }

    def initialize_tuition_balances(
        self,
        branch_id: int,
        class_id: int,
        period_id: int,
        section_id: Optional[int] = None,
        concessions: Optional[Dict[int, Decimal]] = None,
    ) -> InitializationResult:
        """
        Creates tuition balances for the active enrollments of a class.

        Raises:
            FeeStructureNotFoundError: If the class has no fee structure
            BalanceValidationError: If a concession is negative or exceeds the tuition fee
        """
        enrollments = self.directory.list_active_enrollments(branch_id, class_id, period_id, section_id)
        structure = self.structures.get_structure(branch_id, class_id, period_id)
        return self._initialize_tuition(enrollments, period_id, structure, concessions)

    def _initialize_tuition(self, enrollments, period_id, structure, concessions) -> InitializationResult:
        weights = settings.tuition_split_weights
        book = derive_installment(structure.book_fee, ZERO)

        def build(enrollment: Enrollment) -> TuitionBalance:
            concession = self._resolve_concession(enrollment, concessions, "tuition_concession")
            schedule = self._schedule(structure.tuition_fee, concession, weights, enrollment.id)
            balance = TuitionBalance(**self._scope_columns(enrollment, period_id))
            balance.apply_schedule(schedule)
            balance.store_book(book)
            return balance

        return self._initialize(BalanceKind.TUITION, enrollments, period_id, build)

    def initialize_transport_balances(
        self,
        branch_id: int,
        class_id: int,
        period_id: int,
        section_id: Optional[int] = None,
        concessions: Optional[Dict[int, Decimal]] = None,
    ) -> InitializationResult:
        """
        Creates transport balances for the active enrollments of a class that
        use school transport. Fees come from the route/slab catalog.

        Raises:
            TransportFeeNotFoundError: If any route/slab in the class has no fee
            BalanceValidationError: If an enrollment has transport without a route/slab
        """
        enrollments = [
            e for e in self.directory.list_active_enrollments(branch_id, class_id, period_id, section_id)
            if e.transport_enabled
        ]
        return self._initialize_transport(branch_id, enrollments, period_id, concessions)

    def _initialize_transport(self, branch_id, enrollments, period_id, concessions) -> InitializationResult:
        unassigned = [e.id for e in enrollments if e.route_id is None or e.slab_id is None]
        if unassigned:
            raise BalanceValidationError(
                f"Enrollments {unassigned} use transport but have no route/slab assigned."
            )
        fees = self.structures.resolve_transport_fees(
            branch_id, period_id, [(e.route_id, e.slab_id) for e in enrollments]
        )
        weights = settings.transport_split_weights

        def build(enrollment: Enrollment) -> TransportBalance:
            concession = self._resolve_concession(enrollment, concessions, "transport_concession")
            fee = fees[(enrollment.route_id, enrollment.slab_id)]
            schedule = self._schedule(fee, concession, weights, enrollment.id)
            balance = TransportBalance(
                route_id=enrollment.route_id,
                slab_id=enrollment.slab_id,
                **self._scope_columns(enrollment, period_id),
            )
            balance.apply_schedule(schedule)
            return balance

        return self._initialize(BalanceKind.TRANSPORT, enrollments, period_id, build)

    def initialize_enrollment(
        self,
        branch_id: int,
        enrollment_id: int,
        period_id: int,
        kind: BalanceKind,
        concession: Optional[Decimal] = None,
    ) -> InitializationResult:
        """
        Creates the balance record of a single enrollment (e.g. a late admission).

        Raises:
            EnrollmentNotFoundError: If the enrollment is not in the branch
            BalanceValidationError: If the enrollment is inactive, belongs to another
                period, or does not use transport when a transport balance is requested
        """
        enrollment = self.directory.get_enrollment(branch_id, enrollment_id)
        if not enrollment.is_active:
            raise BalanceValidationError(f"Enrollment {enrollment_id} is not active.")
        if enrollment.period_id != period_id:
            raise BalanceValidationError(
                f"Enrollment {enrollment_id} belongs to period {enrollment.period_id}, not {period_id}."
            )
        overrides = {enrollment.id: concession} if concession is not None else None

        if kind == BalanceKind.TUITION:
            structure = self.structures.get_structure(branch_id, enrollment.class_id, period_id)
            return self._initialize_tuition([enrollment], period_id, structure, overrides)

        if not enrollment.transport_enabled:
            raise BalanceValidationError(f"Enrollment {enrollment_id} does not use school transport.")
        return self._initialize_transport(branch_id, [enrollment], period_id, overrides)

    def _initialize(
        self,
        kind: BalanceKind,
        enrollments: Sequence[Enrollment],
        period_id: int,
        build: Callable[[Enrollment], object],
    ) -> InitializationResult:
        requested_ids = [e.id for e in enrollments]
        result = InitializationResult(kind=kind, total_requested=len(requested_ids))

        existing = self.repo.existing_enrollment_ids(kind, requested_ids, period_id)
        result.skipped_enrollment_ids = [eid for eid in requested_ids if eid in existing]

        # Build every record before writing so a bad concession aborts the whole call
        pending = [build(e) for e in enrollments if e.id not in existing]

        try:
            for balance in pending:
                try:
                    with self.db.begin_nested():
                        self.repo.create(balance)
                except IntegrityError:
                    logger.warning(
                        "Balance created concurrently, skipping",
                        kind=kind.value,
                        enrollment_id=balance.enrollment_id,
                        period_id=period_id,
                    )
                    result.skipped_enrollment_ids.append(balance.enrollment_id)
                    continue
                result.created_balance_ids.append(balance.id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to initialize balances.", kind=kind.value, error=str(e), exc_info=True)
            raise BalanceError(f"Failed to initialize {kind.value} balances: {str(e)}") from e

        result.created_count = len(result.created_balance_ids)
        logger.info(
            "Initialized balances",
            kind=kind.value,
            period_id=period_id,
            total_requested=result.total_requested,
            created_count=result.created_count,
            skipped_count=len(result.skipped_enrollment_ids),
        )
        return result
