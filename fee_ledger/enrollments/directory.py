# fee_ledger/enrollments/directory.py

from typing import List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from fee_ledger.enrollments.exceptions import EnrollmentNotFoundError
from fee_ledger.enrollments.models import Enrollment


class EnrollmentDirectory(Protocol):
    """What the fee ledger needs from the student directory."""

    def list_active_enrollments(
        self, branch_id: int, class_id: int, period_id: int, section_id: Optional[int] = None
    ) -> List[Enrollment]:
        ...

    def get_enrollment(self, branch_id: int, enrollment_id: int) -> Enrollment:
        ...


class SqlEnrollmentDirectory:
    """Enrollment directory backed by the ``student_enrollments`` read model."""

    def __init__(self, db: Session):
        self.db = db

    def list_active_enrollments(
        self, branch_id: int, class_id: int, period_id: int, section_id: Optional[int] = None
    ) -> List[Enrollment]:
        stmt = select(Enrollment).where(
            Enrollment.branch_id == branch_id,
            Enrollment.class_id == class_id,
            Enrollment.period_id == period_id,
            Enrollment.is_active.is_(True),
        )
        if section_id is not None:
            stmt = stmt.where(Enrollment.section_id == section_id)
        stmt = stmt.order_by(Enrollment.id)
        return list(self.db.execute(stmt).scalars().all())

    def get_enrollment(self, branch_id: int, enrollment_id: int) -> Enrollment:
        """Raises EnrollmentNotFoundError if the enrollment is not in this branch."""
        stmt = select(Enrollment).where(
            Enrollment.id == enrollment_id,
            Enrollment.branch_id == branch_id,
        )
        enrollment = self.db.execute(stmt).scalar_one_or_none()
        if not enrollment:
            raise EnrollmentNotFoundError(enrollment_id)
        return enrollment
