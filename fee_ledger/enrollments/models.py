# fee_ledger/enrollments/models.py

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from fee_ledger.core.db import AuditMixin, Base


class Enrollment(Base, AuditMixin):
    """
    Read model of the student directory.

    The directory owns these rows; the fee ledger only reads them to decide
    which students need balance records and how transport is assigned.
    """

    __tablename__ = "student_enrollments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    branch_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    period_id: Mapped[int] = mapped_column(Integer, nullable=False, comment="Academic year of the enrollment")
    class_id: Mapped[int] = mapped_column(Integer, nullable=False)
    section_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    student_name: Mapped[str] = mapped_column(String(150), nullable=False)
    admission_no: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    transport_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    route_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    slab_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Default concessions agreed at admission
    tuition_concession: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    transport_concession: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )

    __table_args__ = (
        Index("idx_enrollments_scope", "branch_id", "period_id", "class_id", "section_id"),
    )
