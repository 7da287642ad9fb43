# fee_ledger/fee_structures/models.py

from decimal import Decimal

from sqlalchemy import Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fee_ledger.core.db import AuditMixin, Base


class FeeStructure(Base, AuditMixin):
    """
    Base tuition and book fee of a class for one academic period.

    Editing a structure never touches balance records that were already
    created from it.
    """

    __tablename__ = "fee_structures"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    branch_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    class_id: Mapped[int] = mapped_column(Integer, nullable=False)
    period_id: Mapped[int] = mapped_column(Integer, nullable=False)

    book_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00"),
        comment="Book fee charged once per period"
    )
    tuition_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00"),
        comment="Tuition fee before concession"
    )

    __table_args__ = (
        UniqueConstraint("branch_id", "class_id", "period_id", name="uq_fee_structures_class_period"),
    )


class TransportFee(Base, AuditMixin):
    """Yearly transport fee for a bus route and distance slab."""

    __tablename__ = "transport_fees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    branch_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    period_id: Mapped[int] = mapped_column(Integer, nullable=False)
    route_id: Mapped[int] = mapped_column(Integer, nullable=False)
    slab_id: Mapped[int] = mapped_column(Integer, nullable=False)

    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00"),
        comment="Transport fee before concession"
    )

    __table_args__ = (
        UniqueConstraint("branch_id", "period_id", "route_id", "slab_id", name="uq_transport_fees_route_slab"),
    )
