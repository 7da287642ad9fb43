# fee_ledger/balances/models.py

from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional, Tuple

from sqlalchemy import Enum, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fee_ledger.core.db import AuditMixin, Base
from fee_ledger.ledger.engine import (
    FeeSchedule,
    Installment,
    PaymentStatus,
    derive_installment,
    overall_balance,
)


class BalanceKind(str, PyEnum):
    """Which fee a balance record tracks."""

    TUITION = "tuition"
    TRANSPORT = "transport"


class PaymentTarget(str, PyEnum):
    """Part of a balance record a payment is applied to."""

    BOOK = "book"
    TERM_1 = "term_1"
    TERM_2 = "term_2"
    TERM_3 = "term_3"

    @property
    def term_number(self) -> Optional[int]:
        if self is PaymentTarget.BOOK:
            return None
        return int(self.value.rsplit("_", 1)[1])


def _money_column(comment: str):
    return mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"), comment=comment)


def _status_column(comment: str):
    return mapped_column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, comment=comment)


def _version_column():
    return mapped_column(Integer, nullable=False, comment="Optimistic lock counter")


class FeeBalanceMixin:
    """
    Columns and ledger helpers shared by tuition and transport balances.

    Money columns are only ever written through ``apply_schedule`` and
    ``store_installment`` so the stored balance, status and overall balance
    always come from the ledger engine.
    """

    TERM_COUNT = 0

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    enrollment_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    period_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Scope copied from the enrollment at creation time
    branch_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    class_id: Mapped[int] = mapped_column(Integer, nullable=False)
    section_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    admission_no: Mapped[Optional[str]] = mapped_column(String(50), index=True)
    student_name: Mapped[Optional[str]] = mapped_column(String(150))

    actual_fee: Mapped[Decimal] = _money_column("Fee before concession")
    concession_amount: Mapped[Decimal] = _money_column("Fixed discount on the actual fee")
    total_fee: Mapped[Decimal] = _money_column("actual_fee - concession_amount")
    overall_balance_fee: Mapped[Decimal] = _money_column("Sum of unpaid term balances")

    def term_installment(self, number: int) -> Installment:
        if not 1 <= number <= self.TERM_COUNT:
            raise ValueError(f"Term {number} does not exist on a {self.TERM_COUNT}-term balance")
        return derive_installment(
            getattr(self, f"term{number}_amount"),
            getattr(self, f"term{number}_paid"),
        )

    def installments(self) -> Tuple[Installment, ...]:
        return tuple(self.term_installment(n) for n in range(1, self.TERM_COUNT + 1))

    def _set_term(self, number: int, installment: Installment) -> None:
        setattr(self, f"term{number}_amount", installment.amount)
        setattr(self, f"term{number}_paid", installment.paid)
        setattr(self, f"term{number}_balance", installment.balance)
        setattr(self, f"term{number}_status", installment.status)

    def store_installment(self, number: int, installment: Installment) -> None:
        self._set_term(number, installment)
        self.overall_balance_fee = overall_balance(self.installments())

    def apply_schedule(self, schedule: FeeSchedule) -> None:
        if len(schedule.installments) != self.TERM_COUNT:
            raise ValueError(
                f"Schedule has {len(schedule.installments)} terms, expected {self.TERM_COUNT}"
            )
        self.actual_fee = schedule.actual_fee
        self.concession_amount = schedule.concession_amount
        self.total_fee = schedule.total_fee
        for number, installment in enumerate(schedule.installments, start=1):
            self._set_term(number, installment)
        self.overall_balance_fee = schedule.overall_balance_fee

    def has_payments(self) -> bool:
        return any(i.paid > 0 for i in self.installments())


class TuitionBalance(Base, FeeBalanceMixin, AuditMixin):
    """Tuition and book fee owed by one enrollment for one period."""

    __tablename__ = "tuition_fee_balances"

    TERM_COUNT = 3

    book_fee: Mapped[Decimal] = _money_column("Book fee from the class structure")
    book_paid: Mapped[Decimal] = _money_column("Amount paid towards the book fee")
    book_paid_status: Mapped[PaymentStatus] = _status_column("Derived book fee status")

    term1_amount: Mapped[Decimal] = _money_column("Term 1 installment amount")
    term1_paid: Mapped[Decimal] = _money_column("Term 1 amount paid")
    term1_balance: Mapped[Decimal] = _money_column("Term 1 unpaid balance")
    term1_status: Mapped[PaymentStatus] = _status_column("Term 1 derived status")

    term2_amount: Mapped[Decimal] = _money_column("Term 2 installment amount")
    term2_paid: Mapped[Decimal] = _money_column("Term 2 amount paid")
    term2_balance: Mapped[Decimal] = _money_column("Term 2 unpaid balance")
    term2_status: Mapped[PaymentStatus] = _status_column("Term 2 derived status")

    term3_amount: Mapped[Decimal] = _money_column("Term 3 installment amount")
    term3_paid: Mapped[Decimal] = _money_column("Term 3 amount paid")
    term3_balance: Mapped[Decimal] = _money_column("Term 3 unpaid balance")
    term3_status: Mapped[PaymentStatus] = _status_column("Term 3 derived status")

    __table_args__ = (
        UniqueConstraint("enrollment_id", "period_id", name="uq_tuition_balances_enrollment_period"),
        Index("idx_tuition_balances_scope", "branch_id", "period_id", "class_id", "section_id"),
    )

    version_id: Mapped[int] = _version_column()

    __mapper_args__ = {"version_id_col": version_id}

    def book_installment(self) -> Installment:
        return derive_installment(self.book_fee, self.book_paid)

    def store_book(self, installment: Installment) -> None:
        self.book_fee = installment.amount
        self.book_paid = installment.paid
        self.book_paid_status = installment.status

    @property
    def book_remaining(self) -> Decimal:
        return self.book_installment().balance


class TransportBalance(Base, FeeBalanceMixin, AuditMixin):
    """Transport fee owed by one enrollment for one period."""

    __tablename__ = "transport_fee_balances"

    TERM_COUNT = 2

    route_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    slab_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    term1_amount: Mapped[Decimal] = _money_column("Term 1 installment amount")
    term1_paid: Mapped[Decimal] = _money_column("Term 1 amount paid")
    term1_balance: Mapped[Decimal] = _money_column("Term 1 unpaid balance")
    term1_status: Mapped[PaymentStatus] = _status_column("Term 1 derived status")

    term2_amount: Mapped[Decimal] = _money_column("Term 2 installment amount")
    term2_paid: Mapped[Decimal] = _money_column("Term 2 amount paid")
    term2_balance: Mapped[Decimal] = _money_column("Term 2 unpaid balance")
    term2_status: Mapped[PaymentStatus] = _status_column("Term 2 derived status")

    __table_args__ = (
        UniqueConstraint("enrollment_id", "period_id", name="uq_transport_balances_enrollment_period"),
        Index("idx_transport_balances_scope", "branch_id", "period_id", "class_id", "section_id"),
    )

    version_id: Mapped[int] = _version_column()

    __mapper_args__ = {"version_id_col": version_id}


BALANCE_MODELS = {
    BalanceKind.TUITION: TuitionBalance,
    BalanceKind.TRANSPORT: TransportBalance,
}
