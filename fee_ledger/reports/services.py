# fee_ledger/reports/services.py

import math
from typing import Dict, List, Optional, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fee_ledger.balances.models import BALANCE_MODELS, BalanceKind
from fee_ledger.balances.repository import BalanceRepository, apply_scope
from fee_ledger.core.config import settings
from fee_ledger.ledger.engine import ZERO, PaymentStatus, to_money
from fee_ledger.reports.exceptions import ReportError, ReportValidationError
from fee_ledger.utils.logger import get_logger

logger = get_logger(__name__)


def _sum(column):
    return func.coalesce(func.sum(column), 0)


def _count_where(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _slots(model) -> List[Tuple[str, object, object]]:
    """(slot, status column, balance expression) for every payable part of a record."""
    slots = []
    if hasattr(model, "book_fee"):
        slots.append(("book", model.book_paid_status, model.book_fee - model.book_paid))
    for number in range(1, model.TERM_COUNT + 1):
        slots.append((
            f"term_{number}",
            getattr(model, f"term{number}_status"),
            getattr(model, f"term{number}_balance"),
        ))
    return slots


class DashboardReporter:
    """
    Aggregated views over balance records for a branch, class or section.

    Every figure is computed by the database in a single statement per call,
    so a report is a consistent snapshot even while payments are being posted.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = BalanceRepository(db)

    def get_dashboard_stats(
        self,
        kind: BalanceKind,
        branch_id: int,
        class_id: Optional[int] = None,
        period_id: Optional[int] = None,
        section_id: Optional[int] = None,
    ) -> Dict:
        """
        Returns fee totals and per-slot status counts for the scope.

        ``total_paid`` covers term payments only, so
        ``total_net_fee == total_paid + total_outstanding``. Book fee totals
        are reported separately for tuition.
        """
        kind = BalanceKind(kind)
        model = BALANCE_MODELS[kind]
        term_paid = model.term1_paid
        for number in range(2, model.TERM_COUNT + 1):
            term_paid = term_paid + getattr(model, f"term{number}_paid")

        columns = [
            func.count(model.id).label("total_balances"),
            _sum(model.actual_fee).label("total_actual_fee"),
            _sum(model.concession_amount).label("total_concession"),
            _sum(model.total_fee).label("total_net_fee"),
            _sum(term_paid).label("total_paid"),
            _sum(model.overall_balance_fee).label("total_outstanding"),
        ]
        if kind == BalanceKind.TUITION:
            columns.append(_sum(model.book_fee).label("total_book_fee"))
            columns.append(_sum(model.book_paid).label("total_book_paid"))

        slots = _slots(model)
        for slot, status_column, _ in slots:
            for status in PaymentStatus:
                columns.append(_count_where(status_column == status).label(f"{slot}__{status.value}"))

        stmt = apply_scope(select(*columns), model, branch_id, class_id, section_id, period_id)
        try:
            row = self.db.execute(stmt).mappings().one()
        except SQLAlchemyError as e:
            logger.error("Failed to compute dashboard stats.", kind=kind.value, error=str(e), exc_info=True)
            raise ReportError(f"Failed to compute dashboard stats: {str(e)}") from e

        stats = {
            "kind": kind,
            "total_balances": int(row["total_balances"] or 0),
            "total_actual_fee": to_money(row["total_actual_fee"]),
            "total_concession": to_money(row["total_concession"]),
            "total_net_fee": to_money(row["total_net_fee"]),
            "total_paid": to_money(row["total_paid"]),
            "total_outstanding": to_money(row["total_outstanding"]),
            "total_book_fee": to_money(row["total_book_fee"]) if kind == BalanceKind.TUITION else None,
            "total_book_paid": to_money(row["total_book_paid"]) if kind == BalanceKind.TUITION else None,
            "status_counts": {
                slot: {status.value: int(row[f"{slot}__{status.value}"] or 0) for status in PaymentStatus}
                for slot, _, _ in slots
            },
        }
        logger.debug(
            "Computed dashboard stats",
            kind=kind.value,
            branch_id=branch_id,
            class_id=class_id,
            total_balances=stats["total_balances"],
        )
        return stats

    def list_balances(
        self,
        kind: BalanceKind,
        branch_id: int,
        class_id: Optional[int] = None,
        section_id: Optional[int] = None,
        period_id: Optional[int] = None,
        page: int = 1,
        page_size: Optional[int] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> Tuple[List, Dict]:
        """
        Returns (records, pagination) where pagination holds total_pages,
        current_page, page_size and total_count. ``page_size`` is capped at
        the configured maximum.
        """
        if page < 1:
            raise ReportValidationError("page must be 1 or greater")
        page_size = page_size or settings.default_page_size
        if page_size < 1:
            raise ReportValidationError("page_size must be 1 or greater")
        page_size = min(page_size, settings.max_page_size)

        items, total_count = self.repo.list_balances(
            kind=BalanceKind(kind),
            branch_id=branch_id,
            class_id=class_id,
            section_id=section_id,
            period_id=period_id,
            page=page,
            per_page=page_size,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        total_pages = math.ceil(total_count / page_size) if total_count > 0 else 0
        return items, {
            "total_pages": total_pages,
            "current_page": page,
            "page_size": page_size,
            "total_count": total_count,
        }

    def get_unpaid_terms_report(
        self,
        kind: BalanceKind,
        branch_id: int,
        class_id: Optional[int] = None,
        period_id: Optional[int] = None,
        section_id: Optional[int] = None,
    ) -> List[Dict]:
        """
        For every slot (book, term_1, ...) returns how many records still owe
        money on it and how much they owe in total.
        """
        kind = BalanceKind(kind)
        model = BALANCE_MODELS[kind]
        slots = _slots(model)

        columns = []
        for slot, _, balance in slots:
            columns.append(_count_where(balance > 0).label(f"{slot}__count"))
            columns.append(_sum(case((balance > 0, balance), else_=0)).label(f"{slot}__amount"))

        stmt = apply_scope(select(*columns), model, branch_id, class_id, section_id, period_id)
        try:
            row = self.db.execute(stmt).mappings().one()
        except SQLAlchemyError as e:
            logger.error("Failed to compute unpaid terms report.", kind=kind.value, error=str(e), exc_info=True)
            raise ReportError(f"Failed to compute unpaid terms report: {str(e)}") from e

        return [
            {
                "slot": slot,
                "unpaid_count": int(row[f"{slot}__count"] or 0),
                "unpaid_amount": to_money(row[f"{slot}__amount"] or ZERO),
            }
            for slot, _, _ in slots
        ]
