from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from aggregation import (
    breakdown_by_month,
    compare_trailing_months,
    rollup_by_category,
    summarize_month,
    top_categories,
)
from config import get_settings
from errors import InvalidRange, NotFound, ReferentialConflict, ValidationError
from ledger import LedgerStore, amount_to_cents
from models import Category, CategoryKind, Transaction
from periods import (
    local_today,
    month_end,
    month_start,
    normalize_period_type,
    parse_calendar_date,
)
from schemas import (
    ZERO,
    CategoryIn,
    CategoryReport,
    CategoryUpdate,
    DashboardData,
    FinancialReport,
    MonthlySummary,
    RecentTransaction,
    ReportPeriod,
    ReportSummary,
    TransactionIn,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

DateInput = Union[str, date]


def _clean_name(name: Optional[str]) -> str:
    clean = (name or "").strip()
    if not clean:
        raise ValidationError("Category name cannot be empty")
    return clean


def _kind_total(categories: list[CategoryReport], kind: CategoryKind) -> Decimal:
    return sum((c.total_amount for c in categories if c.category_kind == kind), ZERO)


def _clean_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    return description.strip() or None


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Category]:
        return LedgerStore(self.session).list_categories(self.user_id)

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFound("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        category = Category(
            user_id=self.user_id,
            name=_clean_name(data.name),
            kind=data.kind,
            color=data.color,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        logger.info(
            f"category_created: user_id={self.user_id} id={category.id} "
            f"kind={category.kind.value}"
        )
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        fields = data.model_fields_set
        if "name" in fields:
            category.name = _clean_name(data.name)
        if "color" in fields:
            category.color = data.color
        self.session.commit()
        self.session.refresh(category)
        logger.info(
            f"category_updated: user_id={self.user_id} id={category.id} "
            f"fields={','.join(sorted(fields))}"
        )
        return category

    def delete(self, category_id: int) -> None:
        in_use = (
            select(Transaction.id)
            .where(Transaction.category_id == category_id)
            .exists()
        )
        # check and delete in one statement so a concurrent insert cannot slip
        # a transaction in between
        stmt = (
            delete(Category)
            .where(
                Category.id == category_id,
                Category.user_id == self.user_id,
                ~in_use,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
        except IntegrityError as exc:
            self.session.rollback()
            raise ReferentialConflict(
                "Cannot delete category with existing transactions"
            ) from exc

        if result.rowcount == 0:
            self.session.rollback()
            self.get(category_id)
            raise ReferentialConflict(
                "Cannot delete category with existing transactions"
            )
        stale = self.session.identity_map.get(identity_key(Category, category_id))
        if stale is not None:
            self.session.expunge(stale)
        self.session.commit()
        logger.info(f"category_deleted: user_id={self.user_id} id={category_id}")


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _owned_category(self, category_id: int) -> Category:
        return CategoryService(self.session, self.user_id).get(category_id)

    def create(self, data: TransactionIn) -> Transaction:
        category = self._owned_category(data.category_id)
        txn = Transaction(
            user_id=self.user_id,
            category_id=category.id,
            amount_cents=amount_to_cents(data.amount),
            description=_clean_description(data.description),
            transaction_date=parse_calendar_date(data.transaction_date),
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: user_id={self.user_id} id={txn.id} "
            f"category_id={category.id} date={txn.transaction_date.isoformat()}"
        )
        return txn

    def get(self, transaction_id: int) -> Transaction:
        stmt = select(Transaction).where(
            Transaction.user_id == self.user_id, Transaction.id == transaction_id
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    def list(
        self,
        start_date: Optional[DateInput] = None,
        end_date: Optional[DateInput] = None,
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        )
        if start_date is not None:
            stmt = stmt.where(
                Transaction.transaction_date >= parse_calendar_date(start_date)
            )
        if end_date is not None:
            stmt = stmt.where(
                Transaction.transaction_date <= parse_calendar_date(end_date)
            )
        return list(self.session.scalars(stmt).all())

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        txn = self.get(transaction_id)
        fields = data.model_fields_set
        for required in ("category_id", "amount", "transaction_date"):
            if required in fields and getattr(data, required) is None:
                raise ValidationError(f"{required} cannot be cleared")

        changes: dict[str, object] = {}
        if "category_id" in fields:
            changes["category_id"] = self._owned_category(data.category_id).id
        if "amount" in fields:
            changes["amount_cents"] = amount_to_cents(data.amount)
        if "description" in fields:
            changes["description"] = _clean_description(data.description)
        if "transaction_date" in fields:
            changes["transaction_date"] = parse_calendar_date(data.transaction_date)

        for name, value in changes.items():
            setattr(txn, name, value)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"transaction_updated: user_id={self.user_id} id={txn.id} "
            f"fields={','.join(sorted(fields))}"
        )
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        logger.info(f"transaction_deleted: user_id={self.user_id} id={transaction_id}")


class SummaryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.ledger = LedgerStore(session)
        self.user_id = user_id

    def monthly(self, year: int, month: int) -> MonthlySummary:
        return summarize_month(self.ledger, self.user_id, year, month)


class DashboardService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.ledger = LedgerStore(session)
        self.user_id = user_id
        self.settings = get_settings()

    def build_dashboard(
        self, now: Optional[Union[date, datetime]] = None
    ) -> DashboardData:
        """Everything the landing page needs for the month containing ``now``.

        The top categories use the same window as the month summary.
        """
        if isinstance(now, datetime):
            now = now.date()
        today = now or local_today()

        current = summarize_month(self.ledger, self.user_id, today.year, today.month)
        recent = [
            RecentTransaction(**asdict(entry))
            for entry in self.ledger.recent_transactions(
                self.user_id, self.settings.dashboard_recent_limit
            )
        ]
        comparison = compare_trailing_months(
            self.ledger,
            self.user_id,
            self.settings.dashboard_trailing_months,
            today,
        )
        month_categories = rollup_by_category(
            self.ledger,
            self.user_id,
            month_start(today.year, today.month),
            month_end(today.year, today.month),
        )
        return DashboardData(
            current_month_summary=current,
            recent_transactions=recent,
            monthly_comparison=comparison,
            top_categories=top_categories(
                month_categories, self.settings.dashboard_top_categories
            ),
        )


class ReportService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.ledger = LedgerStore(session)
        self.user_id = user_id

    def build_report(
        self,
        start_date: DateInput,
        end_date: DateInput,
        period_type: Optional[str] = None,
    ) -> FinancialReport:
        start = parse_calendar_date(start_date)
        end = parse_calendar_date(end_date)
        if start > end:
            raise InvalidRange("Start date must be on or before end date")

        categories = rollup_by_category(self.ledger, self.user_id, start, end)
        monthly = breakdown_by_month(self.ledger, self.user_id, start, end)
        summary = ReportSummary(
            total_income=_kind_total(categories, CategoryKind.income),
            total_expense=_kind_total(categories, CategoryKind.expense),
        )
        report = FinancialReport(
            period=ReportPeriod(
                start_date=start, end_date=end, type=normalize_period_type(period_type)
            ),
            summary=summary,
            categories=categories,
            monthly_breakdown=monthly,
        )
        logger.info(
            f"report_built: user_id={self.user_id} start={start.isoformat()} "
            f"end={end.isoformat()} type={report.period.type} "
            f"categories={len(categories)} months={len(monthly)}"
        )
        return report
