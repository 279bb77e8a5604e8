"""Aggregation over a user's ledger.

The fold functions (``totals_by_kind``, ``group_by_category``,
``group_by_month``) are pure and work on any iterable of ``LedgerEntry``.
The remaining functions pick a window, pull that slice from a
``LedgerStore`` and fold it.

Amounts are always positive; whether one counts as income or expense comes
from the kind of its category, and the sign only appears in ``balance``.

Month summaries use the half-open window ``[first day, first day of next
month)`` while range rollups use the closed window ``[start_date,
end_date]``.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from errors import ValidationError
from ledger import LedgerEntry, LedgerStore
from models import CategoryKind
from periods import add_months, local_today, month_end, month_start
from schemas import ZERO, CategoryReport, MonthlyComparison, MonthlySummary

MONTH_ABBR = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


def month_label(year: int, month: int) -> str:
    return f"{MONTH_ABBR[month - 1]} {year}"


def totals_by_kind(entries: Iterable[LedgerEntry]) -> tuple[Decimal, Decimal]:
    income = ZERO
    expense = ZERO
    for entry in entries:
        if entry.category_kind == CategoryKind.income:
            income += entry.amount
        else:
            expense += entry.amount
    return income, expense


def group_by_category(entries: Iterable[LedgerEntry]) -> list[CategoryReport]:
    groups: dict[int, CategoryReport] = {}
    for entry in entries:
        report = groups.get(entry.category_id)
        if report is None:
            report = CategoryReport(
                category_id=entry.category_id,
                category_name=entry.category_name,
                category_kind=entry.category_kind,
                total_amount=ZERO,
                transaction_count=0,
            )
            groups[entry.category_id] = report
        report.total_amount += entry.amount
        report.transaction_count += 1
    return [groups[category_id] for category_id in sorted(groups)]


def group_by_month(entries: Iterable[LedgerEntry]) -> list[MonthlySummary]:
    groups: dict[tuple[int, int], MonthlySummary] = {}
    for entry in entries:
        key = (entry.transaction_date.year, entry.transaction_date.month)
        summary = groups.get(key)
        if summary is None:
            summary = MonthlySummary(year=key[0], month=key[1])
            groups[key] = summary
        if entry.category_kind == CategoryKind.income:
            summary.total_income += entry.amount
        else:
            summary.total_expense += entry.amount
    return [groups[key] for key in sorted(groups)]


def summarize_month(
    ledger: LedgerStore, owner: int, year: int, month: int
) -> MonthlySummary:
    # [first, next_first) in whole days: the 1st of the next month is excluded
    entries = ledger.list_transactions(
        owner, month_start(year, month), month_end(year, month)
    )
    income, expense = totals_by_kind(entries)
    return MonthlySummary(
        year=year, month=month, total_income=income, total_expense=expense
    )


def rollup_by_category(
    ledger: LedgerStore, owner: int, start_date: date, end_date: date
) -> list[CategoryReport]:
    if start_date > end_date:
        return []
    return group_by_category(ledger.list_transactions(owner, start_date, end_date))


def breakdown_by_month(
    ledger: LedgerStore, owner: int, start_date: date, end_date: date
) -> list[MonthlySummary]:
    if start_date > end_date:
        return []
    # months are cut at the window edges, not widened to whole months
    return group_by_month(ledger.list_transactions(owner, start_date, end_date))


def compare_trailing_months(
    ledger: LedgerStore, owner: int, n: int, today: Optional[date] = None
) -> list[MonthlyComparison]:
    if n < 1:
        raise ValidationError(f"Number of months must be at least 1, got {n}")
    today = today or local_today()
    current = date(today.year, today.month, 1)
    months = [add_months(current, offset) for offset in range(-(n - 1), 1)]

    out = {
        (m.year, m.month): MonthlyComparison(
            month_label=month_label(m.year, m.month), year=m.year, month=m.month
        )
        for m in months
    }
    window_end = month_end(current.year, current.month)
    for entry in ledger.list_transactions(owner, months[0], window_end):
        row = out[(entry.transaction_date.year, entry.transaction_date.month)]
        if entry.category_kind == CategoryKind.income:
            row.income += entry.amount
        else:
            row.expense += entry.amount
    return [out[(m.year, m.month)] for m in months]


def top_categories(
    reports: Iterable[CategoryReport], limit: int
) -> list[CategoryReport]:
    # stable sort: equal totals keep their category_id order
    ranked = sorted(reports, key=lambda r: r.total_amount, reverse=True)
    return ranked[:limit]
