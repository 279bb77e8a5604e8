from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Select, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from errors import StoreUnavailable, ValidationError
from models import Category, CategoryKind, Transaction, cents_to_amount

CENT = Decimal("0.01")


def amount_to_cents(amount: Decimal) -> int:
    if amount != amount.quantize(CENT):
        raise ValidationError("Amount must have at most 2 decimal places")
    cents = int(amount * 100)
    if cents <= 0:
        raise ValidationError("Amount must be positive")
    return cents


@dataclass(frozen=True)
class LedgerEntry:
    """A transaction joined with the name and kind of its category."""

    id: int
    user_id: int
    category_id: int
    amount: Decimal
    description: Optional[str]
    transaction_date: date
    created_at: datetime
    updated_at: datetime
    category_name: str
    category_kind: CategoryKind


class LedgerStore:
    """Read side of the ledger, always scoped to one owner."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _entries_stmt(self, owner: int) -> Select:
        return (
            select(Transaction, Category.name, Category.kind)
            .join(Category, Category.id == Transaction.category_id)
            .where(Transaction.user_id == owner, Category.user_id == owner)
        )

    def _execute(self, stmt):
        try:
            return self.session.execute(stmt)
        except OperationalError as exc:
            raise StoreUnavailable("Ledger store is unavailable") from exc

    @staticmethod
    def _to_entry(txn: Transaction, name: str, kind: CategoryKind) -> LedgerEntry:
        return LedgerEntry(
            id=txn.id,
            user_id=txn.user_id,
            category_id=txn.category_id,
            amount=cents_to_amount(txn.amount_cents),
            description=txn.description,
            transaction_date=txn.transaction_date,
            created_at=txn.created_at,
            updated_at=txn.updated_at,
            category_name=name,
            category_kind=kind,
        )

    def list_transactions(
        self,
        owner: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        *,
        category_id: Optional[int] = None,
    ) -> list[LedgerEntry]:
        stmt = self._entries_stmt(owner).order_by(
            Transaction.transaction_date.asc(), Transaction.id.asc()
        )
        if start_date is not None:
            stmt = stmt.where(Transaction.transaction_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(Transaction.transaction_date <= end_date)
        if category_id is not None:
            stmt = stmt.where(Transaction.category_id == category_id)
        return [self._to_entry(*row) for row in self._execute(stmt).all()]

    def recent_transactions(self, owner: int, limit: int = 10) -> list[LedgerEntry]:
        stmt = (
            self._entries_stmt(owner)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return [self._to_entry(*row) for row in self._execute(stmt).all()]

    def list_categories(self, owner: int) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == owner)
            .order_by(Category.kind, Category.name, Category.id)
        )
        return list(self._execute(stmt).scalars().all())

    def count_transactions_for_category(self, category_id: int) -> int:
        stmt = select(func.count(Transaction.id)).where(
            Transaction.category_id == category_id
        )
        return int(self._execute(stmt).scalar_one() or 0)
