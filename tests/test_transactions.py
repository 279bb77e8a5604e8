from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import NotFound, ValidationError
from models import CategoryKind
from schemas import (
    CategoryIn,
    TransactionIn,
    TransactionOut,
    TransactionUpdate,
)
from services import CategoryService, TransactionService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_create_stores_positive_cents_and_parses_date() -> None:
    session = make_session()
    food = CategoryService(session, 1).create(
        CategoryIn(name="Food", kind=CategoryKind.expense)
    )

    txn = TransactionService(session, 1).create(
        TransactionIn(
            category_id=food.id,
            amount=Decimal("1500000.00"),
            description="  January groceries ",
            transaction_date="2024-01-20",
        )
    )

    assert txn.amount_cents == 150_000_000
    assert txn.amount == Decimal("1500000.00")
    assert txn.transaction_date == date(2024, 1, 20)
    assert txn.description == "January groceries"
    assert txn.user_id == 1

    out = TransactionOut.model_validate(txn)
    assert out.amount == Decimal("1500000.00")
    assert out.category_id == food.id


def test_create_rejects_category_of_another_user() -> None:
    session = make_session()
    foreign = CategoryService(session, 2).create(
        CategoryIn(name="Food", kind=CategoryKind.expense)
    )

    with pytest.raises(NotFound):
        TransactionService(session, 1).create(
            TransactionIn(
                category_id=foreign.id,
                amount=Decimal("10.00"),
                transaction_date="2024-01-20",
            )
        )
    with pytest.raises(NotFound):
        TransactionService(session, 1).create(
            TransactionIn(
                category_id=4242,
                amount=Decimal("10.00"),
                transaction_date="2024-01-20",
            )
        )


@pytest.mark.parametrize(
    "raw",
    [
        "2024-13-01",
        "2024-02-30",
        "20240115",
        "15.01.2024",
        "2024-01-15T00:00:00",
        "",
        "2024-1-5",
        "2024-01-5",
        " 2024-01-05 ",
    ],
)
def test_create_rejects_malformed_dates(raw: str) -> None:
    session = make_session()
    food = CategoryService(session, 1).create(
        CategoryIn(name="Food", kind=CategoryKind.expense)
    )

    with pytest.raises(ValidationError):
        TransactionService(session, 1).create(
            TransactionIn(
                category_id=food.id, amount=Decimal("1.00"), transaction_date=raw
            )
        )
    assert TransactionService(session, 1).list() == []


@pytest.mark.parametrize("amount", ["0", "-5.00", "1.005"])
def test_amount_must_be_positive_with_two_decimals(amount: str) -> None:
    with pytest.raises(SchemaValidationError):
        TransactionIn(category_id=1, amount=amount, transaction_date="2024-01-01")


def test_get_and_delete_are_owner_scoped() -> None:
    session = make_session()
    food = CategoryService(session, 1).create(
        CategoryIn(name="Food", kind=CategoryKind.expense)
    )
    txn = TransactionService(session, 1).create(
        TransactionIn(
            category_id=food.id, amount=Decimal("8.40"), transaction_date="2024-02-02"
        )
    )

    with pytest.raises(NotFound):
        TransactionService(session, 2).get(txn.id)
    with pytest.raises(NotFound):
        TransactionService(session, 2).delete(txn.id)

    TransactionService(session, 1).delete(txn.id)
    with pytest.raises(NotFound):
        TransactionService(session, 1).get(txn.id)
    with pytest.raises(NotFound):
        TransactionService(session, 1).delete(txn.id)


def test_list_filters_inclusive_range_newest_first() -> None:
    session = make_session()
    food = CategoryService(session, 1).create(
        CategoryIn(name="Food", kind=CategoryKind.expense)
    )
    txns = TransactionService(session, 1)
    for day in ("2024-01-01", "2024-01-15", "2024-01-31", "2024-02-01"):
        txns.create(
            TransactionIn(
                category_id=food.id, amount=Decimal("1.00"), transaction_date=day
            )
        )

    january = txns.list("2024-01-01", "2024-01-31")
    assert [t.transaction_date.isoformat() for t in january] == [
        "2024-01-31",
        "2024-01-15",
        "2024-01-01",
    ]
    assert len(txns.list()) == 4
    assert len(txns.list(start_date=date(2024, 1, 31))) == 2
    assert TransactionService(session, 2).list() == []


def test_update_changes_only_supplied_fields() -> None:
    session = make_session()
    categories = CategoryService(session, 1)
    food = categories.create(CategoryIn(name="Food", kind=CategoryKind.expense))
    fun = categories.create(CategoryIn(name="Fun", kind=CategoryKind.expense))
    txns = TransactionService(session, 1)
    txn = txns.create(
        TransactionIn(
            category_id=food.id,
            amount=Decimal("20.00"),
            description="Pizza",
            transaction_date="2024-03-05",
        )
    )

    updated = txns.update(txn.id, TransactionUpdate(amount=Decimal("25.50")))
    assert updated.amount == Decimal("25.50")
    assert updated.description == "Pizza"
    assert updated.category_id == food.id
    assert updated.transaction_date == date(2024, 3, 5)

    moved = txns.update(
        txn.id, TransactionUpdate(category_id=fun.id, transaction_date="2024-04-01")
    )
    assert moved.category_id == fun.id
    assert moved.transaction_date == date(2024, 4, 1)
    assert moved.amount == Decimal("25.50")

    cleared = txns.update(txn.id, TransactionUpdate(description=None))
    assert cleared.description is None


def test_update_validates_before_changing_anything() -> None:
    session = make_session()
    food = CategoryService(session, 1).create(
        CategoryIn(name="Food", kind=CategoryKind.expense)
    )
    foreign = CategoryService(session, 2).create(
        CategoryIn(name="Other", kind=CategoryKind.expense)
    )
    txns = TransactionService(session, 1)
    txn = txns.create(
        TransactionIn(
            category_id=food.id, amount=Decimal("5.00"), transaction_date="2024-03-05"
        )
    )

    with pytest.raises(NotFound):
        txns.update(txn.id, TransactionUpdate(category_id=foreign.id))
    with pytest.raises(ValidationError):
        txns.update(
            txn.id,
            TransactionUpdate(amount=Decimal("7.00"), transaction_date="03/05/2024"),
        )
    with pytest.raises(ValidationError):
        txns.update(txn.id, TransactionUpdate(amount=None))

    unchanged = txns.get(txn.id)
    assert unchanged.category_id == food.id
    assert unchanged.amount == Decimal("5.00")
    assert unchanged.transaction_date == date(2024, 3, 5)


def test_update_rejects_unknown_fields() -> None:
    with pytest.raises(SchemaValidationError):
        TransactionUpdate.model_validate({"user_id": 2})
