import logging
from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from database import Base, enable_sqlite_pragmas
from errors import NotFound, ReferentialConflict, ValidationError
from ledger import LedgerStore
from models import CategoryKind
from schemas import CategoryIn, CategoryUpdate, TransactionIn
from services import CategoryService, TransactionService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    event.listen(engine, "connect", enable_sqlite_pragmas)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_create_category_strips_name() -> None:
    session = make_session()

    category = CategoryService(session, 1).create(
        CategoryIn(name="  Salary ", kind=CategoryKind.income, color="#00ff00")
    )

    assert category.id is not None
    assert category.user_id == 1
    assert category.name == "Salary"
    assert category.kind == CategoryKind.income
    assert category.color == "#00ff00"
    assert category.created_at is not None


def test_blank_category_name_is_rejected() -> None:
    session = make_session()

    with pytest.raises(ValidationError):
        CategoryService(session, 1).create(
            CategoryIn(name="   ", kind=CategoryKind.expense)
        )
    with pytest.raises(SchemaValidationError):
        CategoryIn(name="", kind=CategoryKind.expense)


def test_update_changes_only_supplied_fields() -> None:
    session = make_session()
    service = CategoryService(session, 1)
    category = service.create(
        CategoryIn(name="Food", kind=CategoryKind.expense, color="#ff0000")
    )

    renamed = service.update(category.id, CategoryUpdate(name="Groceries"))
    assert renamed.name == "Groceries"
    assert renamed.color == "#ff0000"

    cleared = service.update(category.id, CategoryUpdate(color=None))
    assert cleared.name == "Groceries"
    assert cleared.color is None
    assert cleared.kind == CategoryKind.expense


def test_update_cannot_change_kind() -> None:
    with pytest.raises(SchemaValidationError):
        CategoryUpdate.model_validate({"kind": "income"})


def test_update_rejects_blank_name() -> None:
    session = make_session()
    service = CategoryService(session, 1)
    category = service.create(CategoryIn(name="Food", kind=CategoryKind.expense))

    with pytest.raises(ValidationError):
        service.update(category.id, CategoryUpdate(name="  "))
    with pytest.raises(ValidationError):
        service.update(category.id, CategoryUpdate(name=None))
    assert service.get(category.id).name == "Food"


def test_list_all_is_scoped_to_owner() -> None:
    session = make_session()
    CategoryService(session, 1).create(CategoryIn(name="Salary", kind="income"))
    CategoryService(session, 1).create(CategoryIn(name="Food", kind="expense"))
    CategoryService(session, 2).create(CategoryIn(name="Rent", kind="expense"))

    names = [c.name for c in CategoryService(session, 1).list_all()]
    assert sorted(names) == ["Food", "Salary"]
    assert [c.name for c in CategoryService(session, 3).list_all()] == []


def test_other_users_category_looks_missing() -> None:
    session = make_session()
    category = CategoryService(session, 1).create(
        CategoryIn(name="Food", kind=CategoryKind.expense)
    )
    intruder = CategoryService(session, 2)

    with pytest.raises(NotFound):
        intruder.get(category.id)
    with pytest.raises(NotFound):
        intruder.update(category.id, CategoryUpdate(name="Mine"))
    with pytest.raises(NotFound):
        intruder.delete(category.id)
    with pytest.raises(NotFound):
        intruder.get(9999)

    assert CategoryService(session, 1).get(category.id).name == "Food"


def test_delete_category_in_use_conflicts() -> None:
    session = make_session()
    service = CategoryService(session, 1)
    food = service.create(CategoryIn(name="Food", kind=CategoryKind.expense))
    TransactionService(session, 1).create(
        TransactionIn(
            category_id=food.id,
            amount=Decimal("12.50"),
            transaction_date="2024-01-20",
        )
    )

    with pytest.raises(ReferentialConflict):
        service.delete(food.id)

    assert service.get(food.id).name == "Food"
    assert LedgerStore(session).count_transactions_for_category(food.id) == 1


def test_delete_unused_category_then_lookup_is_not_found() -> None:
    session = make_session()
    service = CategoryService(session, 1)
    food = service.create(CategoryIn(name="Food", kind=CategoryKind.expense))

    service.delete(food.id)

    with pytest.raises(NotFound):
        service.get(food.id)
    with pytest.raises(NotFound):
        service.delete(food.id)
    assert service.list_all() == []


def test_category_freed_after_its_transactions_are_deleted() -> None:
    session = make_session()
    service = CategoryService(session, 1)
    txns = TransactionService(session, 1)
    food = service.create(CategoryIn(name="Food", kind=CategoryKind.expense))
    txn = txns.create(
        TransactionIn(
            category_id=food.id,
            amount=Decimal("3.00"),
            transaction_date=date(2024, 3, 1),
        )
    )

    with pytest.raises(ReferentialConflict):
        service.delete(food.id)
    txns.delete(txn.id)
    service.delete(food.id)

    with pytest.raises(NotFound):
        service.get(food.id)


def test_update_logs_changed_fields(caplog) -> None:
    session = make_session()
    service = CategoryService(session, 1)
    category = service.create(CategoryIn(name="Food", kind=CategoryKind.expense))

    with caplog.at_level(logging.INFO, logger="services"):
        service.update(category.id, CategoryUpdate(name="Groceries", color="#123456"))

    assert (
        f"category_updated: user_id=1 id={category.id} fields=color,name"
        in caplog.text
    )
