"""Tests for per-user categories."""

import pytest

from spendshare.core.errors import InvalidInput, Unauthorized
from spendshare.core.models import Budget, Category, Transaction, TransactionType
from spendshare.services.budget_service import set_category_limit
from spendshare.services.category_service import (
    DEFAULT_CATEGORIES,
    create_category,
    delete_category,
    list_categories,
    resolve_category,
    seed_default_categories,
    update_category,
)
from spendshare.services.group_service import create_group
from spendshare.services.invitation_service import accept_invitation, create_invitation
from spendshare.services.transaction_service import create_transaction

from conftest import TODAY


def test_seed_is_idempotent(db_session, users):
    create_category(db_session, "alice", " food ")

    created = seed_default_categories(db_session, "alice")

    assert created == len(DEFAULT_CATEGORIES) - 1
    assert seed_default_categories(db_session, "alice") == 0


def test_same_name_allowed_across_users(db_session, users):
    a = create_category(db_session, "alice", "Food")
    b = create_category(db_session, "bob", "Food")

    assert a.id != b.id
    assert [c.id for c in list_categories(db_session, "alice")] == [a.id]


def test_create_validates(db_session, users):
    with pytest.raises(InvalidInput):
        create_category(db_session, "alice", "  ")
    with pytest.raises(InvalidInput):
        create_category(db_session, "alice", "Gifts", "transfer")


def test_only_owner_updates_or_deletes(db_session, users):
    food = create_category(db_session, "alice", "Food")

    with pytest.raises(Unauthorized):
        update_category(db_session, "bob", food.id, name="Mine")
    with pytest.raises(Unauthorized):
        delete_category(db_session, "bob", food.id)

    renamed = update_category(db_session, "alice", food.id, name="Eating out", color="#000000")
    assert renamed.name == "Eating out"


def test_shared_categories_listed_on_request(db_session, users, bus):
    group = create_group(db_session, "alice", "Flat", bus=bus)
    invitation = create_invitation(db_session, "alice", group.id, "bob@example.com", bus=bus)
    accept_invitation(db_session, "bob", invitation.id, bus=bus)
    bobs = create_category(db_session, "bob", "Fuel")
    create_transaction(db_session, "bob", 30, date=TODAY, category_id=bobs.id, group_id=group.id, bus=bus)

    assert list_categories(db_session, "alice") == []
    shared = list_categories(db_session, "alice", include_shared=True)
    assert [c.id for c in shared] == [bobs.id]
    assert resolve_category(db_session, "alice", bobs.id).id == bobs.id


def test_resolve_rejects_bad_references(db_session, users):
    salary = create_category(db_session, "alice", "Salary", TransactionType.INCOME)

    with pytest.raises(InvalidInput):
        resolve_category(db_session, "alice", "abc")
    with pytest.raises(InvalidInput):
        resolve_category(db_session, "alice", 4242)
    with pytest.raises(InvalidInput):
        resolve_category(db_session, "bob", salary.id)
    with pytest.raises(InvalidInput):
        resolve_category(db_session, "alice", salary.id, expected_type=TransactionType.EXPENSE)


def test_delete_uncategorizes_transactions_and_drops_budgets(db_session, users, bus):
    food = create_category(db_session, "alice", "Food")
    tx = create_transaction(db_session, "alice", 10, date=TODAY, category_id=food.id, bus=bus)
    set_category_limit(db_session, "alice", food.id, 50, today=TODAY, bus=bus)

    delete_category(db_session, "alice", food.id)

    assert db_session.query(Category).count() == 0
    assert db_session.query(Budget).count() == 0
    assert db_session.get(Transaction, tx.id).category_id is None
