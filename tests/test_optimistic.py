"""Tests for the two-phase optimistic view."""

from dataclasses import dataclass

import pytest

from spendshare.processing.optimistic import OptimisticView


@dataclass
class Row:
    id: object
    amount: int


def test_tentative_add_shows_first_then_commits():
    view = OptimisticView([Row(1, 10)])
    temp = view.add(Row("pending", 25))

    assert [r.amount for r in view.rows()] == [25, 10]
    assert view.pending == [temp]

    view.commit(temp, Row(2, 25))

    assert [r.id for r in view.rows()] == [1, 2]
    assert view.pending == []


def test_rollback_removes_whole_change():
    view = OptimisticView([Row(1, 10), Row(2, 20)])
    added = view.add(Row("x", 5))
    deleted = view.delete(2)

    assert [r.id for r in view.rows()] == ["x", 1]

    view.rollback(added)
    view.rollback(deleted)

    assert [r.id for r in view.rows()] == [1, 2]


def test_committed_delete_drops_row():
    view = OptimisticView([Row(1, 10)])
    temp = view.delete(1)
    view.commit(temp)

    assert view.rows() == []


def test_delete_unknown_row_raises():
    view = OptimisticView([])
    with pytest.raises(KeyError):
        view.delete(99)


def test_reset_keeps_tentative_changes():
    view = OptimisticView([Row(1, 10)])
    view.add(Row("t", 1))

    view.reset([Row(1, 10), Row(3, 30)])

    assert [r.id for r in view.rows()] == ["t", 1, 3]
