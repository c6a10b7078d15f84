"""Tests for the command-line interface."""

import pytest
from click.testing import CliRunner
from sqlalchemy.orm import sessionmaker

from spendshare import cli


@pytest.fixture
def runner(engine, monkeypatch):
    monkeypatch.setattr(cli, "SessionLocal", sessionmaker(bind=engine))
    return CliRunner()


def invoke(runner, *args):
    return runner.invoke(cli.main, list(args))


def test_register_invite_accept(runner):
    assert invoke(runner, "register", "--as", "alice", "--email", "alice@example.com", "--name", "Alice").exit_code == 0
    assert invoke(runner, "register", "--as", "bob", "--email", "bob@example.com", "--no-seed").exit_code == 0

    created = invoke(runner, "create-group", "--as", "alice", "Flat")
    assert created.exit_code == 0
    assert "Created group 1" in created.output

    assert invoke(runner, "invite", "--as", "alice", "1", "bob@example.com").exit_code == 0
    listed = invoke(runner, "invitations", "--as", "bob")
    assert "Flat (from Alice)" in listed.output

    accepted = invoke(runner, "accept", "--as", "bob", "1")
    assert accepted.exit_code == 0
    assert "Joined group 1" in accepted.output


def test_errors_exit_non_zero(runner):
    invoke(runner, "register", "--as", "alice", "--email", "alice@example.com")

    result = invoke(runner, "accept", "--as", "alice", "42")

    assert result.exit_code == 1
    assert "Invitation 42 not found" in result.output


def test_set_limit_and_status(runner):
    invoke(runner, "register", "--as", "alice", "--email", "alice@example.com")
    invoke(runner, "create-group", "--as", "alice", "Flat")

    assert invoke(runner, "set-limit", "--as", "alice", "--group", "1", "--category", "Food", "300").exit_code == 0
    assert invoke(runner, "set-limit", "--as", "alice", "250").exit_code == 0

    status = invoke(runner, "status", "--as", "alice", "--group", "1")
    assert "Food" in status.output
    personal = invoke(runner, "status", "--as", "alice", "--json")
    assert '"total"' in personal.output

    assert invoke(runner, "set-limit", "--as", "alice").exit_code != 0
    assert invoke(runner, "set-limit", "--as", "alice", "--category", "Food", "10").exit_code != 0
