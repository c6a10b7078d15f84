"""Command-line interface for spendshare.

Every command acts on behalf of the user given with ``--as``; the CLI plays
the part of the auth collaborator for local use.
"""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import click
from sqlalchemy.orm import Session

from spendshare.core.database import SessionLocal, init_db
from spendshare.core.errors import SpendShareError
from spendshare.core.logging_setup import configure_logging
from spendshare.services import (
    budget_service,
    category_service,
    group_service,
    invitation_service,
    profile_service,
)
from spendshare.web.serializers import overview_dict

as_option = click.option("--as", "user_id", required=True, help="User id to act as")


@contextmanager
def _session() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    except SpendShareError as exc:
        db.rollback()
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)
    finally:
        db.close()


@click.group()
@click.option("--log-level", default=None, help="Override SPENDSHARE_LOG_LEVEL")
def main(log_level: Optional[str]) -> None:
    """Shared budgets for groups."""
    configure_logging(log_level)


@main.command("init")
def init_command() -> None:
    """Create data directories and database tables."""
    from spendshare.core.config import settings

    settings.DB_DIR.mkdir(parents=True, exist_ok=True)
    init_db()
    click.echo(f"Database ready at {settings.DATABASE_URL}")


@main.command("register")
@as_option
@click.option("--email", required=True)
@click.option("--name", "display_name", default=None)
@click.option("--seed/--no-seed", default=True, help="Create the default categories")
def register_command(user_id: str, email: str, display_name: Optional[str], seed: bool) -> None:
    """Record a user's profile and verified email."""
    with _session() as db:
        profile = profile_service.register_profile(db, user_id, email, display_name)
        click.echo(f"Registered {profile.user_id} <{profile.email}>")
        if seed:
            created = category_service.seed_default_categories(db, user_id)
            click.echo(f"  {created} default categories created")


@main.command("create-group")
@as_option
@click.argument("name")
@click.option("--description", default=None)
def create_group_command(user_id: str, name: str, description: Optional[str]) -> None:
    with _session() as db:
        group = group_service.create_group(db, user_id, name, description)
        click.echo(f"Created group {group.id}: {group.name}")


@main.command("invite")
@as_option
@click.argument("group_id", type=int)
@click.argument("email")
def invite_command(user_id: str, group_id: int, email: str) -> None:
    """Invite an email address into a group."""
    with _session() as db:
        invitation = invitation_service.create_invitation(db, user_id, group_id, email)
        click.echo(f"Invitation {invitation.id} sent to {invitation.invited_email}")


@main.command("invitations")
@as_option
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def invitations_command(user_id: str, json_output: bool) -> None:
    """List pending invitations addressed to the user."""
    with _session() as db:
        views = invitation_service.list_pending_for_user(db, user_id)
        if json_output:
            payload = [
                {
                    "id": v.invitation.id,
                    "group_id": v.invitation.group_id,
                    "group_name": v.group_name,
                    "inviter_name": v.inviter_name,
                }
                for v in views
            ]
            click.echo(json.dumps(payload, indent=2))
            return
        if not views:
            click.echo("No pending invitations.")
        for v in views:
            inviter = v.inviter_name or v.invitation.invited_by
            click.echo(f"[{v.invitation.id}] {v.group_name} (from {inviter})")


@main.command("accept")
@as_option
@click.argument("invitation_id", type=int)
def accept_command(user_id: str, invitation_id: int) -> None:
    with _session() as db:
        invitation = invitation_service.accept_invitation(db, user_id, invitation_id)
        click.echo(f"Joined group {invitation.group_id}")


@main.command("decline")
@as_option
@click.argument("invitation_id", type=int)
def decline_command(user_id: str, invitation_id: int) -> None:
    with _session() as db:
        invitation_service.decline_invitation(db, user_id, invitation_id)
        click.echo(f"Declined invitation {invitation_id}")


@main.command("set-limit")
@as_option
@click.argument("amount", required=False)
@click.option("--group", "group_id", type=int, default=None, help="Group to set the limit on")
@click.option("--category", "category", default=None, help="Category id (personal) or name (group)")
@click.option("--clear", is_flag=True, help="Remove the limit instead of setting it")
def set_limit_command(
    user_id: str,
    amount: Optional[str],
    group_id: Optional[int],
    category: Optional[str],
    clear: bool,
) -> None:
    """Set or clear a daily limit.

    Without --category the aggregate limit of the user (or of --group) is
    changed.
    """
    if not clear and amount is None:
        raise click.UsageError("AMOUNT is required unless --clear is given")
    if group_id is None and category and not category.isdigit():
        raise click.UsageError("--category must be a category id for personal limits")
    with _session() as db:
        if group_id is not None and category:
            if clear:
                budget_service.remove_group_category_limit(db, user_id, group_id, category)
            else:
                budget_service.set_group_category_limit(db, user_id, group_id, category, amount)
        elif group_id is not None:
            if clear:
                group_service.clear_group_aggregate_limit(db, user_id, group_id)
            else:
                group_service.set_group_aggregate_limit(db, user_id, group_id, amount)
        elif category:
            if clear:
                budget_service.remove_category_limit(db, user_id, int(category))
            else:
                budget_service.set_category_limit(db, user_id, category, amount)
        else:
            profile_service.set_total_expenditure_limit(db, user_id, None if clear else amount)
        click.echo("Limit cleared." if clear else f"Limit set to {amount}.")


@main.command("status")
@as_option
@click.option("--group", "group_id", type=int, default=None)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def status_command(user_id: str, group_id: Optional[int], json_output: bool) -> None:
    """Show today's spend against active limits."""
    with _session() as db:
        if group_id is None:
            overview = budget_service.personal_budget_status(db, user_id)
        else:
            overview = budget_service.group_budget_status(db, user_id, group_id)
        if json_output:
            click.echo(json.dumps(overview_dict(overview), indent=2))
            return
        statuses = overview.categories + ([overview.total] if overview.total else [])
        if not statuses:
            click.echo("No active limits.")
        for s in statuses:
            flag = f"  OVER by {s.overspend}" if s.is_over_budget else ""
            click.echo(f"{s.label:<20} {s.spent:>10} / {s.limit:<10} {s.percentage:6.1f}%{flag}")


if __name__ == "__main__":
    main()
