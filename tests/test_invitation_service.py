"""Tests for the invitation lifecycle."""

import pytest

from spendshare.access.membership import is_member
from spendshare.core.errors import Conflict, InvalidInput, NotFound, Unauthorized
from spendshare.core.models import GroupInvitation, GroupMember, InvitationStatus, MemberRole
from spendshare.events.bus import EntityKind, Scope
from spendshare.services import invitation_service
from spendshare.services.group_service import create_group
from spendshare.services.invitation_service import (
    accept_invitation,
    create_invitation,
    decline_invitation,
    list_pending_for_user,
    revoke_invitation,
)
from spendshare.services.profile_service import register_profile


@pytest.fixture
def group(db_session, users, bus):
    return create_group(db_session, "alice", "Trip", bus=bus)


def test_member_joins_only_after_accept(db_session, group, bus):
    invitation = create_invitation(db_session, "alice", group.id, "Bob@Example.com ", bus=bus)

    assert invitation.status is InvitationStatus.PENDING
    assert invitation.invited_email == "bob@example.com"
    assert invitation.invited_user_id == "bob"
    assert not is_member(db_session, group.id, "bob")

    accept_invitation(db_session, "bob", invitation.id, bus=bus)

    assert is_member(db_session, group.id, "bob")
    assert invitation.status is InvitationStatus.ACCEPTED


def test_accept_twice_keeps_one_membership(db_session, group, bus):
    invitation = create_invitation(db_session, "alice", group.id, "bob@example.com", bus=bus)

    accept_invitation(db_session, "bob", invitation.id, bus=bus)
    accept_invitation(db_session, "bob", invitation.id, bus=bus)

    rows = db_session.query(GroupMember).filter_by(group_id=group.id, user_id="bob").all()
    assert len(rows) == 1
    assert invitation.status is InvitationStatus.ACCEPTED


def test_accept_absorbs_concurrent_membership_insert(db_session, group, bus, monkeypatch):
    """Another accept won the race: the unique violation is swallowed."""
    invitation = create_invitation(db_session, "alice", group.id, "bob@example.com", bus=bus)
    db_session.add(GroupMember(group_id=group.id, user_id="bob", role=MemberRole.MEMBER))
    db_session.commit()
    # Pretend the membership check ran before the other insert landed
    monkeypatch.setattr(invitation_service, "is_member", lambda db, group_id, user_id: False)

    accepted = accept_invitation(db_session, "bob", invitation.id, bus=bus)

    assert accepted.status is InvitationStatus.ACCEPTED
    assert accepted.invited_user_id == "bob"
    rows = db_session.query(GroupMember).filter_by(group_id=group.id, user_id="bob").all()
    assert len(rows) == 1


def test_reinvite_after_decline_reuses_row(db_session, group, bus):
    first = create_invitation(db_session, "alice", group.id, "carol@example.com", bus=bus)
    decline_invitation(db_session, "carol", first.id, bus=bus)
    assert first.status is InvitationStatus.DECLINED
    assert not is_member(db_session, group.id, "carol")

    again = create_invitation(db_session, "alice", group.id, "carol@example.com", bus=bus)

    assert again.id == first.id
    assert again.status is InvitationStatus.PENDING
    assert db_session.query(GroupInvitation).count() == 1


def test_reinvite_updates_inviter(db_session, group, bus):
    invitation = create_invitation(db_session, "alice", group.id, "bob@example.com", bus=bus)
    accept_invitation(db_session, "bob", invitation.id, bus=bus)
    first = create_invitation(db_session, "bob", group.id, "carol@example.com", bus=bus)
    decline_invitation(db_session, "carol", first.id, bus=bus)

    again = create_invitation(db_session, "alice", group.id, "carol@example.com", bus=bus)

    assert again.invited_by == "alice"


def test_duplicate_pending_invitation_conflicts(db_session, group, bus):
    create_invitation(db_session, "alice", group.id, "carol@example.com", bus=bus)
    with pytest.raises(Conflict):
        create_invitation(db_session, "alice", group.id, "carol@example.com", bus=bus)


def test_inviting_existing_member_conflicts(db_session, group, bus):
    with pytest.raises(Conflict):
        create_invitation(db_session, "alice", group.id, "alice@example.com", bus=bus)


def test_only_members_can_invite(db_session, group, bus):
    with pytest.raises(Unauthorized):
        create_invitation(db_session, "carol", group.id, "bob@example.com", bus=bus)
    with pytest.raises(NotFound):
        create_invitation(db_session, "alice", 999, "bob@example.com", bus=bus)
    with pytest.raises(InvalidInput):
        create_invitation(db_session, "alice", group.id, "not-an-email", bus=bus)


def test_terminal_states(db_session, group, bus):
    invitation = create_invitation(db_session, "alice", group.id, "bob@example.com", bus=bus)
    decline_invitation(db_session, "bob", invitation.id, bus=bus)
    # Declining again is harmless; accepting is not allowed
    decline_invitation(db_session, "bob", invitation.id, bus=bus)
    with pytest.raises(Conflict):
        accept_invitation(db_session, "bob", invitation.id, bus=bus)

    other = create_invitation(db_session, "alice", group.id, "carol@example.com", bus=bus)
    accept_invitation(db_session, "carol", other.id, bus=bus)
    with pytest.raises(Conflict):
        decline_invitation(db_session, "carol", other.id, bus=bus)
    assert is_member(db_session, group.id, "carol")


def test_only_addressee_can_answer(db_session, group, bus):
    invitation = create_invitation(db_session, "alice", group.id, "bob@example.com", bus=bus)

    with pytest.raises(Unauthorized):
        accept_invitation(db_session, "carol", invitation.id, bus=bus)
    # The inviter can see it but cannot accept on the invitee's behalf
    with pytest.raises(Unauthorized):
        accept_invitation(db_session, "alice", invitation.id, bus=bus)


def test_email_invitation_discovered_after_signup(db_session, group, bus):
    invitation = create_invitation(db_session, "alice", group.id, "dave@example.com", bus=bus)
    assert invitation.invited_user_id is None

    register_profile(db_session, "dave", "dave@example.com", "Dave")
    pending = list_pending_for_user(db_session, "dave")

    assert [v.invitation.id for v in pending] == [invitation.id]
    assert pending[0].group_name == "Trip"
    assert pending[0].inviter_name == "Alice"

    accept_invitation(db_session, "dave", invitation.id, bus=bus)
    assert invitation.invited_user_id == "dave"
    assert list_pending_for_user(db_session, "dave") == []


def test_pending_list_merges_id_and_email_matches(db_session, users, bus):
    g1 = create_group(db_session, "alice", "One", bus=bus)
    g2 = create_group(db_session, "bob", "Two", bus=bus)
    by_id = create_invitation(db_session, "alice", g1.id, "carol@example.com", bus=bus)
    by_email = GroupInvitation(group_id=g2.id, invited_by="bob", invited_email="carol@example.com")
    db_session.add(by_email)
    db_session.commit()

    pending = {v.invitation.id for v in list_pending_for_user(db_session, "carol")}

    assert pending == {by_id.id, by_email.id}
    assert list_pending_for_user(db_session, "alice") == []


def test_revoke_only_by_sender(db_session, group, bus):
    invitation = create_invitation(db_session, "alice", group.id, "bob@example.com", bus=bus)
    with pytest.raises(Unauthorized):
        revoke_invitation(db_session, "bob", invitation.id, bus=bus)

    revoke_invitation(db_session, "alice", invitation.id, bus=bus)
    assert db_session.query(GroupInvitation).count() == 0


def test_accept_notifies_group_and_user_scopes(db_session, group, bus):
    invitation = create_invitation(db_session, "alice", group.id, "bob@example.com", bus=bus)
    seen = []
    bus.subscribe(Scope.group(group.id), seen.append)

    accept_invitation(db_session, "bob", invitation.id, bus=bus)

    assert [e.entity for e in seen] == [EntityKind.GROUP_MEMBER, EntityKind.GROUP_INVITATION]
    user_events = bus.replay(Scope.user("bob"))
    assert EntityKind.GROUP_MEMBER in {e.entity for e in user_events}
