from datetime import datetime, timedelta, timezone

import pytest

from src.models.group import GroupPrivacy
from src.models.group_invite import GroupInvite
from src.models.group_member import GroupRole
from src.schemas.group_invite import GroupInviteCreate, GroupInviteUpdate
from src.services import invites
from src.services.invite_redemption import RedemptionStatus, redeem_invite
from src.services.invites import (
    CODE_ALPHABET,
    InviteCodeGenerationError,
    build_invite,
    create_invite,
    generate_unique_invite_code,
    get_invite_by_code,
    invite_code_in_use,
    list_group_invites,
    list_invites_created_by,
    update_invite,
    validate_create_invite,
    validate_update_invite,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def setup(make_user, make_group, join):
    owner = make_user("owner")
    moderator = make_user("moder")
    member = make_user("member")
    group = make_group(owner)
    join(group, moderator, GroupRole.moderator)
    join(group, member)
    return group, owner, moderator, member


def _invite(db, group, creator, code, **kw):
    invite = GroupInvite(
        group_id=group.id,
        created_by_id=creator.id,
        code=code,
        created_at=NOW,
        one_time_use=kw.pop("one_time_use", True),
        **kw,
    )
    return create_invite(db, invite)


# --- коды ---

def test_generated_code_shape(db):
    code = generate_unique_invite_code(db, 8)
    assert len(code) == 8
    assert set(code) <= set(CODE_ALPHABET)


def test_code_in_use_is_case_insensitive(db, setup):
    group, owner, _, _ = setup
    _invite(db, group, owner, "AB12CD34")
    assert invite_code_in_use(db, "ab12cd34")
    assert not invite_code_in_use(db, "ZZ99ZZ99")
    assert get_invite_by_code(db, "ab12cd34").code == "AB12CD34"


def test_forced_collision_retries(db, setup, monkeypatch, caplog):
    group, owner, _, _ = setup
    _invite(db, group, owner, "AB12CD34")
    codes = iter(["ab12cd34", "QQ11WW22"])
    monkeypatch.setattr(invites, "_random_code", lambda length: next(codes))

    with caplog.at_level("WARNING", logger="src.services.invites"):
        code = generate_unique_invite_code(db, 8)

    assert code == "QQ11WW22"
    assert "collision" in caplog.text


def test_retry_budget_exhausted(db, setup, monkeypatch):
    group, owner, _, _ = setup
    _invite(db, group, owner, "AB12CD34")
    monkeypatch.setattr(invites, "_random_code", lambda length: "AB12CD34")
    with pytest.raises(InviteCodeGenerationError):
        generate_unique_invite_code(db, 8, max_retries=3)


# --- валидация создания ---

def test_moderator_can_create_in_moderator_invite_group(db, setup):
    group, _, moderator, _ = setup
    result = validate_create_invite(db, moderator.id, GroupInviteCreate(group_id=group.id), now=NOW)
    assert result.is_valid
    assert result.field_errors == {}


def test_member_cannot_create(db, setup):
    group, _, _, member = setup
    result = validate_create_invite(db, member.id, GroupInviteCreate(group_id=group.id), now=NOW)
    assert not result.is_valid
    assert result.unauthorized


def test_missing_group_is_not_found(db, setup):
    _, owner, _, _ = setup
    result = validate_create_invite(db, owner.id, GroupInviteCreate(group_id=9999), now=NOW)
    assert result.not_found
    assert not result.unauthorized


def test_owner_invite_requires_literal_owner(db, make_user, make_group, join):
    owner = make_user("o")
    admin = make_user("root", is_admin=True)
    moderator = make_user("m")
    group = make_group(owner, privacy=GroupPrivacy.owner_invite)
    join(group, moderator, GroupRole.moderator)

    request = GroupInviteCreate(group_id=group.id)
    assert validate_create_invite(db, moderator.id, request, now=NOW).unauthorized
    assert validate_create_invite(db, admin.id, request, now=NOW).unauthorized
    assert validate_create_invite(db, owner.id, request, now=NOW).is_valid


def test_target_username_rules(db, setup, make_user):
    group, owner, moderator, _ = setup
    guest = make_user("Guest")

    unknown = validate_create_invite(db, moderator.id, GroupInviteCreate(group_id=group.id, username="nobody"), now=NOW)
    assert not unknown.is_valid and "username" in unknown.field_errors

    self_target = validate_create_invite(db, moderator.id, GroupInviteCreate(group_id=group.id, username="moder"), now=NOW)
    assert "username" in self_target.field_errors

    multi = validate_create_invite(
        db, moderator.id, GroupInviteCreate(group_id=group.id, username="guest", one_time_use=False), now=NOW
    )
    assert "one_time_use" in multi.field_errors

    ok = validate_create_invite(db, moderator.id, GroupInviteCreate(group_id=group.id, username="@guest"), now=NOW)
    assert ok.is_valid
    assert ok.invited_user_id == guest.id


def test_expiry_must_be_in_future(db, setup):
    group, owner, _, _ = setup
    past = validate_create_invite(db, owner.id, GroupInviteCreate(group_id=group.id, expires_at=NOW), now=NOW)
    assert "expires_at" in past.field_errors

    naive_future = (NOW + timedelta(days=1)).replace(tzinfo=None)
    ok = validate_create_invite(db, owner.id, GroupInviteCreate(group_id=group.id, expires_at=naive_future), now=NOW)
    assert ok.is_valid
    assert ok.validated_expires_at == NOW + timedelta(days=1)


def test_field_errors_are_collected_together(db, setup):
    group, owner, _, _ = setup
    request = GroupInviteCreate(group_id=group.id, username="nobody", expires_at=NOW - timedelta(hours=1))
    result = validate_create_invite(db, owner.id, request, now=NOW)
    assert set(result.field_errors) == {"username", "expires_at"}


def test_build_and_create_invite(db, setup, make_user):
    group, owner, _, _ = setup
    guest = make_user("guest")
    request = GroupInviteCreate(group_id=group.id, username="guest", expires_at=NOW + timedelta(days=7))
    validation = validate_create_invite(db, owner.id, request, now=NOW)

    invite = create_invite(db, build_invite(db, owner.id, request, validation, now=NOW))

    assert invite.id is not None
    assert invite.invited_user_id == guest.id
    assert invite.one_time_use and not invite.is_used and invite.times_used == 0
    assert invite.code == invite.code.upper()
    assert [i.id for i in list_group_invites(db, group.id)] == [invite.id]


# --- валидация изменения ---

def test_update_targeted_invite_cannot_become_multi_use(db, setup, make_user):
    group, owner, _, _ = setup
    guest = make_user("guest")
    invite = _invite(db, group, owner, "TARGET01", invited_user_id=guest.id)
    result = validate_update_invite(db, owner.id, invite, GroupInviteUpdate(one_time_use=False), now=NOW)
    assert "one_time_use" in result.field_errors


def test_update_multi_use_used_twice_cannot_become_one_time(db, setup):
    group, owner, _, _ = setup
    invite = _invite(db, group, owner, "MULTI001", one_time_use=False, times_used=2)
    result = validate_update_invite(db, owner.id, invite, GroupInviteUpdate(one_time_use=True), now=NOW)
    assert "one_time_use" in result.field_errors


def test_update_multi_use_used_once_becomes_exhausted(db, setup):
    group, owner, _, _ = setup
    invite = _invite(db, group, owner, "MULTI002", one_time_use=False, times_used=1)
    request = GroupInviteUpdate(one_time_use=True)
    validation = validate_update_invite(db, owner.id, invite, request, now=NOW)
    assert validation.is_valid

    updated = update_invite(db, invite, request, validation)
    assert updated.one_time_use and updated.is_used


def test_used_one_time_invite_cannot_be_reopened(db, setup, make_user):
    group, owner, _, _ = setup
    first, second = make_user("first"), make_user("second")
    invite = _invite(db, group, owner, "ONCE0001")
    assert redeem_invite(db, invite.code, first.id, now=NOW).succeeded
    assert redeem_invite(db, invite.code, second.id, now=NOW).status == RedemptionStatus.exhausted

    reopen = GroupInviteUpdate(one_time_use=False)
    result = validate_update_invite(db, owner.id, invite, reopen, now=NOW)
    assert not result.is_valid
    assert "one_time_use" in result.field_errors

    keep = GroupInviteUpdate(one_time_use=True, expires_at=NOW + timedelta(days=1))
    validation = validate_update_invite(db, owner.id, invite, keep, now=NOW)
    assert validation.is_valid
    updated = update_invite(db, invite, keep, validation)
    assert updated.is_used
    assert redeem_invite(db, invite.code, second.id, now=NOW).status == RedemptionStatus.exhausted


def test_expired_invite_cannot_be_extended(db, setup, make_user):
    group, owner, _, _ = setup
    invite = _invite(db, group, owner, "LATE0001", expires_at=NOW + timedelta(hours=1))
    later = NOW + timedelta(hours=2)

    for request in (
        GroupInviteUpdate(expires_at=later + timedelta(days=7)),
        GroupInviteUpdate(expires_at=None),
    ):
        result = validate_update_invite(db, owner.id, invite, request, now=later)
        assert not result.is_valid
        assert "expires_at" in result.field_errors

    guest = make_user("guest")
    assert redeem_invite(db, invite.code, guest.id, now=later).status == RedemptionStatus.expired

def test_update_denied_for_member_and_missing(db, setup):
    group, owner, _, member = setup
    invite = _invite(db, group, owner, "EDIT0001")
    assert validate_update_invite(db, member.id, invite, GroupInviteUpdate(), now=NOW).unauthorized
    assert validate_update_invite(db, owner.id, None, GroupInviteUpdate(), now=NOW).not_found


def test_list_invites_created_by(db, setup, make_user, make_group):
    group, owner, moderator, _ = setup
    other_group = make_group(owner, name="Other")
    mine = _invite(db, group, moderator, "MINE0001")
    _invite(db, other_group, owner, "THEIRS01")
    assert [i.id for i in list_invites_created_by(db, moderator.id)] == [mine.id]
