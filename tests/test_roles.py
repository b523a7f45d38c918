import itertools

import pytest

from src.models.group_member import GroupRole
from src.services.roles import role_at_least, role_rank


@pytest.mark.parametrize("role", list(GroupRole))
def test_role_at_least_is_reflexive(role):
    assert role_at_least(role, role)


def test_role_order():
    assert role_at_least(GroupRole.owner, GroupRole.moderator)
    assert role_at_least(GroupRole.moderator, GroupRole.member)
    assert role_at_least(GroupRole.owner, GroupRole.member)
    assert not role_at_least(GroupRole.member, GroupRole.moderator)
    assert not role_at_least(GroupRole.moderator, GroupRole.owner)


def test_role_order_is_transitive():
    for a, b, c in itertools.product(GroupRole, repeat=3):
        if role_at_least(a, b) and role_at_least(b, c):
            assert role_at_least(a, c)


def test_role_rank_follows_declaration_order():
    assert [role_rank(r) for r in GroupRole] == [0, 1, 2]
