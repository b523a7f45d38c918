# src/services/roles.py
# Иерархия ролей в группе: member < moderator < owner. Чистая логика, без БД.

from __future__ import annotations

from typing import Dict

from src.models.group_member import GroupRole

_RANK: Dict[GroupRole, int] = {
    GroupRole.member: 0,
    GroupRole.moderator: 1,
    GroupRole.owner: 2,
}


def role_rank(role: GroupRole) -> int:
    return _RANK[role]


def role_at_least(actual: GroupRole, required: GroupRole) -> bool:
    """True, если роль actual не ниже required (рефлексивно и транзитивно)."""
    return _RANK[actual] >= _RANK[required]
