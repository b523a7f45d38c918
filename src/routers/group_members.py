# src/routers/group_members.py
# РОУТЕР УЧАСТНИКОВ ГРУППЫ
# -----------------------------------------------------------------------------
# Состав видят участники; роли и исключение — только владелец (или админ).

from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Response
from starlette import status
from sqlalchemy.orm import Session

from src.db import get_db
from src.models.group_member import GroupRole
from src.models.user import User
from src.schemas.group_member import GroupMemberOut, GroupMemberRoleUpdate
from src.services.group_membership import (
    MembershipChange,
    get_membership,
    list_members,
    remove_member,
    update_member_role,
)
from src.utils.groups import get_group_or_404, require_group_member, require_group_owner

router = APIRouter()


def _err(code: str, message: str) -> Dict[str, str]:
    return {"code": code, "message": message}


_CHANGE_ERRORS = {
    MembershipChange.not_member: (404, "member_not_found", "Member not found"),
    MembershipChange.owner_protected: (409, "owner_protected", "The group owner's membership cannot be changed"),
    MembershipChange.invalid_role: (400, "invalid_role", "Ownership transfers are not supported here"),
}


def _raise_for_change(result: MembershipChange) -> None:
    if result == MembershipChange.ok:
        return
    code, err_code, message = _CHANGE_ERRORS[result]
    raise HTTPException(status_code=code, detail=_err(err_code, message))


@router.get("/{group_id}/members", response_model=List[GroupMemberOut])
def get_members_for_group(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_group_member()),
):
    return list_members(db, group_id)


@router.patch("/{group_id}/members/{user_id}", response_model=GroupMemberOut)
def update_member_role_endpoint(
    group_id: int,
    user_id: int,
    payload: GroupMemberRoleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_group_owner()),
):
    """Повысить до модератора / понизить до участника."""
    get_group_or_404(db, group_id)
    if user_id == current_user.id:
        raise HTTPException(status_code=400, detail=_err("cannot_change_own_role", "You cannot change your own role"))

    _raise_for_change(update_member_role(db, group_id, user_id, GroupRole(payload.role.value)))
    return get_membership(db, group_id, user_id)


@router.delete("/{group_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member_endpoint(
    group_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_group_owner()),
):
    get_group_or_404(db, group_id)
    if user_id == current_user.id:
        raise HTTPException(status_code=400, detail=_err("cannot_remove_self", "You cannot remove yourself from your own group"))

    _raise_for_change(remove_member(db, group_id, user_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
