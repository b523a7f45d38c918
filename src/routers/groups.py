# src/routers/groups.py
# -----------------------------------------------------------------------------
# РОУТЕР: Группы
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Response
from starlette import status
from sqlalchemy.orm import Session

from src.db import get_db
from src.models.group import GroupPrivacy
from src.models.user import User
from src.schemas.group import GroupCreate, GroupOut, GroupUpdate
from src.services.group_membership import MembershipChange, join_open_group, leave_group
from src.services.groups import create_group, delete_group, list_groups_for_user, update_group
from src.utils.groups import (
    get_group_or_404,
    require_group_member,
    require_group_moderator,
    require_group_owner,
)
from src.utils.telegram_dep import get_current_telegram_user

router = APIRouter()


def _err(code: str, message: str) -> Dict[str, str]:
    return {"code": code, "message": message}


@router.post("", response_model=GroupOut, status_code=status.HTTP_201_CREATED)
def create_group_endpoint(
    payload: GroupCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_telegram_user),
):
    """Создать группу. Создатель — владелец и участник с ролью owner."""
    return create_group(
        db,
        owner_id=current_user.id,
        name=payload.name,
        description=payload.description,
        privacy=GroupPrivacy(payload.privacy.value),
    )


@router.get("", response_model=List[GroupOut])
def my_groups(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_telegram_user),
):
    return list_groups_for_user(db, current_user.id)


@router.get("/{group_id}", response_model=GroupOut)
def get_group_endpoint(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_group_member()),
):
    return get_group_or_404(db, group_id)


@router.patch("/{group_id}", response_model=GroupOut)
def update_group_endpoint(
    group_id: int,
    payload: GroupUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_group_moderator()),
):
    """
    Название/описание — модератор+.
    Режим приглашений (privacy) — только владелец.
    """
    group = get_group_or_404(db, group_id)
    updated = update_group(
        db,
        group,
        current_user,
        name=payload.name,
        description=payload.description,
        privacy=GroupPrivacy(payload.privacy.value) if payload.privacy is not None else None,
    )
    if updated is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=_err("not_owner", "Only the owner can change the invite policy"),
        )
    return updated


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_group_endpoint(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_group_owner()),
):
    """Удаление группы — владелец или админ. Участники и инвайты удаляются каскадом."""
    group = get_group_or_404(db, group_id)
    delete_group(db, group)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{group_id}/join", response_model=dict)
def join_group_endpoint(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_telegram_user),
):
    """Вступить в открытую группу без инвайта."""
    result = join_open_group(db, group_id, current_user.id)
    if result == MembershipChange.group_not_found:
        raise HTTPException(status_code=404, detail=_err("group_not_found", "Group not found"))
    if result == MembershipChange.already_member:
        raise HTTPException(status_code=409, detail=_err("already_member", "You are already a member of this group"))
    if result == MembershipChange.not_open:
        raise HTTPException(status_code=403, detail=_err("invite_required", "This group can only be joined by invite"))
    return {"success": True, "group_id": group_id}


@router.post("/{group_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
def leave_group_endpoint(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_group_member()),
):
    result = leave_group(db, group_id, current_user.id)
    if result == MembershipChange.owner_protected:
        raise HTTPException(
            status_code=409,
            detail=_err("owner_cannot_leave", "Group owners cannot leave their own group"),
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
