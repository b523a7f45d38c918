# src/routers/group_invites.py
# -----------------------------------------------------------------------------
# РОУТЕР: Инвайты групп
# -----------------------------------------------------------------------------
#   GET   /api/groups/{group_id}/invites                 — список (модератор+)
#   POST  /api/groups/{group_id}/invites                 — создать (модератор+; owner_invite — владелец)
#   PATCH /api/groups/{group_id}/invites/{invite_id}     — срок / одноразовость
#   GET   /api/invites/{code}                            — превью по коду
#   POST  /api/invites/{code}/redeem                     — погасить → членство
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from starlette import status
from sqlalchemy.orm import Session

from src.db import get_db
from src.models.group_invite import GroupInvite
from src.models.user import User
from src.schemas.group_member import GroupMemberOut
from src.schemas.group_invite import (
    GroupInviteCreate,
    GroupInviteCreateBody,
    GroupInviteOut,
    GroupInviteUpdate,
    InviteGroupShort,
    InviteStateEnum,
    InvitePreviewOut,
    InviteValidationErrorOut,
    RedeemOut,
)
from src.services.group_membership import get_membership
from src.services.invite_redemption import RedemptionStatus, invite_state, redeem_invite
from src.services.invites import (
    InviteValidationResult,
    build_invite,
    create_invite,
    get_invite,
    get_invite_by_code,
    list_group_invites,
    update_invite,
    validate_create_invite,
    validate_update_invite,
)
from src.utils.groups import require_group_moderator
from src.utils.telegram_dep import get_current_telegram_user

log = logging.getLogger(__name__)

router = APIRouter(tags=["Инвайты групп"])

APP_BASE_URL = (os.getenv("APP_BASE_URL") or "").strip().rstrip("/")


def _err(code: str, message: str) -> Dict[str, str]:
    return {"code": code, "message": message}


_INVALID_INVITE = "This invite is no longer valid"

# RedemptionStatus → (HTTP, code)
_REDEEM_ERRORS = {
    RedemptionStatus.not_found: (status.HTTP_404_NOT_FOUND, "invite_not_found"),
    RedemptionStatus.exhausted: (status.HTTP_410_GONE, "invite_exhausted"),
    RedemptionStatus.expired: (status.HTTP_410_GONE, "invite_expired"),
    RedemptionStatus.unauthorized: (status.HTTP_403_FORBIDDEN, "invite_not_for_you"),
    RedemptionStatus.already_member: (status.HTTP_409_CONFLICT, "already_member"),
}


# ---------------- helpers ----------------

def _redeem_link(code: str) -> Optional[str]:
    if not APP_BASE_URL:
        return None
    return f"{APP_BASE_URL}/invites/{code}"


def _invite_out(invite: GroupInvite) -> GroupInviteOut:
    out = GroupInviteOut.model_validate(invite)
    out.state = InviteStateEnum(invite_state(invite).value)
    out.redeem_link = _redeem_link(invite.code)
    return out


def _raise_for_validation(validation: InviteValidationResult) -> Optional[JSONResponse]:
    """Отказ (404/403) — исключением; ошибки полей — 422 с картой fields."""
    if validation.not_found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_err("invite_not_found", "Not found"))
    if validation.unauthorized:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=_err("forbidden", "You don't have permission to manage invites of this group"),
        )
    if not validation.is_valid:
        body = InviteValidationErrorOut(fields=validation.field_errors)
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": body.model_dump()})
    return None


# ---------------- управление инвайтами группы ----------------

@router.get("/groups/{group_id}/invites", response_model=List[GroupInviteOut])
def list_invites_endpoint(
    group_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_group_moderator()),
):
    return [_invite_out(inv) for inv in list_group_invites(db, group_id)]


@router.post(
    "/groups/{group_id}/invites",
    response_model=GroupInviteOut,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": InviteValidationErrorOut}},
)
def create_invite_endpoint(
    group_id: int,
    payload: GroupInviteCreateBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_group_moderator()),
):
    request = GroupInviteCreate(group_id=group_id, **payload.model_dump())
    validation = validate_create_invite(db, current_user.id, request)
    error_response = _raise_for_validation(validation)
    if error_response is not None:
        return error_response

    invite = create_invite(db, build_invite(db, current_user.id, request, validation))
    return _invite_out(invite)


@router.patch(
    "/groups/{group_id}/invites/{invite_id}",
    response_model=GroupInviteOut,
    responses={422: {"model": InviteValidationErrorOut}},
)
def update_invite_endpoint(
    group_id: int,
    invite_id: int,
    payload: GroupInviteUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_group_moderator()),
):
    invite = get_invite(db, invite_id)
    if invite is not None and invite.group_id != group_id:
        invite = None

    validation = validate_update_invite(db, current_user.id, invite, payload)
    error_response = _raise_for_validation(validation)
    if error_response is not None:
        return error_response

    return _invite_out(update_invite(db, invite, payload, validation))


# ---------------- по коду ----------------

@router.get("/invites/{code}", response_model=InvitePreviewOut)
def preview_invite_endpoint(
    code: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_telegram_user),
):
    """
    Превью для экрана «Вступить в группу».
    Чужой персональный инвайт неотличим от несуществующего.
    """
    invite = get_invite_by_code(db, code)
    if invite is None or (invite.invited_user_id is not None and invite.invited_user_id != current_user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_err("invite_not_found", _INVALID_INVITE))

    return InvitePreviewOut(
        code=invite.code,
        group=InviteGroupShort.model_validate(invite.group),
        state=InviteStateEnum(invite_state(invite).value),
        personal=invite.invited_user_id is not None,
        already_member=get_membership(db, invite.group_id, current_user.id) is not None,
    )


@router.post("/invites/{code}/redeem", response_model=RedeemOut)
def redeem_invite_endpoint(
    code: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_telegram_user),
):
    outcome = redeem_invite(db, code, current_user.id)
    if outcome.succeeded:
        return RedeemOut(status=outcome.status.value, membership=GroupMemberOut.model_validate(outcome.membership))

    log.debug("redeem of invite %r by user %s denied: %s", code, current_user.id, outcome.status.value)
    http_status, err_code = _REDEEM_ERRORS[outcome.status]
    message = "You are already a member of this group" if outcome.status == RedemptionStatus.already_member else _INVALID_INVITE
    raise HTTPException(status_code=http_status, detail=_err(err_code, message))
