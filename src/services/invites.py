# src/services/invites.py
# -----------------------------------------------------------------------------
# ИНВАЙТЫ ГРУПП: генерация кодов, поиск, бизнес-валидация создания/редактирования.
# Погашение инвайта — в src/services/invite_redemption.py.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import os
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from src.models.group import GroupPrivacy
from src.models.group_invite import GroupInvite
from src.services.group_authorization import get_group, is_moderator
from src.schemas.group_invite import GroupInviteCreate, GroupInviteUpdate
from src.utils.dt import as_utc, utc_now
from src.utils.user import find_user_by_username

log = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = int(os.getenv("INVITE_CODE_LENGTH", "8"))
INVITE_CODE_MAX_RETRIES = int(os.getenv("INVITE_CODE_MAX_RETRIES", "10"))


class InviteCodeGenerationError(RuntimeError):
    """Пространство кодов исчерпано для текущей нагрузки — это ошибка конфигурации."""


@dataclass
class InviteValidationResult:
    is_valid: bool = True
    not_found: bool = False
    unauthorized: bool = False
    # поле запроса -> текст ошибки (для повторного показа формы)
    field_errors: Dict[str, str] = field(default_factory=dict)
    invited_user_id: Optional[int] = None
    validated_expires_at: Optional[datetime] = None

    def add_error(self, name: str, message: str) -> None:
        self.is_valid = False
        self.field_errors.setdefault(name, message)

    def deny(self, *, not_found: bool = False) -> "InviteValidationResult":
        self.is_valid = False
        if not_found:
            self.not_found = True
        else:
            self.unauthorized = True
        return self


# =========================
# КОДЫ
# =========================

def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def _random_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def invite_code_in_use(db: Session, code: str) -> bool:
    normalized = normalize_code(code)
    if not normalized:
        return False
    found = db.scalar(
        select(GroupInvite.id).where(func.upper(GroupInvite.code) == normalized).limit(1)
    )
    return found is not None


def generate_unique_invite_code(
    db: Session,
    length: Optional[int] = None,
    *,
    max_retries: Optional[int] = None,
) -> str:
    """
    Криптостойкий код из A-Z0-9, которого ещё нет среди инвайтов (без учёта регистра).
    8 символов — ~2.8e12 вариантов, так что повтор — редкость; после max_retries
    коллизий подряд бросаем InviteCodeGenerationError.
    Окончательная гарантия уникальности — UNIQUE на group_invites.code.
    """
    length = length or INVITE_CODE_LENGTH
    max_retries = max_retries or INVITE_CODE_MAX_RETRIES
    if length < 1:
        raise ValueError("invite code length must be positive")

    for attempt in range(1, max_retries + 1):
        code = _random_code(length)
        if not invite_code_in_use(db, code):
            return code
        log.warning("invite code collision (attempt %s/%s, length=%s)", attempt, max_retries, length)

    raise InviteCodeGenerationError(
        f"Failed to generate a unique invite code after {max_retries} retries (length={length})"
    )


# =========================
# ПОИСК
# =========================

def get_invite(db: Session, invite_id: int) -> Optional[GroupInvite]:
    return db.scalar(
        select(GroupInvite)
        .options(selectinload(GroupInvite.group), selectinload(GroupInvite.invited_user))
        .where(GroupInvite.id == invite_id)
    )


def get_invite_by_code(db: Session, code: str) -> Optional[GroupInvite]:
    normalized = normalize_code(code)
    if not normalized:
        return None
    return db.scalar(
        select(GroupInvite)
        .options(selectinload(GroupInvite.group))
        .where(func.upper(GroupInvite.code) == normalized)
    )


def list_group_invites(db: Session, group_id: int) -> List[GroupInvite]:
    stmt = (
        select(GroupInvite)
        .where(GroupInvite.group_id == group_id)
        .order_by(GroupInvite.created_at.desc(), GroupInvite.id.desc())
    )
    return list(db.scalars(stmt).all())


def list_invites_created_by(db: Session, user_id: int) -> List[GroupInvite]:
    stmt = (
        select(GroupInvite)
        .options(selectinload(GroupInvite.group))
        .where(GroupInvite.created_by_id == user_id)
        .order_by(GroupInvite.created_at.desc(), GroupInvite.id.desc())
    )
    return list(db.scalars(stmt).all())


# =========================
# ВАЛИДАЦИЯ
# =========================

def _may_issue_invites(db: Session, group, user_id: int) -> bool:
    """
    owner_invite — только буквальный владелец (без админского обхода);
    иначе — модератор или владелец.
    """
    if group.privacy == GroupPrivacy.owner_invite:
        return group.owner_id == user_id
    return is_moderator(db, group.id, user_id)


def _validate_expiry(result: InviteValidationResult, expires_at: Optional[datetime], now: datetime) -> None:
    expires_at = as_utc(expires_at)
    if expires_at is None:
        result.validated_expires_at = None
        return
    if expires_at <= now:
        result.add_error("expires_at", "Expiration must be a future date/time.")
        return
    result.validated_expires_at = expires_at


def validate_create_invite(
    db: Session,
    creator_id: Optional[int],
    request: GroupInviteCreate,
    *,
    now: Optional[datetime] = None,
) -> InviteValidationResult:
    """
    Все бизнес-правила создания инвайта — до записи в БД:
      1. группа существует (иначе not_found);
      2. owner_invite — создаёт только владелец; в остальных режимах — модератор+ (иначе unauthorized);
      3. username: должен существовать, не сам создатель, только одноразовый инвайт;
      4. expires_at, если задан, строго в будущем.
    """
    result = InviteValidationResult()
    now = as_utc(now) or utc_now()

    if creator_id is None:
        return result.deny()

    group = get_group(db, request.group_id)
    if group is None:
        return result.deny(not_found=True)

    if not _may_issue_invites(db, group, creator_id):
        log.debug("group %s: user %s may not issue invites (privacy=%s)", group.id, creator_id, group.privacy)
        return result.deny()

    username = (request.username or "").strip()
    if username:
        invited = find_user_by_username(db, username)
        if invited is None:
            result.add_error("username", "The specified user does not exist.")
        elif invited.id == creator_id:
            result.add_error("username", "You cannot invite yourself.")
        elif not request.one_time_use:
            result.add_error("one_time_use", "Invites for specific users cannot be multi-use.")
        else:
            result.invited_user_id = invited.id

    _validate_expiry(result, request.expires_at, now)
    return result


def validate_update_invite(
    db: Session,
    editor_id: Optional[int],
    invite: Optional[GroupInvite],
    request: GroupInviteUpdate,
    *,
    now: Optional[datetime] = None,
) -> InviteValidationResult:
    """Те же правила для редактирования срока и одноразовости существующего инвайта."""
    result = InviteValidationResult()
    now = as_utc(now) or utc_now()

    if editor_id is None:
        return result.deny()
    if invite is None:
        return result.deny(not_found=True)

    group = invite.group or get_group(db, invite.group_id)
    if group is None:
        return result.deny(not_found=True)

    if not _may_issue_invites(db, group, editor_id):
        return result.deny()

    # погашенный одноразовый и просроченный инвайты остаются такими навсегда
    if invite.one_time_use and invite.is_used and not request.one_time_use:
        result.add_error("one_time_use", "A used one-time invite cannot be reopened.")
    elif invite.invited_user_id is not None and not request.one_time_use:
        result.add_error("one_time_use", "Invites for specific users must be one-time use.")
    elif request.one_time_use and (invite.times_used or 0) > 1:
        result.add_error("one_time_use", "Invite has already been used more than once.")

    expires = as_utc(invite.expires_at)
    if expires is not None and expires <= now:
        result.add_error("expires_at", "An expired invite cannot be changed.")
    else:
        _validate_expiry(result, request.expires_at, now)

    result.invited_user_id = invite.invited_user_id
    return result


# =========================
# СОЗДАНИЕ / ИЗМЕНЕНИЕ
# =========================

def build_invite(
    db: Session,
    creator_id: int,
    request: GroupInviteCreate,
    validation: InviteValidationResult,
    *,
    now: Optional[datetime] = None,
    code_length: Optional[int] = None,
) -> GroupInvite:
    """Собирает GroupInvite из уже провалидированного запроса (с новым кодом)."""
    return GroupInvite(
        group_id=request.group_id,
        created_by_id=creator_id,
        invited_user_id=validation.invited_user_id,
        code=generate_unique_invite_code(db, code_length),
        created_at=as_utc(now) or utc_now(),
        expires_at=validation.validated_expires_at,
        one_time_use=request.one_time_use,
        is_used=False,
        times_used=0,
    )


def create_invite(db: Session, invite: GroupInvite) -> GroupInvite:
    """
    Сохраняет инвайт. Бизнес-правила не перепроверяет (см. validate_create_invite);
    IntegrityError по UNIQUE(code) пробрасывается — это последняя линия защиты.
    """
    invite.code = normalize_code(invite.code)
    db.add(invite)
    db.commit()
    db.refresh(invite)
    log.info("invite %s created for group %s by user %s", invite.id, invite.group_id, invite.created_by_id)
    return invite


def update_invite(
    db: Session,
    invite: GroupInvite,
    request: GroupInviteUpdate,
    validation: InviteValidationResult,
) -> GroupInvite:
    invite.one_time_use = request.one_time_use
    invite.expires_at = validation.validated_expires_at
    # многоразовый, уже использованный один раз, становится исчерпанным одноразовым
    invite.is_used = bool(invite.is_used or (request.one_time_use and (invite.times_used or 0) >= 1))
    db.add(invite)
    db.commit()
    db.refresh(invite)
    return invite
