# src/services/invite_redemption.py
# -----------------------------------------------------------------------------
# ПОГАШЕНИЕ ИНВАЙТА → ЧЛЕНСТВО В ГРУППЕ
# -----------------------------------------------------------------------------
# Одна транзакция: INSERT group_members + условный UPDATE счётчиков инвайта.
#
# Гонки решает БД, а не блокировки в процессе:
#   • UNIQUE (group_id, user_id) на group_members — один и тот же пользователь, N параллельных
#     запросов: побеждает один INSERT, остальные получают IntegrityError → already_member;
#   • UPDATE ... WHERE (NOT one_time_use OR NOT is_used) — одноразовый инвайт, разные
#     пользователи: счётчик сдвигает только первый, у остальных rowcount = 0 → exhausted;
#   • times_used = times_used + 1 считается в SQL — многоразовый инвайт не теряет инкременты.
#
# Всё, кроме ошибок инфраструктуры, возвращается как RedemptionOutcome (без исключений).
# -----------------------------------------------------------------------------

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.models.group_invite import GroupInvite
from src.models.group_member import GroupMember, GroupRole
from src.services.invites import get_invite, get_invite_by_code
from src.utils.dt import as_utc, utc_now

log = logging.getLogger(__name__)


class RedemptionStatus(str, enum.Enum):
    success = "success"
    not_found = "not_found"
    exhausted = "exhausted"
    expired = "expired"
    unauthorized = "unauthorized"
    already_member = "already_member"


class InviteState(str, enum.Enum):
    active = "active"
    exhausted = "exhausted"
    expired = "expired"


@dataclass(frozen=True)
class RedemptionOutcome:
    status: RedemptionStatus
    membership: Optional[GroupMember] = None
    invite: Optional[GroupInvite] = None

    @property
    def succeeded(self) -> bool:
        return self.status == RedemptionStatus.success


def invite_state(invite: GroupInvite, now: Optional[datetime] = None) -> InviteState:
    """Состояние инвайта на момент now. expires_at == now — уже истёк."""
    now = as_utc(now) or utc_now()
    if invite.one_time_use and invite.is_used:
        return InviteState.exhausted
    expires_at = as_utc(invite.expires_at)
    if expires_at is not None and expires_at <= now:
        return InviteState.expired
    return InviteState.active


def _membership_exists(db: Session, group_id: int, user_id: int) -> bool:
    return (
        db.scalar(
            select(GroupMember.id).where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
            )
        )
        is not None
    )


def redeem_invite(db: Session, code: str, user_id: int, *, now: Optional[datetime] = None) -> RedemptionOutcome:
    """Публичная точка входа: погашение по коду (без учёта регистра)."""
    return _redeem(db, get_invite_by_code(db, code), user_id, now=now)


def redeem_invite_by_id(db: Session, invite_id: int, user_id: int, *, now: Optional[datetime] = None) -> RedemptionOutcome:
    return _redeem(db, get_invite(db, invite_id), user_id, now=now)


def _redeem(
    db: Session,
    invite: Optional[GroupInvite],
    user_id: int,
    *,
    now: Optional[datetime],
) -> RedemptionOutcome:
    now = as_utc(now) or utc_now()

    if invite is None:
        return RedemptionOutcome(RedemptionStatus.not_found)

    # Персональный инвайт чужому пользователю — отказ при любом состоянии инвайта
    if invite.invited_user_id is not None and invite.invited_user_id != user_id:
        log.debug("invite %s: user %s is not the invitee", invite.id, user_id)
        return RedemptionOutcome(RedemptionStatus.unauthorized, invite=invite)

    invite_id = invite.id
    group_id = invite.group_id

    # Уже участник — already_member раньше проверки состояния: повторное погашение
    # своего же одноразового инвайта не должно выглядеть как «инвайт исчерпан»
    if _membership_exists(db, group_id, user_id):
        return RedemptionOutcome(RedemptionStatus.already_member, invite=invite)

    state = invite_state(invite, now)
    if state == InviteState.exhausted:
        return RedemptionOutcome(RedemptionStatus.exhausted, invite=invite)
    if state == InviteState.expired:
        return RedemptionOutcome(RedemptionStatus.expired, invite=invite)

    member = GroupMember(
        group_id=group_id,
        user_id=user_id,
        role=GroupRole.member,
        invite_id=invite_id,
        joined_at=now,
    )

    try:
        db.add(member)
        db.flush()

        res = db.execute(
            update(GroupInvite)
            .where(
                GroupInvite.id == invite_id,
                or_(GroupInvite.one_time_use.is_(False), GroupInvite.is_used.is_(False)),
            )
            .values(
                times_used=GroupInvite.times_used + 1,
                is_used=or_(GroupInvite.is_used, GroupInvite.one_time_use),
            )
            .execution_options(synchronize_session=False)
        )

        if res.rowcount == 0:
            # Одноразовый инвайт погасил кто-то другой между проверкой и записью
            db.rollback()
            return _classify_lost_race(db, invite_id, group_id, user_id)

        db.commit()
    except IntegrityError:
        db.rollback()
        if _membership_exists(db, group_id, user_id):
            # Параллельный запрос того же пользователя успел раньше
            log.info("invite %s: concurrent redemption by user %s resolved as already_member", invite_id, user_id)
            return RedemptionOutcome(RedemptionStatus.already_member, invite=db.get(GroupInvite, invite_id))
        raise

    db.refresh(member)
    invite = db.get(GroupInvite, invite_id)
    if invite is not None:
        db.refresh(invite)

    log.info("invite %s redeemed: user %s joined group %s", invite_id, user_id, group_id)
    return RedemptionOutcome(RedemptionStatus.success, membership=member, invite=invite)


def _classify_lost_race(db: Session, invite_id: int, group_id: int, user_id: int) -> RedemptionOutcome:
    invite = db.get(GroupInvite, invite_id)
    if invite is None:
        return RedemptionOutcome(RedemptionStatus.not_found)
    if _membership_exists(db, group_id, user_id):
        return RedemptionOutcome(RedemptionStatus.already_member, invite=invite)
    log.info("invite %s: one-time invite already consumed, user %s lost the race", invite_id, user_id)
    return RedemptionOutcome(RedemptionStatus.exhausted, invite=invite)
