"""
Идемпотентный сидинг системного администратора и стартовой группы. Запуск:
  $ python -m src.scripts.seed_admin

ENV:
  BOOTSTRAP_ADMIN_TELEGRAM_ID — telegram_id администратора (обязателен)
  BOOTSTRAP_ADMIN_USERNAME    — username (опционально)
  BOOTSTRAP_GROUP_NAME        — имя стартовой группы (по умолчанию "Administrators")

Повторный запуск ничего не дублирует: пользователь ищется по telegram_id,
группа — по (owner_id, name), членство владельца досоздаётся при отсутствии.
"""
from __future__ import annotations

import logging
import os
from typing import Optional, Tuple

from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.db import SessionLocal
from src.models.group import Group, GroupPrivacy
from src.models.group_member import GroupMember, GroupRole
from src.models.user import User
from src.utils.dt import utc_now
from src.utils.user import get_display_name

load_dotenv()

log = logging.getLogger(__name__)

DEFAULT_GROUP_NAME = "Administrators"


def seed(
    db: Session,
    telegram_id: int,
    username: Optional[str] = None,
    group_name: str = DEFAULT_GROUP_NAME,
) -> Tuple[User, Group]:
    admin = db.scalar(select(User).where(User.telegram_id == telegram_id))
    if admin is None:
        admin = User(
            telegram_id=telegram_id,
            username=username,
            name=get_display_name(username=username, telegram_id=telegram_id),
            is_admin=True,
        )
        db.add(admin)
        db.flush()
        log.info("admin user created (telegram_id=%s)", telegram_id)
    else:
        admin.is_admin = True
        if username and not admin.username:
            admin.username = username

    group = db.scalar(select(Group).where(Group.owner_id == admin.id, Group.name == group_name))
    now = utc_now()
    if group is None:
        group = Group(
            name=group_name,
            description="",
            owner_id=admin.id,
            privacy=GroupPrivacy.owner_invite,
            created_at=now,
        )
        db.add(group)
        db.flush()
        log.info("bootstrap group %s created", group.id)

    membership = db.scalar(
        select(GroupMember).where(GroupMember.group_id == group.id, GroupMember.user_id == admin.id)
    )
    if membership is None:
        db.add(GroupMember(group_id=group.id, user_id=admin.id, role=GroupRole.owner, joined_at=now))
    elif membership.role != GroupRole.owner:
        membership.role = GroupRole.owner

    db.commit()
    db.refresh(admin)
    db.refresh(group)
    return admin, group


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    raw_id = (os.getenv("BOOTSTRAP_ADMIN_TELEGRAM_ID") or "").strip()
    if not raw_id:
        raise SystemExit("BOOTSTRAP_ADMIN_TELEGRAM_ID is not set")

    db = SessionLocal()
    try:
        admin, group = seed(
            db,
            telegram_id=int(raw_id),
            username=(os.getenv("BOOTSTRAP_ADMIN_USERNAME") or "").strip() or None,
            group_name=(os.getenv("BOOTSTRAP_GROUP_NAME") or DEFAULT_GROUP_NAME).strip(),
        )
    finally:
        db.close()
    print(f"OK: admin user {admin.id}, group {group.id} ({group.name})")


if __name__ == "__main__":
    main()
