# src/utils/user.py

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from src.models.user import User


def get_display_name(first_name: str = "", last_name: str = "", username: str = "", telegram_id: int = None) -> str:
    """
    Формирует отображаемое имя пользователя:
    1. Если есть first_name и last_name — склеивает через пробел.
    2. Если есть только first_name — его.
    3. Если нет имени — username.
    4. Если и username нет — Telegram ID.
    """
    name = " ".join(filter(None, [first_name, last_name]))
    if name.strip():
        return name.strip()
    if username:
        return username
    if telegram_id is not None:
        return str(telegram_id)
    return ""


def find_user_by_username(db: Session, username: str) -> Optional[User]:
    """Поиск по username без учёта регистра и ведущего '@'."""
    uname = (username or "").strip().lstrip("@")
    if not uname:
        return None
    return db.scalar(select(User).where(func.lower(User.username) == uname.lower()).limit(1))
