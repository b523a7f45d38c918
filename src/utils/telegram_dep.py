# src/utils/telegram_dep.py
"""
Аутентификация API групп, участников и инвайтов через Telegram WebApp initData.
initData берётся из тела, заголовка X-Telegram-InitData или query; невалидные данные → 401
с кодом not_authenticated (тот же код, что у гардов групп).
- validate_and_sync_user: проверка подписи initData + синхронизация профиля (username нужен
  для адресных инвайтов)
- get_current_telegram_user: зависимость для ручек, где вход обязателен (создание группы, погашение инвайта)
- get_optional_telegram_user: без initData возвращает None; require_group_* сами отвечают 401
"""

import os
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from src.db import get_db
from src.models.user import User
from src.utils.user import get_display_name
from telegram_webapp_auth.auth import TelegramAuthenticator, generate_secret_key

TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN")
if not TELEGRAM_BOT_TOKEN:
    raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")

_auth_secret = generate_secret_key(TELEGRAM_BOT_TOKEN)
authenticator = TelegramAuthenticator(_auth_secret)


def _normalize_lang(code: Optional[str]) -> str:
    """
    Схлопываем код языка до {ru,en,es}.
    Если язык не пришёл — используем 'en'.
    """
    if not code:
        return "en"
    c = code.lower()
    if "-" in c:
        c = c.split("-")[0]
    return c if c in {"ru", "en", "es"} else "en"


def _get_init_data_from_request(request: Request, body: Optional[dict]) -> Optional[str]:
    """
    Пытаемся достать initData:
      - из JSON body (ключ 'initData')
      - из заголовка 'x-telegram-initdata'
      - из query (?init_data=...)
    """
    if body and isinstance(body, dict):
        v = body.get("initData")
        if isinstance(v, str) and v.strip():
            return v

    header_v = request.headers.get("x-telegram-initdata")
    if header_v:
        return header_v

    q = request.query_params.get("init_data")
    if q:
        return q

    return None


async def _read_init_data(request: Request) -> Optional[str]:
    body = None
    if request.method in {"POST", "PUT", "PATCH"}:
        try:
            body = await request.json()
        except Exception:
            # тело не JSON (или пустое) — initData ищем в заголовке/query
            body = None
    return _get_init_data_from_request(request, body)


def _apply_user_fields_from_tg(u: User, tg_user) -> bool:
    """
    Копируем в User поля из Telegram-профиля. Возвращает True, если что-то изменилось.
    """
    changed = False

    def upd(field: str, new_val):
        nonlocal changed
        if getattr(u, field) != new_val:
            setattr(u, field, new_val)
            changed = True

    first_name = getattr(tg_user, "first_name", None)
    last_name = getattr(tg_user, "last_name", None)
    username = getattr(tg_user, "username", None)

    upd("first_name", first_name)
    upd("last_name", last_name)
    upd("username", username)
    upd("photo_url", getattr(tg_user, "photo_url", None))
    upd("language_code", _normalize_lang(getattr(tg_user, "language_code", None)))
    upd("allows_write_to_pm", getattr(tg_user, "allows_write_to_pm", getattr(u, "allows_write_to_pm", True)))
    upd(
        "name",
        get_display_name(first_name=first_name, last_name=last_name, username=username, telegram_id=u.telegram_id),
    )
    return changed


def validate_and_sync_user(init_data: str, db: Session, *, create_if_missing: bool) -> User:
    """
    Валидирует initData, находит/создаёт пользователя и лениво обновляет его поля.
    """
    if not init_data:
        raise HTTPException(status_code=401, detail={"code": "not_authenticated", "message": "initData is required"})

    try:
        result = authenticator.validate(init_data)
    except Exception as e:
        raise HTTPException(status_code=401, detail={"code": "not_authenticated", "message": f"Auth error: {e}"})

    tg_user = result.user
    telegram_id = tg_user.id

    user: Optional[User] = db.query(User).filter_by(telegram_id=telegram_id).first()

    if not user:
        if not create_if_missing:
            raise HTTPException(status_code=401, detail={"code": "not_authenticated", "message": "User is not registered"})
        user = User(
            telegram_id=telegram_id,
            first_name=getattr(tg_user, "first_name", None),
            last_name=getattr(tg_user, "last_name", None),
            username=getattr(tg_user, "username", None),
            photo_url=getattr(tg_user, "photo_url", None),
            language_code=_normalize_lang(getattr(tg_user, "language_code", None)),
            allows_write_to_pm=getattr(tg_user, "allows_write_to_pm", True),
        )
        user.name = get_display_name(
            first_name=user.first_name,
            last_name=user.last_name,
            username=user.username,
            telegram_id=user.telegram_id,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    if _apply_user_fields_from_tg(user, tg_user):
        db.add(user)
        db.commit()
        db.refresh(user)

    return user


async def get_current_telegram_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Зависимость для защищённых ручек:
    - достаёт initData из запроса
    - валидирует
    - находит существующего пользователя
    """
    init_data = await _read_init_data(request)
    if not init_data:
        raise HTTPException(
            status_code=401,
            detail={
                "code": "not_authenticated",
                "message": "initData required (JSON 'initData', header 'x-telegram-initdata' or '?init_data=...')",
            },
        )

    return validate_and_sync_user(init_data, db, create_if_missing=False)


async def get_optional_telegram_user(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    """
    Для гардов групп: без initData — None (гард ответит 401 сам),
    с initData — как get_current_telegram_user.
    """
    init_data = await _read_init_data(request)
    if not init_data:
        return None
    return validate_and_sync_user(init_data, db, create_if_missing=False)
