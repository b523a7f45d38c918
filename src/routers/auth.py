# src/routers/auth.py
"""
Роутер авторизации через Telegram WebApp.
Валидирует initData, создаёт (если нет) или лениво обновляет пользователя и возвращает его.
Все остальные ручки пользователя не создают — сначала нужен вход здесь.
"""

import logging

from fastapi import APIRouter, HTTPException, Request, Depends
from sqlalchemy.orm import Session

from src.db import get_db
from src.schemas.user import UserOut
from src.models.user import User
from src.utils.telegram_dep import validate_and_sync_user

log = logging.getLogger(__name__)

router = APIRouter()


@router.post("/telegram", response_model=UserOut)
async def auth_via_telegram(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Точка входа для фронта (/api/auth/telegram).
    JSON: { "initData": "<строка из Telegram.WebApp.initData>" }
    """
    try:
        data = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail={"code": "invalid_json", "message": "Invalid JSON"})

    init_data = data.get("initData") if isinstance(data, dict) else None
    if not init_data:
        raise HTTPException(status_code=400, detail={"code": "init_data_required", "message": "initData is required"})

    user = validate_and_sync_user(init_data, db, create_if_missing=True)
    log.info("user %s signed in via Telegram", user.id)
    return user
