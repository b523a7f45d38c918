# src/db.py
# Инициализация SQLAlchemy: движок, сессии, Base и явные импорты моделей.

from __future__ import annotations

import os
from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set")


def make_engine(url: str):
    """
    Пул соединений под PostgreSQL. Для SQLite (локальный запуск, тесты) пул по умолчанию,
    но разрешаем доступ к соединению из разных потоков и ждём блокировку записи.
    """
    if url.startswith("sqlite"):
        eng = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})

        # без этого SQLite игнорирует ON DELETE CASCADE / SET NULL
        @event.listens_for(eng, "connect")
        def _sqlite_fk_on(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

        return eng
    return create_engine(
        url,
        pool_size=20,
        max_overflow=20,
        pool_timeout=60,
        pool_recycle=1800,
        pool_pre_ping=True,
    )


engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

from src.models import (  # noqa: E402,F401
    user,
    group,
    group_member,
    group_invite,
)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
