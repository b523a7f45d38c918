# src/main.py
# Главная точка входа FastAPI: группы, роли участников и инвайты.

from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dotenv import load_dotenv
load_dotenv()

from src.db import engine  # noqa: F401  инициализация БД/пула соединений

from src.routers.auth import router as auth_router
from src.routers.groups import router as groups_router
from src.routers.group_members import router as group_members_router
from src.routers.group_invites import router as group_invites_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Group Access Backend",
    description="Группы с ролями (member/moderator/owner), политики доступа и инвайты с погашением.",
)

_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()] or [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Подключение роутеров ---
app.include_router(auth_router,          prefix="/api/auth",   tags=["Авторизация"])
app.include_router(groups_router,        prefix="/api/groups", tags=["Группы"])
app.include_router(group_members_router, prefix="/api/groups", tags=["Участники групп"])
# Роутер инвайтов сам задаёт пути /groups/{id}/invites и /invites/{code} → общий префикс "/api"
app.include_router(group_invites_router, prefix="/api")


@app.get("/")
def root():
    """Простой healthcheck."""
    return {"message": "Group access backend работает!", "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("src.main:app", host="0.0.0.0", port=8000, reload=False)
