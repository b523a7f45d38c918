import itertools
import os

# src.db и src.utils.telegram_dep читают окружение при импорте
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:TEST-TOKEN")

import pytest
from fastapi import Depends, HTTPException
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from src.db import Base, get_db, make_engine
from src.models.group import GroupPrivacy
from src.models.group_member import GroupRole
from src.models.user import User
from src.services.group_membership import add_member
from src.services.groups import create_group
from src.utils.telegram_dep import get_current_telegram_user, get_optional_telegram_user


@pytest.fixture
def engine(tmp_path):
    """Файловая SQLite на тест: нужна отдельным потокам в тестах гонок."""
    eng = make_engine(f"sqlite:///{tmp_path / 'groups.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(username=None, *, is_admin=False):
        n = next(counter)
        user = User(
            telegram_id=100000 + n,
            username=username or f"user{n}",
            name=username or f"User {n}",
            is_admin=is_admin,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_group(db):
    def _make(owner, privacy=GroupPrivacy.moderator_invite, name="Hiking club"):
        return create_group(db, owner_id=owner.id, name=name, privacy=privacy)

    return _make


@pytest.fixture
def join(db):
    """Добавить пользователя в группу с ролью (member по умолчанию)."""

    def _join(group, user, role=GroupRole.member):
        membership = add_member(db, group.id, user.id, role)
        assert membership is not None
        return membership

    return _join


class AuthState:
    """Кого ручки считают текущим пользователем (вместо валидации initData)."""

    def __init__(self):
        self.user_id = None

    def login(self, user):
        self.user_id = user.id

    def logout(self):
        self.user_id = None


@pytest.fixture
def auth():
    return AuthState()


@pytest.fixture
def client(session_factory, auth):
    from src.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def _optional_user(db: Session = Depends(get_db)):
        if auth.user_id is None:
            return None
        return db.get(User, auth.user_id)

    def _current_user(db: Session = Depends(get_db)):
        if auth.user_id is None:
            raise HTTPException(status_code=401, detail={"code": "not_authenticated", "message": "Please sign in"})
        return db.get(User, auth.user_id)

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_optional_telegram_user] = _optional_user
    app.dependency_overrides[get_current_telegram_user] = _current_user
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
