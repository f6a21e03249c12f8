from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest

from userbase.schemas import User


class FakeStorage:
    """In-memory stand-in for the database.

    ``history`` models the migration version table: while it is present,
    applying migrations is a no-op, exactly like ``alembic upgrade head`` on a
    database whose version table says it is already at head.
    """

    def __init__(
        self,
        relations=(),
        *,
        history: bool = True,
        creates=("users",),
        ping_failures: int = 0,
        apply_failures: int = 0,
        drop_error: Exception | None = None,
        exists_error: Exception | None = None,
        info_error: Exception | None = None,
    ):
        self.relations = set(relations)
        self.history = history
        self.creates = tuple(creates)
        self.ping_failures = ping_failures
        self.apply_failures = apply_failures
        self.drop_error = drop_error
        self.exists_error = exists_error
        self.info_error = info_error
        self.calls: list = []

    async def ping(self, timeout: float) -> None:
        self.calls.append("ping")
        if self.ping_failures:
            self.ping_failures -= 1
            raise ConnectionRefusedError("connection refused")

    async def relation_exists(self, schema: str, name: str) -> bool:
        self.calls.append(("exists", schema, name))
        if self.exists_error is not None:
            raise self.exists_error
        return name in self.relations

    async def drop_migration_history(self) -> None:
        self.calls.append("drop")
        if self.drop_error is not None:
            raise self.drop_error
        if not self.history:
            raise RuntimeError('table "alembic_version" does not exist')
        self.history = False

    async def apply_migrations(self) -> None:
        self.calls.append("apply")
        if self.apply_failures:
            self.apply_failures -= 1
            raise RuntimeError("migration lock timeout")
        if self.history:
            return
        self.relations.update(self.creates)
        self.history = True

    async def server_info(self, timeout: float) -> dict[str, str]:
        self.calls.append("info")
        if self.info_error is not None:
            raise self.info_error
        return {
            "database": "userbase",
            "user": "app",
            "version": "PostgreSQL 16.4 on x86_64-pc-linux-gnu",
            "server": "db:5432",
        }


class FakeUsers:
    def __init__(self, users=(), *, lose_writes: bool = False):
        self.users: list[User] = list(users)
        self.lose_writes = lose_writes

    async def count(self) -> int:
        return len(self.users)

    async def list_all(self) -> list[User]:
        return sorted(self.users, key=lambda u: u.created_at, reverse=True)

    async def get_by_id(self, user_id: int) -> User | None:
        return next((u for u in self.users if u.id == user_id), None)

    async def get_by_username(self, username: str) -> User | None:
        return next((u for u in self.users if u.username == username), None)

    async def username_exists(self, username: str) -> bool:
        return any(u.username == username for u in self.users)

    async def email_exists(self, email: str) -> bool:
        return any(u.email == email for u in self.users)

    async def created_after(self, since: datetime) -> list[User]:
        return [u for u in self.users if u.created_at >= since]

    async def create(self, username: str, email: str) -> User:
        now = datetime.now(timezone.utc)
        user = User(id=len(self.users) + 1, username=username, email=email, created_at=now, updated_at=now)
        if not self.lose_writes:
            self.users.append(user)
        return user


def make_user(user_id: int, username: str, created_at: datetime | None = None) -> User:
    ts = created_at or datetime.now(timezone.utc)
    return User(id=user_id, username=username, email=f"{username}@example.com", created_at=ts, updated_at=ts)


def users_factory(store: FakeUsers):
    @asynccontextmanager
    async def _factory():
        yield store

    return _factory


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()
