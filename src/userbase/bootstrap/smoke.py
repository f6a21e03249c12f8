from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

import structlog

from userbase.bootstrap.results import SmokeResult
from userbase.bootstrap.storage import Storage
from userbase.schemas import User

log = structlog.get_logger(__name__)

TEST_USERNAME = "testuser"
TEST_EMAIL = "test@example.com"


class UserStore(Protocol):
    async def count(self) -> int: ...

    async def create(self, username: str, email: str) -> User: ...

    async def get_by_username(self, username: str) -> User | None: ...

    async def list_all(self) -> list[User]: ...

    async def created_after(self, since: datetime) -> list[User]: ...


UserStoreFactory = Callable[[], AbstractAsyncContextManager[UserStore]]


class SmokeTest:
    """Minimal read against the live database once the schema is in place."""

    def __init__(self, storage: Storage, timeout: float = 5.0):
        self.storage = storage
        self.timeout = timeout

    async def probe(self) -> SmokeResult:
        try:
            info = await self.storage.server_info(self.timeout)
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            log.error("db_smoke_test_failed", error=reason, exc_info=True)
            return SmokeResult.failed(reason)

        version = info.get("version", "")[:100]
        summary = f"database={info.get('database')} user={info.get('user')} version={version}"
        log.info(
            "db_smoke_test_passed",
            database=info.get("database"),
            user=info.get("user"),
            server=info.get("server"),
            version=version,
        )
        return SmokeResult.passed(summary)


class DataPathCheck:
    """Exercise count/create/read through the repository layer.

    An empty table gets a throwaway ``testuser`` which is then read back;
    otherwise the existing users are summarised.
    """

    def __init__(self, users: UserStoreFactory):
        self.users = users

    async def run(self) -> SmokeResult:
        try:
            async with self.users() as users:
                return await self._check(users)
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            log.error("data_path_check_failed", error=reason, exc_info=True)
            return SmokeResult.failed(reason)

    async def _check(self, users: UserStore) -> SmokeResult:
        count = await users.count()
        log.info("data_path_user_count", count=count)

        if count == 0:
            created = await users.create(TEST_USERNAME, TEST_EMAIL)
            log.info("data_path_test_user_created", user_id=created.id, username=created.username)
            found = await users.get_by_username(TEST_USERNAME)
            if found is None:
                log.warning("data_path_read_back_failed", username=TEST_USERNAME)
                return SmokeResult.failed(f"created {TEST_USERNAME!r} but could not read it back")
            summary = f"created test user {found.username} ({found.email})"
        else:
            existing = await users.list_all()
            for u in existing:
                log.info("data_path_existing_user", username=u.username, email=u.email)
            summary = f"{len(existing)} existing user(s)"

        recent = await users.created_after(datetime.now(timezone.utc) - timedelta(days=1))
        log.info("data_path_recent_users", count=len(recent))
        return SmokeResult.passed(f"{summary}; {len(recent)} created in last 24h")
