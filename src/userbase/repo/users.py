from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from userbase.schemas import User
from userbase.sql import fetch_all, fetch_one, fetch_scalar

_COLUMNS = "id, username, email, created_at, updated_at"


class UserRepository:
    """Raw-SQL access to the ``users`` table over one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def count(self) -> int:
        return int(await fetch_scalar(self.session, "SELECT COUNT(*) FROM users") or 0)

    async def list_all(self) -> list[User]:
        rows = await fetch_all(self.session, f"SELECT {_COLUMNS} FROM users ORDER BY created_at DESC")
        return [User(**r) for r in rows]

    async def get_by_id(self, user_id: int) -> User | None:
        row = await fetch_one(self.session, f"SELECT {_COLUMNS} FROM users WHERE id = :id", {"id": user_id})
        return User(**row) if row else None

    async def get_by_username(self, username: str) -> User | None:
        row = await fetch_one(
            self.session,
            f"SELECT {_COLUMNS} FROM users WHERE username = :username",
            {"username": username},
        )
        return User(**row) if row else None

    async def username_exists(self, username: str) -> bool:
        return bool(
            await fetch_scalar(
                self.session,
                "SELECT EXISTS (SELECT 1 FROM users WHERE username = :username)",
                {"username": username},
            )
        )

    async def email_exists(self, email: str) -> bool:
        return bool(
            await fetch_scalar(
                self.session,
                "SELECT EXISTS (SELECT 1 FROM users WHERE email = :email)",
                {"email": email},
            )
        )

    async def created_after(self, since: datetime) -> list[User]:
        rows = await fetch_all(
            self.session,
            f"SELECT {_COLUMNS} FROM users WHERE created_at >= :since ORDER BY created_at DESC",
            {"since": since},
        )
        return [User(**r) for r in rows]

    async def create(self, username: str, email: str) -> User:
        row = await fetch_one(
            self.session,
            f"""
            INSERT INTO users(username, email, created_at, updated_at)
            VALUES (:username, :email, NOW(), NOW())
            RETURNING {_COLUMNS}
            """,
            {"username": username, "email": email},
        )
        if row is None:
            raise RuntimeError("INSERT ... RETURNING produced no row")
        await self.session.commit()
        return User(**row)
