from __future__ import annotations

from typing import Any, Union

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

# Sessions and bare connections expose the same execute() signature.
Executor = Union[AsyncSession, AsyncConnection]


async def execute(conn: Executor, sql: str, params: dict[str, Any] | None = None) -> None:
    await conn.execute(text(sql), params or {})


async def fetch_all(conn: Executor, sql: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
    res = await conn.execute(text(sql), params or {})
    return [dict(r._mapping) for r in res.fetchall()]


async def fetch_one(conn: Executor, sql: str, params: dict[str, Any] | None = None) -> dict[str, Any] | None:
    res = await conn.execute(text(sql), params or {})
    row = res.fetchone()
    return dict(row._mapping) if row else None


async def fetch_scalar(conn: Executor, sql: str, params: dict[str, Any] | None = None) -> Any:
    res = await conn.execute(text(sql), params or {})
    return res.scalar()
