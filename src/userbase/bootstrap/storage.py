"""Storage primitives the readiness sequence depends on.

The bootstrap components only ever talk to a ``Storage``; ``SqlAlchemyStorage``
is the production implementation on top of an async engine plus Alembic.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Protocol

from alembic import command
from alembic.config import Config
from sqlalchemy.ext.asyncio import AsyncEngine

from userbase.config import Settings
from userbase.sql import execute, fetch_one, fetch_scalar

_RELATION_EXISTS_SQL = """
    SELECT EXISTS (
        SELECT 1 FROM information_schema.tables
        WHERE table_schema = :schema AND table_name = :name
    )
"""

# src/userbase/bootstrap/storage.py -> repository root
PROJECT_ROOT = Path(__file__).resolve().parents[3]

_SERVER_INFO_SQL = "SELECT current_database() AS database, version() AS version, current_user AS \"user\""


class Storage(Protocol):
    async def ping(self, timeout: float) -> None: ...

    async def relation_exists(self, schema: str, name: str) -> bool: ...

    async def drop_migration_history(self) -> None: ...

    async def apply_migrations(self) -> None: ...

    async def server_info(self, timeout: float) -> dict[str, str]: ...


def migrations_path(settings: Settings) -> Path:
    """Relative paths are anchored on the repository root, not the working directory."""
    path = Path(settings.migrations_dir)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path.resolve()


def build_alembic_config(settings: Settings) -> Config:
    """Programmatic Alembic config; no ini file, so env.py leaves logging alone."""
    cfg = Config()
    cfg.set_main_option("script_location", str(migrations_path(settings)))
    # ConfigParser interpolation treats % specially (URL-encoded passwords).
    cfg.set_main_option("sqlalchemy.url", settings.database_url_sync.replace("%", "%%"))
    cfg.set_main_option("version_table", settings.migration_history_table)
    cfg.set_main_option("version_table_schema", settings.db_schema)
    cfg.attributes["configure_logger"] = False
    return cfg


class SqlAlchemyStorage:
    def __init__(
        self,
        engine: AsyncEngine,
        alembic_config: Config,
        history_table: str = "alembic_version",
        schema: str = "public",
    ):
        self.engine = engine
        self.alembic_config = alembic_config
        self.history_table = history_table
        self.schema = schema

    async def ping(self, timeout: float) -> None:
        async def _probe() -> None:
            async with self.engine.connect() as conn:
                await execute(conn, "SELECT 1")

        await asyncio.wait_for(_probe(), timeout=timeout)

    async def relation_exists(self, schema: str, name: str) -> bool:
        async with self.engine.connect() as conn:
            return bool(await fetch_scalar(conn, _RELATION_EXISTS_SQL, {"schema": schema, "name": name}))

    async def drop_migration_history(self) -> None:
        # Identifiers cannot be bound; quote through the dialect instead.
        preparer = self.engine.dialect.identifier_preparer
        table = f"{preparer.quote_schema(self.schema)}.{preparer.quote(self.history_table)}"
        async with self.engine.begin() as conn:
            await execute(conn, f"DROP TABLE {table} CASCADE")

    async def apply_migrations(self) -> None:
        # Alembic is synchronous and opens its own connection.
        await asyncio.to_thread(command.upgrade, self.alembic_config, "head")

    async def server_info(self, timeout: float) -> dict[str, str]:
        async def _query() -> dict[str, str]:
            async with self.engine.connect() as conn:
                row = await fetch_one(conn, _SERVER_INFO_SQL)
            info = {k: str(v) for k, v in (row or {}).items()}
            url = self.engine.url
            info["server"] = f"{url.host or 'localhost'}:{url.port or 5432}"
            return info

        return await asyncio.wait_for(_query(), timeout=timeout)
