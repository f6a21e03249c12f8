from __future__ import annotations

from typing import Iterable

import structlog

from userbase.bootstrap.results import SchemaStatus, expected_schema
from userbase.bootstrap.storage import Storage

log = structlog.get_logger(__name__)


class SchemaVerifier:
    """Read-only check that each expected relation exists in the catalog.

    Every call queries storage again; results are never cached.
    """

    def __init__(self, storage: Storage, schema: str = "public"):
        self.storage = storage
        self.schema = schema

    async def verify(self, expected: Iterable[str]) -> SchemaStatus:
        presence: dict[str, bool] = {}
        for name in expected_schema(expected):
            presence[name] = await self.storage.relation_exists(self.schema, name)
        status = SchemaStatus(presence=presence)
        log.info("schema_verified", schema=self.schema, relations=presence, missing=status.missing)
        return status
