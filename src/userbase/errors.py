"""Failure taxonomy for the startup readiness sequence.

These exceptions are recorded on bootstrap results rather than raised across
the orchestrator boundary, so callers can inspect what went wrong.
"""
from __future__ import annotations

from typing import Sequence


class BootstrapError(Exception):
    """Base class for every readiness failure."""


class DatabaseUnavailable(BootstrapError):
    """The database could not be reached; the rest of the sequence is skipped."""


class ConnectionTimeout(DatabaseUnavailable):
    def __init__(self, attempts: int, last_error: str | None = None):
        self.attempts = attempts
        self.last_error = last_error
        msg = f"database not reachable after {attempts} attempt(s)"
        if last_error:
            msg = f"{msg}: {last_error}"
        super().__init__(msg)


class SchemaIncomplete(BootstrapError):
    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__(f"missing relations: {', '.join(self.missing)}")


class RepairFailed(BootstrapError):
    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__(f"relations still missing after reapplying migrations: {', '.join(self.missing)}")


class MigrationApplyError(BootstrapError):
    def __init__(self, phase: str, detail: str):
        self.phase = phase
        self.detail = detail
        super().__init__(f"migration apply failed during {phase}: {detail}")


class StageError(BootstrapError):
    """An unexpected exception escaped a bootstrap stage."""

    def __init__(self, stage: str, detail: str):
        self.stage = stage
        self.detail = detail
        super().__init__(f"{stage} failed: {detail}")
