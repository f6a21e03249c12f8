"""Startup readiness sequence.

Gate -> reconcile -> smoke probe -> data-path check. The run is fail-open:
whatever happens, ``run()`` returns a report and the web server still starts.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

import structlog

from userbase.bootstrap.gate import ConnectivityGate
from userbase.bootstrap.reconciler import MigrationReconciler
from userbase.bootstrap.results import (
    EXPECTED_RELATIONS,
    BootstrapReport,
    BootstrapStatus,
    ReconcileOutcome,
    expected_schema,
)
from userbase.bootstrap.schema import SchemaVerifier
from userbase.bootstrap.smoke import DataPathCheck, SmokeTest
from userbase.bootstrap.storage import SqlAlchemyStorage, Storage, build_alembic_config
from userbase.config import Settings, settings as default_settings
from userbase.db import get_engine, get_session
from userbase.errors import ConnectionTimeout, StageError
from userbase.metrics import BOOTSTRAP_STATUS
from userbase.repo.users import UserRepository

log = structlog.get_logger(__name__)

_STATUS_GAUGE = {
    BootstrapStatus.READY: 1.0,
    BootstrapStatus.DEGRADED: 0.5,
    BootstrapStatus.UNAVAILABLE: 0.0,
}


class BootstrapOrchestrator:
    def __init__(
        self,
        storage: Storage,
        *,
        expected: Iterable[str] = EXPECTED_RELATIONS,
        gate: ConnectivityGate | None = None,
        reconciler: MigrationReconciler | None = None,
        smoke: SmokeTest | None = None,
        data_check: DataPathCheck | None = None,
    ):
        self.storage = storage
        self.expected = expected_schema(expected)
        self.gate = gate or ConnectivityGate(storage)
        self.reconciler = reconciler or MigrationReconciler(storage)
        self.smoke = smoke or SmokeTest(storage)
        self.data_check = data_check

    async def run(self) -> BootstrapReport:
        report = BootstrapReport(status=BootstrapStatus.READY)
        try:
            await self._run(report)
        except Exception as e:
            report.errors.append(StageError("bootstrap", f"{type(e).__name__}: {e}"))
            log.error("bootstrap_unexpected_error", error=str(e), exc_info=True)

        if report.status is BootstrapStatus.READY and report.errors:
            report.status = BootstrapStatus.DEGRADED
        BOOTSTRAP_STATUS.set(_STATUS_GAUGE[report.status])
        log.info("bootstrap_finished", **report.to_dict())
        return report

    async def _run(self, report: BootstrapReport) -> None:
        log.info("bootstrap_started", expected=list(self.expected))

        report.gate = await self.gate.wait_ready()
        if not report.gate.ready:
            report.status = BootstrapStatus.UNAVAILABLE
            report.errors.append(ConnectionTimeout(report.gate.attempts, report.gate.last_error))
            log.error("database_unavailable", attempts=report.gate.attempts, error=report.gate.last_error)
            return

        try:
            report.reconcile = await self.reconciler.reconcile(self.expected)
        except Exception as e:
            report.status = BootstrapStatus.DEGRADED
            report.errors.append(StageError("reconcile", f"{type(e).__name__}: {e}"))
            log.error("reconcile_crashed", error=str(e), exc_info=True)
            return
        if report.reconcile.outcome is ReconcileOutcome.DEGRADED:
            report.status = BootstrapStatus.DEGRADED
            log.warning("bootstrap_degraded", missing=report.reconcile.missing)

        report.smoke = await self.smoke.probe()
        if not report.smoke.ok:
            report.status = BootstrapStatus.DEGRADED

        if self.data_check is not None:
            report.data_check = await self.data_check.run()
            if not report.data_check.ok:
                report.status = BootstrapStatus.DEGRADED


@asynccontextmanager
async def _user_repository() -> AsyncIterator[UserRepository]:
    async with get_session() as session:
        yield UserRepository(session)


def build_orchestrator(settings: Settings = default_settings) -> BootstrapOrchestrator:
    storage = SqlAlchemyStorage(
        get_engine(),
        build_alembic_config(settings),
        history_table=settings.migration_history_table,
        schema=settings.db_schema,
    )
    return BootstrapOrchestrator(
        storage,
        expected=settings.expected_tables,
        gate=ConnectivityGate(
            storage,
            max_attempts=settings.db_connect_max_attempts,
            delay=settings.db_connect_retry_delay_s,
            probe_timeout=settings.db_probe_timeout_s,
        ),
        reconciler=MigrationReconciler(storage, SchemaVerifier(storage, schema=settings.db_schema)),
        smoke=SmokeTest(storage, timeout=settings.db_probe_timeout_s),
        data_check=DataPathCheck(_user_repository),
    )


async def bootstrap(settings: Settings = default_settings) -> BootstrapReport:
    """Run the readiness sequence once; never raises for database problems."""
    try:
        orchestrator = build_orchestrator(settings)
    except Exception as e:
        log.error("bootstrap_setup_failed", error=str(e), exc_info=True)
        BOOTSTRAP_STATUS.set(_STATUS_GAUGE[BootstrapStatus.UNAVAILABLE])
        return BootstrapReport(
            status=BootstrapStatus.UNAVAILABLE,
            errors=[StageError("setup", f"{type(e).__name__}: {e}")],
        )
    return await orchestrator.run()
