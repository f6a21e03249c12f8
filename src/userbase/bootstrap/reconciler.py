from __future__ import annotations

from typing import Iterable

import structlog

from userbase.bootstrap.results import ReconcileOutcome, ReconcileResult, expected_schema
from userbase.bootstrap.schema import SchemaVerifier
from userbase.bootstrap.storage import Storage
from userbase.errors import BootstrapError, MigrationApplyError, RepairFailed, SchemaIncomplete
from userbase.metrics import SCHEMA_RECONCILE

log = structlog.get_logger(__name__)


class MigrationReconciler:
    """Bring the schema in line with the expected relations.

    States: verify -> (complete) apply pending -> VERIFIED
                   -> (incomplete) drop history -> reapply -> re-verify
                      -> REPAIRED | DEGRADED

    Nothing raised by storage escapes ``reconcile``; failures are recorded on
    the returned result.
    """

    def __init__(self, storage: Storage, verifier: SchemaVerifier | None = None):
        self.storage = storage
        self.verifier = verifier or SchemaVerifier(storage)

    async def reconcile(self, expected: Iterable[str]) -> ReconcileResult:
        relations = expected_schema(expected)
        errors: list[BootstrapError] = []

        initial = await self.verifier.verify(relations)
        if initial.complete:
            await self._apply(errors, phase="apply_pending")
            SCHEMA_RECONCILE.labels(ReconcileOutcome.VERIFIED.value).inc()
            log.info("schema_verified_clean", relations=list(relations), warnings=len(errors))
            return ReconcileResult(
                outcome=ReconcileOutcome.VERIFIED,
                initial=initial,
                final=initial,
                errors=errors,
            )

        incomplete = SchemaIncomplete(initial.missing)
        errors.append(incomplete)
        log.warning("schema_incomplete", missing=incomplete.missing)

        dropped = await self._drop_history()
        await self._apply(errors, phase="reapply_all")

        final = await self.verifier.verify(relations)
        if final.complete:
            SCHEMA_RECONCILE.labels(ReconcileOutcome.REPAIRED.value).inc()
            log.info("schema_repair_succeeded", relations=list(relations), history_dropped=dropped)
            return ReconcileResult(
                outcome=ReconcileOutcome.REPAIRED,
                initial=initial,
                final=final,
                history_dropped=dropped,
                errors=errors,
            )

        failed = RepairFailed(final.missing)
        errors.append(failed)
        SCHEMA_RECONCILE.labels(ReconcileOutcome.DEGRADED.value).inc()
        log.error("schema_repair_failed", missing=failed.missing, history_dropped=dropped)
        return ReconcileResult(
            outcome=ReconcileOutcome.DEGRADED,
            initial=initial,
            final=final,
            history_dropped=dropped,
            errors=errors,
        )

    async def _drop_history(self) -> bool:
        try:
            await self.storage.drop_migration_history()
        except Exception as e:
            # Absent marker or missing privileges must not block the reapply.
            log.warning("migration_history_drop_failed", error=f"{type(e).__name__}: {e}")
            return False
        log.info("migration_history_dropped")
        return True

    async def _apply(self, errors: list[BootstrapError], *, phase: str) -> bool:
        try:
            await self.storage.apply_migrations()
            log.info("migrations_applied", phase=phase)
            return True
        except Exception as e:
            err = MigrationApplyError(phase, f"{type(e).__name__}: {e}")
            err.__cause__ = e
            errors.append(err)
            log.error("migrations_apply_failed", phase=phase, error=err.detail, exc_info=True)

        # Last resort: one unconditional attempt before giving up.
        try:
            await self.storage.apply_migrations()
            log.info("migrations_applied", phase=f"{phase}_retry")
            return True
        except Exception as e:
            err = MigrationApplyError(f"{phase}_retry", f"{type(e).__name__}: {e}")
            err.__cause__ = e
            errors.append(err)
            log.warning("migrations_apply_retry_failed", phase=phase, error=err.detail)
            return False
