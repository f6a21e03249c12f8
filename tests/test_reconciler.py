import pytest

from conftest import FakeStorage
from userbase.bootstrap.reconciler import MigrationReconciler
from userbase.bootstrap.results import ReconcileOutcome
from userbase.errors import MigrationApplyError, RepairFailed, SchemaIncomplete


@pytest.mark.asyncio
async def test_complete_schema_is_verified_without_touching_history():
    storage = FakeStorage(relations={"users"})
    res = await MigrationReconciler(storage).reconcile(["users"])

    assert res.outcome is ReconcileOutcome.VERIFIED
    assert "drop" not in storage.calls
    assert storage.calls.count("apply") == 1
    assert storage.history
    assert res.errors == []


@pytest.mark.asyncio
async def test_reconcile_twice_on_verified_database_is_idempotent():
    storage = FakeStorage(relations={"users"})
    reconciler = MigrationReconciler(storage)

    first = await reconciler.reconcile(["users"])
    second = await reconciler.reconcile(["users"])

    assert first.outcome is ReconcileOutcome.VERIFIED
    assert second.outcome is ReconcileOutcome.VERIFIED
    assert "drop" not in storage.calls
    assert storage.relations == {"users"}


@pytest.mark.asyncio
async def test_corrupted_history_is_dropped_and_schema_repaired():
    # version table claims head, but the users table is gone
    storage = FakeStorage(relations=set(), history=True)
    res = await MigrationReconciler(storage).reconcile(["users"])

    assert res.outcome is ReconcileOutcome.REPAIRED
    assert res.history_dropped
    assert res.initial.missing == ["users"]
    assert res.final.complete
    assert isinstance(res.errors[0], SchemaIncomplete)
    ops = [c for c in storage.calls if isinstance(c, str)]
    assert ops == ["drop", "apply"]
    # verifier ran twice
    assert sum(1 for c in storage.calls if isinstance(c, tuple)) == 2


@pytest.mark.asyncio
async def test_missing_history_marker_does_not_block_repair():
    storage = FakeStorage(relations=set(), history=False)
    res = await MigrationReconciler(storage).reconcile(["users"])

    assert res.outcome is ReconcileOutcome.REPAIRED
    assert not res.history_dropped
    assert "apply" in storage.calls


@pytest.mark.asyncio
async def test_permission_error_on_drop_is_swallowed():
    storage = FakeStorage(relations=set(), drop_error=PermissionError("must be owner of table"))
    res = await MigrationReconciler(storage).reconcile(["users"])

    # history still present, so reapply is a no-op and the table stays missing
    assert res.outcome is ReconcileOutcome.DEGRADED
    assert storage.calls.count("apply") == 1
    assert res.missing == ["users"]


@pytest.mark.asyncio
async def test_degraded_when_migrations_do_not_create_relation():
    storage = FakeStorage(relations=set(), creates=())
    res = await MigrationReconciler(storage).reconcile(["users"])

    assert res.outcome is ReconcileOutcome.DEGRADED
    assert res.missing == ["users"]
    assert isinstance(res.errors[-1], RepairFailed)
    assert res.errors[-1].missing == ["users"]


@pytest.mark.asyncio
async def test_degraded_lists_only_still_missing_relations():
    storage = FakeStorage(relations={"users"}, history=True, creates=("users", "roles"))
    res = await MigrationReconciler(storage).reconcile(["users", "roles", "audit_log"])

    assert res.outcome is ReconcileOutcome.DEGRADED
    assert res.initial.missing == ["roles", "audit_log"]
    assert res.missing == ["audit_log"]


@pytest.mark.asyncio
async def test_failed_reapply_falls_back_to_one_more_attempt():
    storage = FakeStorage(relations=set(), apply_failures=1)
    res = await MigrationReconciler(storage).reconcile(["users"])

    assert res.outcome is ReconcileOutcome.REPAIRED
    assert storage.calls.count("apply") == 2
    apply_errors = [e for e in res.errors if isinstance(e, MigrationApplyError)]
    assert [e.phase for e in apply_errors] == ["reapply_all"]
    assert isinstance(apply_errors[0].__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_reapply_failing_twice_still_reverifies():
    storage = FakeStorage(relations=set(), apply_failures=2)
    res = await MigrationReconciler(storage).reconcile(["users"])

    assert res.outcome is ReconcileOutcome.DEGRADED
    phases = [e.phase for e in res.errors if isinstance(e, MigrationApplyError)]
    assert phases == ["reapply_all", "reapply_all_retry"]


@pytest.mark.asyncio
async def test_pending_apply_failure_on_clean_path_is_a_warning():
    storage = FakeStorage(relations={"users"}, apply_failures=2)
    res = await MigrationReconciler(storage).reconcile(["users"])

    assert res.outcome is ReconcileOutcome.VERIFIED
    assert "drop" not in storage.calls
    assert len(res.errors) == 2
