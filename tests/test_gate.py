import pytest

from conftest import FakeStorage
from userbase.bootstrap.gate import ConnectivityGate
from userbase.bootstrap.results import GateStatus


@pytest.mark.asyncio
async def test_gate_ready_on_first_probe_without_sleeping(sleeper):
    storage = FakeStorage()
    gate = ConnectivityGate(storage, max_attempts=30, delay=1.0, sleep=sleeper)

    res = await gate.wait_ready()

    assert res.status is GateStatus.READY
    assert res.attempts == 1
    assert sleeper.delays == []


@pytest.mark.asyncio
@pytest.mark.parametrize("n", [1, 3, 30])
async def test_gate_times_out_after_exactly_n_attempts(sleeper, n):
    storage = FakeStorage(ping_failures=1000)
    gate = ConnectivityGate(storage, max_attempts=n, delay=1.0, sleep=sleeper)

    res = await gate.wait_ready()

    assert res.status is GateStatus.TIMED_OUT
    assert res.attempts == n
    assert storage.calls.count("ping") == n
    # no sleep after the final failure
    assert sleeper.delays == [1.0] * (n - 1)
    assert "connection refused" in res.last_error


@pytest.mark.asyncio
async def test_gate_recovers_after_transient_failures(sleeper):
    storage = FakeStorage(ping_failures=2)
    gate = ConnectivityGate(storage, max_attempts=5, delay=0.25, sleep=sleeper)

    res = await gate.wait_ready()

    assert res.ready
    assert res.attempts == 3
    assert sleeper.delays == [0.25, 0.25]


@pytest.mark.asyncio
async def test_gate_call_arguments_override_defaults(sleeper):
    storage = FakeStorage(ping_failures=1000)
    gate = ConnectivityGate(storage, max_attempts=30, delay=1.0, sleep=sleeper)

    res = await gate.wait_ready(max_attempts=2, delay=0.0)

    assert res.attempts == 2
    assert sleeper.delays == [0.0]


@pytest.mark.asyncio
async def test_gate_rejects_empty_budget(sleeper):
    gate = ConnectivityGate(FakeStorage(), sleep=sleeper)
    with pytest.raises(ValueError):
        await gate.wait_ready(max_attempts=0)
    with pytest.raises(ValueError):
        await gate.wait_ready(delay=-1)
