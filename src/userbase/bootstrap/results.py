"""Result values produced by each stage of the startup readiness run."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from userbase.errors import BootstrapError

# Relations that must exist before the service is considered ready.
EXPECTED_RELATIONS: tuple[str, ...] = ("users",)


def expected_schema(relations: Iterable[str]) -> tuple[str, ...]:
    """Ordered, de-duplicated relation names (first occurrence wins)."""
    return tuple(dict.fromkeys(relations))


class GateStatus(str, Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"


class ReconcileOutcome(str, Enum):
    VERIFIED = "verified"
    REPAIRED = "repaired"
    DEGRADED = "degraded"


class BootstrapStatus(str, Enum):
    READY = "ready"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


@dataclass
class RetryState:
    max_attempts: int
    delay: float
    attempts: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def record_failure(self) -> None:
        if self.exhausted:
            raise RuntimeError("retry budget already exhausted")
        self.attempts += 1


@dataclass(frozen=True)
class SchemaStatus:
    presence: Mapping[str, bool]

    @property
    def missing(self) -> list[str]:
        return [name for name, present in self.presence.items() if not present]

    @property
    def complete(self) -> bool:
        return all(self.presence.values())


@dataclass
class GateResult:
    status: GateStatus
    attempts: int
    last_error: str | None = None

    @property
    def ready(self) -> bool:
        return self.status is GateStatus.READY


@dataclass
class ReconcileResult:
    outcome: ReconcileOutcome
    initial: SchemaStatus
    final: SchemaStatus
    history_dropped: bool = False
    errors: list[BootstrapError] = field(default_factory=list)

    @property
    def missing(self) -> list[str]:
        return self.final.missing


@dataclass
class SmokeResult:
    ok: bool
    info: str | None = None
    reason: str | None = None

    @classmethod
    def passed(cls, info: str) -> "SmokeResult":
        return cls(ok=True, info=info)

    @classmethod
    def failed(cls, reason: str) -> "SmokeResult":
        return cls(ok=False, reason=reason)


@dataclass
class BootstrapReport:
    status: BootstrapStatus
    gate: GateResult | None = None
    reconcile: ReconcileResult | None = None
    smoke: SmokeResult | None = None
    data_check: SmokeResult | None = None
    errors: list[BootstrapError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"status": self.status.value, "errors": [str(e) for e in self.errors]}
        if self.gate is not None:
            out["gate"] = {
                "status": self.gate.status.value,
                "attempts": self.gate.attempts,
                "last_error": self.gate.last_error,
            }
        if self.reconcile is not None:
            out["schema"] = {
                "outcome": self.reconcile.outcome.value,
                "relations": dict(self.reconcile.final.presence),
                "missing": self.reconcile.missing,
                "history_dropped": self.reconcile.history_dropped,
                "errors": [str(e) for e in self.reconcile.errors],
            }
        for key, res in (("smoke", self.smoke), ("data_check", self.data_check)):
            if res is not None:
                out[key] = {"ok": res.ok, "info": res.info, "reason": res.reason}
        return out
