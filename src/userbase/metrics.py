from __future__ import annotations

from prometheus_client import Counter, Gauge

API_REQUESTS = Counter("api_requests_total", "Total API requests", ["path"])

DB_CONNECT_ATTEMPTS = Counter(
    "db_connect_attempts_total",
    "Startup database connectivity probes",
    ["outcome"],
)
SCHEMA_RECONCILE = Counter(
    "schema_reconcile_total",
    "Schema reconciliation results",
    ["outcome"],
)
# 1 = ready, 0.5 = degraded, 0 = unavailable
BOOTSTRAP_STATUS = Gauge("bootstrap_status", "Outcome of the last startup readiness run")
