"""Prometheus metric definitions for the access-control backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Info

# ── Application info ────────────────────────────────────────────────
app_info = Info("bizhub", "BizHub Access application metadata")

# ── Access-control decisions ────────────────────────────────────────
registration_decisions_total = Counter(
    "registration_decisions_total",
    "Registration gate decisions",
    ["outcome", "path"],
)

permission_checks_total = Counter(
    "permission_checks_total",
    "Resource authorization checks",
    ["result"],
)

invitation_events_total = Counter(
    "invitation_events_total",
    "Invitation lifecycle transitions",
    ["event"],
)

# ── Database pool metrics ───────────────────────────────────────────
db_pool_size = Gauge("db_pool_size", "Current number of connections in the pool")
db_pool_checked_in = Gauge("db_pool_checked_in", "Connections currently idle in the pool")
db_pool_checked_out = Gauge("db_pool_checked_out", "Connections currently in use")
db_pool_overflow = Gauge("db_pool_overflow", "Current overflow connections beyond pool_size")

# ── Background task metrics ─────────────────────────────────────────
bg_task_runs_total = Counter(
    "bg_task_runs_total",
    "Total background task executions",
    ["task_name", "status"],
)

bg_task_last_success = Gauge(
    "bg_task_last_success_timestamp",
    "Timestamp of last successful background task run",
    ["task_name"],
)
