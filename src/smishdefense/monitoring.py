"""Monitoring configuration for the trainer."""
from prometheus_client import Counter, start_http_server

# Session metrics
sessions_started = Counter(
    "smishdefense_sessions_started_total",
    "Total number of training sessions started",
    ["mode"],
)

sessions_completed = Counter(
    "smishdefense_sessions_completed_total",
    "Total number of training sessions that reached the complete state",
    ["mode"],
)

catalog_load_failures = Counter(
    "smishdefense_catalog_load_failures_total",
    "Total number of sessions that failed while loading the message catalog",
)

# Decision metrics
decisions = Counter(
    "smishdefense_decisions_total",
    "Total number of user decisions taken in training sessions",
    ["action", "verdict"],
)

# Sync metrics
sync_forwards = Counter(
    "smishdefense_sync_forwards_total",
    "Total number of attempts forwarded to the stats API",
    ["outcome"],
)

# Ledger metrics
attempts_recorded = Counter(
    "smishdefense_attempts_recorded_total",
    "Total number of attempts appended to the ledger",
    ["action"],
)

ledger_write_conflicts = Counter(
    "smishdefense_ledger_write_conflicts_total",
    "Total number of optimistic version conflicts while writing the ledger",
)

ledger_errors = Counter(
    "smishdefense_ledger_errors_total",
    "Total number of ledger errors",
    ["error_type"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
