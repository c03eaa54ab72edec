"""Prometheus metrics for advances, Plaid calls, sync volume and housekeeping"""

from prometheus_client import Counter, Histogram

# Advance metrics
advances_created_counter = Counter(
    "blink_advances_created_total",
    "BlinkAdvances created",
    ["transfer_speed"],  # instant | standard
)

advance_transition_counter = Counter(
    "blink_advance_status_transitions_total",
    "Applied advance status transitions",
    ["from_status", "to_status"],
)

# Plaid metrics
plaid_failures_counter = Counter(
    "plaid_failures_total",
    "Failed Plaid API calls",
    ["endpoint"],
)

transactions_synced_counter = Counter(
    "transactions_synced_total",
    "Transaction changes applied by sync",
    ["change"],  # added | modified | removed
)

# Housekeeping
housekeeping_runs_counter = Counter(
    "housekeeping_runs_total",
    "Scheduled job executions",
    ["job", "outcome"],  # outcome: success | failure
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transition(from_status: str, to_status: str) -> None:
    advance_transition_counter.labels(from_status=from_status, to_status=to_status).inc()


def record_sync(added: int, modified: int, removed: int) -> None:
    """Record applied sync changes by kind"""
    transactions_synced_counter.labels(change="added").inc(added)
    transactions_synced_counter.labels(change="modified").inc(modified)
    transactions_synced_counter.labels(change="removed").inc(removed)
