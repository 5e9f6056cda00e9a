"""Prometheus metrics for the moderation engine."""

from prometheus_client import Counter

MODERATION_LOG_WRITE_FAILURES = Counter(
    "clubgate_moderation_log_failures_total",
    "Moderation log entries that could not be written",
    ["action"],
)

STATE_CONFLICTS = Counter(
    "clubgate_state_conflicts_total",
    "Compare-and-swap updates that lost a race",
    ["entity_type"],
)


def moderation_log_write_failure(action: str) -> None:
    MODERATION_LOG_WRITE_FAILURES.labels(action=action).inc()


def state_conflict(entity_type: str) -> None:
    STATE_CONFLICTS.labels(entity_type=entity_type).inc()
