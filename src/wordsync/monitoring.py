"""Monitoring configuration for the progress tracker."""
from prometheus_client import Counter, Gauge, Histogram, start_http_server

# Practice metrics
practice_attempts = Counter(
    "wordsync_practice_attempts_total",
    "Total number of practice attempts applied to progress records",
    ["outcome"],
)

practice_skips = Counter(
    "wordsync_practice_skips_total",
    "Total number of skipped practice items",
)

evaluator_fallbacks = Counter(
    "wordsync_evaluator_fallbacks_total",
    "Total number of evaluations answered by the local fallback heuristic",
    ["reason"],
)

tier_transitions = Counter(
    "wordsync_tier_transitions_total",
    "Total number of strength tier changes",
    ["from_tier", "to_tier"],
)

# Offline queue metrics
mutations_enqueued = Counter(
    "wordsync_mutations_enqueued_total",
    "Total number of mutations written to the offline queue",
    ["mutation_type"],
)

queue_size = Gauge(
    "wordsync_queue_size",
    "Number of mutations waiting in the offline queue",
)

dead_letters = Counter(
    "wordsync_dead_letters_total",
    "Total number of mutations moved to the dead-letter table",
    ["mutation_type"],
)

# Sync metrics
sync_mutations = Counter(
    "wordsync_sync_mutations_total",
    "Total number of mutations replayed against the remote store",
    ["status"],
)

sync_duration = Histogram(
    "wordsync_sync_duration_seconds",
    "Duration of sync runs in seconds",
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
