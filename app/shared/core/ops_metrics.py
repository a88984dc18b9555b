"""
Operational metrics for the sync and compliance pipeline.

Exposed through the default prometheus_client registry.
"""

from prometheus_client import Counter, Histogram, Gauge

# --- Inventory Sync ---
SYNC_RUNS = Counter(
    "cirrus_sync_runs_total",
    "Total number of inventory sync runs",
    ["status"],
)

SYNC_DURATION = Histogram(
    "cirrus_sync_duration_seconds",
    "Duration of a full inventory sync for one account",
    buckets=(1, 5, 10, 30, 60, 120, 300, 600),
)

RESOURCES_COLLECTED = Counter(
    "cirrus_resources_collected_total",
    "Resources collected from the provider, by resource type",
    ["resource_type"],
)

COLLECTION_TYPE_FAILURES = Counter(
    "cirrus_collection_type_failures_total",
    "Resource types skipped because their list endpoint failed",
    ["resource_type"],
)

# --- Provider API ---
PROVIDER_REQUEST_FAILURES = Counter(
    "cirrus_provider_request_failures_total",
    "Provider API calls that failed after retries",
    ["endpoint"],
)

# --- Compliance ---
EVALUATION_RUNS = Counter(
    "cirrus_evaluation_runs_total",
    "Total number of compliance evaluation runs",
    ["status"],
)

EVALUATION_DURATION = Histogram(
    "cirrus_evaluation_duration_seconds",
    "Duration of a compliance evaluation run for one account",
    buckets=(0.1, 0.5, 1, 5, 10, 30, 60, 120),
)

COMPLIANCE_SCORE = Gauge(
    "cirrus_compliance_score",
    "Latest compliance score per account",
    ["account_id"],
)
