"""Prometheus metrics for the abuse-prevention engine.

Each Counter/Histogram/Gauge below auto-registers itself in the global
REGISTRY on construction.  The service calls start_http_server() and every
GET /metrics serialises them; the engine only ever increments.
"""

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# Gating
# ---------------------------------------------------------------------------
requests_allowed_total = Counter(
    "warden_requests_allowed_total",
    "Requests allowed by the rate limiter",
    ["tier"],
)
requests_denied_total = Counter(
    "warden_requests_denied_total",
    "Requests denied by the rate limiter",
    ["tier", "limit"],
)
throttle_escalations_total = Counter(
    "warden_throttle_escalations_total",
    "Times a subject's throttle multiplier was raised",
)

# ---------------------------------------------------------------------------
# Behavior analysis
# ---------------------------------------------------------------------------
anomalies_total = Counter(
    "warden_anomalies_total",
    "Out-of-band anomaly events fired",
    ["category"],
)
anomaly_score = Histogram(
    "warden_anomaly_score",
    "Micro anomaly score per subject per tick",
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)
subjects_tracked = Gauge(
    "warden_subjects_tracked",
    "Subjects with live behavior profiles",
)
subjects_evicted_total = Counter(
    "warden_subjects_evicted_total",
    "Subjects whose state was evicted",
    ["cause"],
)

# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
telemetry_events_total = Counter(
    "warden_telemetry_events_total",
    "Telemetry events consumed by the service",
    ["event_type"],
)
decode_errors_total = Counter(
    "warden_decode_errors_total",
    "JSON parse or Kafka consumer errors in the service",
)
