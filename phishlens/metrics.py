"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# HTTP metrics
REQUEST_COUNT = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"]
)
REQUEST_DURATION = Histogram(
    "http_request_duration_seconds", "HTTP request duration", ["method", "endpoint"]
)

# Analysis metrics
ANALYSIS_COUNT = Counter("url_analyses_total", "Total URL analyses", ["risk_level"])
ANALYSIS_DURATION = Histogram(
    "analysis_duration_seconds",
    "End-to-end URL analysis duration",
    buckets=(0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60),
)
FALLBACK_COUNT = Counter(
    "analysis_fallbacks_total", "Analyses answered with the fallback result", ["reason"]
)
PROVIDER_CALLS = Counter(
    "signal_provider_calls_total", "Signal provider invocations", ["provider", "outcome"]
)
