"""
Prometheus instruments, exposed on /metrics.
"""

from prometheus_client import Counter, Histogram

UPSTREAM_REQUESTS = Counter(
    "transit_eta_upstream_requests_total",
    "Upstream requests by source and outcome",
    ["source", "outcome"],
)

MERGE_OUTCOMES = Counter(
    "transit_eta_merge_outcomes_total",
    "Live/scheduled reconciliation outcomes",
    ["outcome"],
)

QUERY_SECONDS = Histogram(
    "transit_eta_query_seconds",
    "Wall time spent resolving one query",
    ["mode"],
)
