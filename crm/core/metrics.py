"""Prometheus metric inventory.

Every metric the service exports is declared here; the modules that own
the behavior import and increment them.  Counters only go up, so tests
assert on deltas (see tests/middleware/test_metrics.py).

Tenancy metrics worth alerting on:

  tenant_resolutions_total{source="bootstrap"}
      Should be rare after a user's first login.  A spike means sessions
      are being cleared (member removals, org deletions) or lost.

  membership_mutations_total{result="last_owner"}
      Someone tried to orphan an organization.  Occasional is fine
      (UI misclick); sustained means a client is retrying a bad request.

  audit_write_failures_total
      Audit writes are best-effort.  Anything above zero means the
      audit trail has holes and needs investigating.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Tenancy metrics
# ---------------------------------------------------------------------------

TENANT_RESOLUTIONS = Counter(
    "tenant_resolutions_total",
    "Active-organization resolutions by the path that produced the answer",
    ["source"],  # cache|session|bootstrap|no_membership
)

SESSION_SWITCHES = Counter(
    "session_switches_total",
    "Explicit active-organization switches by result",
    ["result"],  # ok|not_a_member
)

MEMBERSHIP_MUTATIONS = Counter(
    "membership_mutations_total",
    "Role changes and member removals by outcome",
    ["action", "result"],  # action: role_changed|member_removed
)

INVITATIONS = Counter(
    "invitations_total",
    "Invitation lifecycle events",
    ["event"],  # created|accepted|rejected_<code>|notify_failed
)

AUDIT_WRITE_FAILURES = Counter(
    "audit_write_failures_total",
    "Audit entries that could not be persisted (mutation still succeeded)",
)

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["scope"],
)
