"""Prometheus metrics for domain events."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

SLOT_CLAIMS = Counter(
    "inphrone_slot_claims_total",
    "Your Turn claim requests by outcome",
    ["outcome"],
)
SLOT_TRANSITIONS = Counter(
    "inphrone_slot_transitions_total",
    "Your Turn slot status transitions",
    ["to_status"],
)
EMAILS_SENT = Counter(
    "inphrone_emails_total",
    "Transactional email dispatches",
    ["type", "status"],
)
FEED_SUBSCRIBERS = Gauge(
    "inphrone_feed_subscribers",
    "Open change feed subscriptions",
)
