from __future__ import annotations

from prometheus_client import Counter, Gauge


stream_events_total = Counter(
    "relay_stream_events_total",
    "Events received from the source stream",
    ["kind"],
)

relay_outcomes_total = Counter(
    "relay_outcomes_total",
    "Finished relay attempts by outcome",
    ["outcome"],
)

relay_failures_total = Counter(
    "relay_failures_total",
    "Failed relay attempts by pipeline stage",
    ["stage"],
)

tasks_in_flight = Gauge(
    "relay_tasks_in_flight",
    "Relay tasks currently running",
)

stream_connected = Gauge(
    "relay_stream_connected",
    "Source stream status (1=streaming, 0=disconnected)",
)

stream_reconnects_total = Counter(
    "relay_stream_reconnects_total",
    "Source stream reconnect attempts",
)
