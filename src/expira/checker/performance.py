"""Performance aggregation - split a check's wall-clock time into buckets."""

from typing import Optional

from expira.util.types import ProbeResult
from expira.util.time import duration_ms
from expira.checker.records import PerformanceMetrics


def _probe_span(probe: Optional[ProbeResult]) -> float:
    if probe is None or probe.started_at is None or probe.timestamp is None:
        return 0.0
    return max(0.0, duration_ms(probe.started_at, probe.timestamp))


def aggregate_performance(dns: Optional[ProbeResult],
                          http: Optional[ProbeResult],
                          tls: Optional[ProbeResult],
                          response_time: Optional[float]) -> PerformanceMetrics:
    """Decompose timings captured by the DNS, HTTP and TLS probes.

    Transfer time is whatever the response time doesn't account for,
    clamped at zero: the probes overlap, so the sum can overshoot.
    """
    dns_time = round(_probe_span(dns), 2)
    connect_time = round(_probe_span(http), 2)
    ssl_time = round(_probe_span(tls), 2)

    transfer_time = 0.0
    if response_time is not None:
        transfer_time = round(max(0.0, response_time - (dns_time + connect_time + ssl_time)), 2)

    return PerformanceMetrics(
        dns_time=dns_time,
        connect_time=connect_time,
        ssl_time=ssl_time,
        transfer_time=transfer_time,
    )
