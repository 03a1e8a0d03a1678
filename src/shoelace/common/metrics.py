"""In-process counters rendered in the Prometheus text format."""

from __future__ import annotations

import hmac
from bisect import bisect_left
from ipaddress import ip_address
from typing import Dict, Optional, Sequence, Union

from fastapi import HTTPException, Request, status


class Counter:
    kind = "counter"

    def __init__(self, name: str, description: str = "") -> None:
        self.name = name
        self.description = description
        self.value = 0.0

    def inc(self, amount: float = 1.0) -> None:
        self.value += amount

    def samples(self) -> list[str]:
        return [f"{self.name} {self.value}"]


class Histogram:
    """Latency histogram; bucket samples are cumulative with a final ``+Inf``."""

    kind = "histogram"

    def __init__(self, name: str, buckets: Sequence[float], description: str = "") -> None:
        self.name = name
        self.description = description
        self.bounds = sorted(buckets)
        # One slot per bound plus the overflow slot.
        self._hits = [0] * (len(self.bounds) + 1)
        self.total = 0.0
        self.count = 0

    def observe(self, value: float) -> None:
        self._hits[bisect_left(self.bounds, value)] += 1
        self.total += value
        self.count += 1

    def samples(self) -> list[str]:
        lines = []
        running = 0
        for bound, hits in zip([*self.bounds, "+Inf"], self._hits):
            running += hits
            lines.append(f'{self.name}_bucket{{le="{bound}"}} {running}')
        lines.append(f"{self.name}_sum {self.total}")
        lines.append(f"{self.name}_count {self.count}")
        return lines


Metric = Union[Counter, Histogram]


def render_metric(metric: Metric) -> str:
    lines = [
        f"# HELP {metric.name} {metric.description}",
        f"# TYPE {metric.name} {metric.kind}",
        *metric.samples(),
    ]
    return "\n".join(lines) + "\n"


class MetricsRegistry:
    def __init__(self) -> None:
        self._metrics: Dict[str, Metric] = {}

    def register(self, metric: Metric):
        # A name registered twice resolves to the first instance.
        return self._metrics.setdefault(metric.name, metric)

    def render(self) -> str:
        return "\n".join(render_metric(metric) for metric in self._metrics.values()) + "\n"


GLOBAL_REGISTRY = MetricsRegistry()


def _is_loopback(host: Optional[str]) -> bool:
    if host is None:
        return False
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def require_metrics_access(request: Request, token: Optional[str]) -> None:
    """Allow scrapes carrying the bearer token, or from loopback when no token is set."""
    if not token:
        if not _is_loopback(request.client.host if request.client else None):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Metrics access restricted to localhost")
        return

    supplied = request.headers.get("authorization", "")
    if not hmac.compare_digest(supplied.encode(), f"Bearer {token}".encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid metrics token")
