from __future__ import annotations

from dataclasses import dataclass
from threading import Lock


@dataclass
class EndpointMetric:
    total_requests: int = 0
    total_duration_ms: float = 0.0
    error_count: int = 0

    def observe(self, status_code: int, duration_ms: float) -> None:
        self.total_requests += 1
        self.total_duration_ms += duration_ms
        if status_code >= 400:
            self.error_count += 1

    @property
    def avg_duration_ms(self) -> float:
        return self.total_duration_ms / self.total_requests if self.total_requests else 0.0


class InMemoryRequestMetrics:
    def __init__(self) -> None:
        self._metrics: dict[tuple[str, str], EndpointMetric] = {}
        self._tenant_metrics: dict[str, EndpointMetric] = {}
        self._counters: dict[str, int] = {}
        self._lock = Lock()

    def observe(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        duration_ms: float,
        tenant_id: str | None = None,
    ) -> None:
        with self._lock:
            self._metrics.setdefault((endpoint, method), EndpointMetric()).observe(status_code, duration_ms)
            if tenant_id:
                self._tenant_metrics.setdefault(tenant_id, EndpointMetric()).observe(status_code, duration_ms)

    def increment(self, name: str, value: int = 1) -> None:
        """Contadores livres: notificações enviadas/recusadas, conexões SSE abertas."""
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {
                f"{method} {endpoint}": {
                    "total_requests": metric.total_requests,
                    "total_duration_ms": round(metric.total_duration_ms, 2),
                    "avg_duration_ms": round(metric.avg_duration_ms, 2),
                    "error_count": metric.error_count,
                }
                for (endpoint, method), metric in self._metrics.items()
            }

    def snapshot_per_tenant(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {
                tenant_id: {
                    "requests_por_tenant": metric.total_requests,
                    "erros_por_tenant": metric.error_count,
                    "latencia_media_por_tenant": round(metric.avg_duration_ms, 2),
                }
                for tenant_id, metric in self._tenant_metrics.items()
            }

    def counters(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()
            self._tenant_metrics.clear()
            self._counters.clear()


request_metrics = InMemoryRequestMetrics()
