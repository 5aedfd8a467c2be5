"""Per-provider request statistics."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass
class RequestResult:
    """Outcome of one provider call."""

    success: bool
    latency_seconds: float
    input_chars: int = 0
    output_chars: int = 0
    node_count: int = 0
    failed_nodes: int = 0
    similarity_failures: int = 0
    error_type: Optional[str] = None
    cached: bool = False


@dataclass
class ProviderStats:
    provider: str
    model: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    cached_requests: int = 0
    total_latency_seconds: float = 0.0
    input_chars: int = 0
    output_chars: int = 0
    nodes_sent: int = 0
    nodes_failed: int = 0
    similarity_failures: int = 0
    error_types: Dict[str, int] = field(default_factory=dict)

    def metrics(self) -> Dict[str, Any]:
        calls = self.total_requests - self.cached_requests
        metrics: Dict[str, Any] = {
            "success_rate": 0.0,
            "average_latency_seconds": 0.0,
            "similarity_failure_rate": 0.0,
        }
        if self.total_requests:
            metrics["success_rate"] = self.successful_requests / self.total_requests * 100
        if calls > 0:
            metrics["average_latency_seconds"] = self.total_latency_seconds / calls
        if self.nodes_sent:
            metrics["similarity_failure_rate"] = self.similarity_failures / self.nodes_sent * 100
        return metrics


class StatsRecorder:
    """Thread-safe aggregation of :class:`RequestResult` by provider/model."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats: Dict[Tuple[str, str], ProviderStats] = {}

    def record_request(self, provider: str, model: Optional[str], result: RequestResult) -> None:
        key = (provider, model or "default")
        with self._lock:
            stats = self._stats.get(key)
            if stats is None:
                stats = ProviderStats(provider=key[0], model=key[1])
                self._stats[key] = stats

            stats.total_requests += 1
            if result.cached:
                stats.cached_requests += 1
            else:
                stats.total_latency_seconds += result.latency_seconds
            if result.success:
                stats.successful_requests += 1
            else:
                stats.failed_requests += 1
            stats.input_chars += result.input_chars
            stats.output_chars += result.output_chars
            stats.nodes_sent += result.node_count
            stats.nodes_failed += result.failed_nodes
            stats.similarity_failures += result.similarity_failures
            if result.error_type:
                stats.error_types[result.error_type] = stats.error_types.get(result.error_type, 0) + 1

    def get(self, provider: str, model: Optional[str] = None) -> Optional[ProviderStats]:
        with self._lock:
            stats = self._stats.get((provider, model or "default"))
            return None if stats is None else _copy(stats)

    def snapshot(self) -> Dict[str, ProviderStats]:
        with self._lock:
            return {f"{key[0]}/{key[1]}": _copy(stats) for key, stats in self._stats.items()}


def _copy(stats: ProviderStats) -> ProviderStats:
    return ProviderStats(
        provider=stats.provider,
        model=stats.model,
        total_requests=stats.total_requests,
        successful_requests=stats.successful_requests,
        failed_requests=stats.failed_requests,
        cached_requests=stats.cached_requests,
        total_latency_seconds=stats.total_latency_seconds,
        input_chars=stats.input_chars,
        output_chars=stats.output_chars,
        nodes_sent=stats.nodes_sent,
        nodes_failed=stats.nodes_failed,
        similarity_failures=stats.similarity_failures,
        error_types=dict(stats.error_types),
    )
