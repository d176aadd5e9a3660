"""
Local observability.

Spans and counters for debugging retrieval and indexing, without external telemetry.
"""

import time
from contextlib import contextmanager
from typing import Dict, Any, Optional, Iterator

from vaultsearch.core.logging import AsyncLogger
from vaultsearch.core.id_generator import generate_id


class LocalTracer:
    """
    Simple local tracing.

    LocalTracer: individual operations with duration and attributes, for "why is X slow".
    MetricsCollector: aggregated counters and gauges, no per-operation context.
    """

    def __init__(self, service_name: str = "vaultsearch") -> None:
        self.service_name = service_name
        self.logger = AsyncLogger("tracing")

    @contextmanager
    def span(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[None]:
        """
        Create a span measuring an operation.

        Usage:
        ```
        with tracer.span("semantic_search", {"variants": len(queries)}):
            hits = await index.search(queries, top_k)
        ```
        """
        span_id = generate_id()
        start = time.perf_counter()

        try:
            yield
        finally:
            duration = time.perf_counter() - start
            self.logger.debug(
                "Span completed",
                span=name,
                span_id=span_id,
                duration_ms=duration * 1000,
                **(attributes or {}),
            )


class MetricsCollector:
    """
    Local metrics collector.

    Only for internal monitoring, never exported.
    """

    def __init__(self) -> None:
        self.metrics: Dict[str, float] = {}

    def increment(self, name: str, value: float = 1.0) -> None:
        """Increments counter."""
        self.metrics[name] = self.metrics.get(name, 0) + value

    def gauge(self, name: str, value: float) -> None:
        """Sets current value."""
        self.metrics[name] = value

    def get_metrics(self) -> Dict[str, float]:
        """Gets all metrics."""
        return self.metrics.copy()


tracer = LocalTracer()
