"""OpenTelemetry integration — spans around every MongoDB round trip.

Only the OpenTelemetry API is used. Without a configured SDK the API hands
out non-recording spans and instruments, so this costs nothing by default.
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from typing import Any

from opentelemetry import metrics, trace

_INSTRUMENTATION_NAME = "mongo_rate_store"


class StoreTelemetry:
    """Tracer and counters for one store instance."""

    def __init__(
        self,
        collection_name: str | None = None,
        *,
        tracer_provider: Any = None,
        meter_provider: Any = None,
    ):
        self._collection_name = collection_name
        self._tracer = trace.get_tracer(_INSTRUMENTATION_NAME, tracer_provider=tracer_provider)
        self._meter = metrics.get_meter(_INSTRUMENTATION_NAME, meter_provider=meter_provider)
        self._setup_metrics()

    def _setup_metrics(self) -> None:
        self._mutation_counter = self._meter.create_counter(
            "rate_store.counter.mutations",
            description="Number of counter increments and decrements",
        )
        self._connect_counter = self._meter.create_counter(
            "rate_store.connection.attempts",
            description="Number of connection sequences started",
        )

    @contextlib.contextmanager
    def span(self, operation: str, key: str | None = None) -> Iterator[Any]:
        """Run the body inside a ``rate_store.<operation>`` span.

        Exceptions are recorded on the span and re-raised.
        """
        attributes: dict[str, Any] = {"db.system": "mongodb", "rate_store.operation": operation}
        if self._collection_name:
            attributes["db.mongodb.collection"] = self._collection_name
        if key is not None:
            attributes["rate_store.key"] = key
        with self._tracer.start_as_current_span(f"rate_store.{operation}", attributes=attributes) as span:
            yield span

    def record_mutation(self, delta: int) -> None:
        self._mutation_counter.add(1, {"rate_store.direction": "increment" if delta > 0 else "decrement"})

    def record_connect(self, outcome: str) -> None:
        self._connect_counter.add(1, {"rate_store.outcome": outcome})
