"""Metrics collector — Prometheus counters and histograms for the draft pipeline.

- ``txdraft_drafts_composed_total`` counter (operation)
- ``txdraft_transactions_submitted_total`` counter (operation)
- ``txdraft_pipeline_failures_total`` counter (operation, code)
- ``txdraft_compose_histogram``
- ``txdraft_sign_histogram``
- ``txdraft_finalize_histogram``
- ``txdraft_extract_histogram``
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator


_PREFIX = "txdraft"


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`PipelineMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._registry

    def histogram(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Histogram:
        """Register and return a Histogram."""
        return Histogram(name, doc, labels, registry=self._registry)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        """Register and return a Counter."""
        return Counter(name, doc, labels, registry=self._registry)


class PipelineMetrics:
    """High-level draft pipeline metrics.

    All histograms track stage duration in seconds, labelled by operation.
    """

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._composed = self._collector.counter(
            f"{_PREFIX}_drafts_composed",
            "Drafts composed",
            ("operation",),
        )
        self._submitted = self._collector.counter(
            f"{_PREFIX}_transactions_submitted",
            "Transactions accepted by the ledger",
            ("operation",),
        )
        self._failures = self._collector.counter(
            f"{_PREFIX}_pipeline_failures",
            "Pipeline runs that ended in an error",
            ("operation", "code"),
        )

        self._compose = self._collector.histogram(
            f"{_PREFIX}_compose_histogram",
            "Duration of draft composition (including UTXO selection)",
            ("operation",),
        )
        self._sign = self._collector.histogram(
            f"{_PREFIX}_sign_histogram",
            "Duration of hash request and signing",
            ("operation",),
        )
        self._finalize = self._collector.histogram(
            f"{_PREFIX}_finalize_histogram",
            "Duration of finalize and submit",
            ("operation",),
        )
        self._extract = self._collector.histogram(
            f"{_PREFIX}_extract_histogram",
            "Duration of result extraction",
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    # -- Counters --

    def record_composed(self, operation: str) -> None:
        self._composed.labels(operation=operation).inc()

    def record_submitted(self, operation: str) -> None:
        self._submitted.labels(operation=operation).inc()

    def record_failure(self, operation: str, code: str) -> None:
        self._failures.labels(operation=operation, code=code).inc()

    # -- Stage trackers (context managers) --

    @contextmanager
    def track_compose(self, operation: str) -> Iterator[None]:
        """Track the duration of draft composition."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._compose.labels(operation=operation).observe(time.monotonic() - start)

    @contextmanager
    def track_sign(self, operation: str) -> Iterator[None]:
        """Track the duration of hash requests and signing."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._sign.labels(operation=operation).observe(time.monotonic() - start)

    @contextmanager
    def track_finalize(self, operation: str) -> Iterator[None]:
        """Track the duration of finalize and submit."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._finalize.labels(operation=operation).observe(time.monotonic() - start)

    @contextmanager
    def track_extract(self) -> Iterator[None]:
        start = time.monotonic()
        try:
            yield
        finally:
            self._extract.observe(time.monotonic() - start)
