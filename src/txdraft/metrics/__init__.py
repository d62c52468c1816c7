"""Metrics — Prometheus metrics for the draft pipeline."""

from __future__ import annotations

from txdraft.metrics.collector import MetricsCollector, PipelineMetrics

__all__ = ["MetricsCollector", "PipelineMetrics"]
