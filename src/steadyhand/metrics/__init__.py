"""Metrics module - Counters for action attempts and batch items."""

from .metrics import ActionMetrics, BatchMetrics

__all__ = ["ActionMetrics", "BatchMetrics"]
