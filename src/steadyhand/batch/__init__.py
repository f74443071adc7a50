"""Batch module - Parallel batch processor."""

from .processor import ParallelBatchProcessor
from .queue import WorkQueue

__all__ = ["ParallelBatchProcessor", "WorkQueue"]
