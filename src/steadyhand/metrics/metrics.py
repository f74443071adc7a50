"""Metrics - In-process counters fed by engine and batch hooks."""

from collections import Counter, defaultdict
from typing import Any

import structlog

from steadyhand.core.types import AttemptEvent, ChunkEvent, StrategyName, WorkResult, WorkStatus


logger = structlog.get_logger()


def _failure_pattern(reason: str) -> str:
    """Collapse a failure reason to its leading 'strategy: kind' part."""
    return ": ".join(part.strip() for part in reason.split(":")[:2])


class ActionMetrics:
    """Attempt sink for the interaction engine.

    Pass an instance as ``on_attempt``. Counts are kept per target name.
    """

    def __init__(self) -> None:
        self.attempts = 0
        self.successes = 0
        self.failed_attempts = 0
        self.by_strategy: Counter[str] = Counter()
        self.failure_patterns: Counter[str] = Counter()
        self._elapsed: dict[str, list[float]] = defaultdict(list)
        self._per_target: dict[str, Counter[str]] = defaultdict(Counter)

    def __call__(self, event: AttemptEvent) -> None:
        self.record(event)

    def record(self, event: AttemptEvent) -> None:
        self.attempts += 1
        target = self._per_target[event.target_name]
        target["attempts"] += 1

        if event.success:
            self.successes += 1
            self.by_strategy[event.strategy.value] += 1
            self._elapsed[event.target_name].append(event.elapsed)
            target["successes"] += 1
            if event.strategy == StrategyName.RECOGNITION:
                target["fallbacks"] += 1
        else:
            self.failed_attempts += 1
            target["failed_attempts"] += 1
            for reason in event.reasons:
                self.failure_patterns[_failure_pattern(reason)] += 1

    def summary(self) -> dict[str, Any]:
        """Aggregate report over every recorded attempt."""
        elapsed = [e for values in self._elapsed.values() for e in values]
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "failed_attempts": self.failed_attempts,
            "success_rate": self.successes / self.attempts if self.attempts else 0.0,
            "avg_success_time": sum(elapsed) / len(elapsed) if elapsed else 0.0,
            "strategies": dict(self.by_strategy),
            "failure_patterns": dict(self.failure_patterns.most_common()),
            "targets": {name: dict(counts) for name, counts in self._per_target.items()},
        }


class BatchMetrics:
    """Item and chunk sink for the batch processor.

    Use ``on_item`` and ``on_chunk`` as the processor's hooks.
    """

    def __init__(self, slowest: int = 5) -> None:
        self._slowest = slowest
        self.results: list[WorkResult] = []
        self.chunks: list[ChunkEvent] = []

    def on_item(self, result: WorkResult) -> None:
        self.results.append(result)

    def on_chunk(self, event: ChunkEvent) -> None:
        self.chunks.append(event)
        logger.debug(
            "chunk_metrics",
            chunk=event.index + 1,
            failed_so_far=event.failed_so_far,
            processed_so_far=event.processed_so_far,
        )

    def summary(self) -> dict[str, Any]:
        """Aggregate report over every recorded item and chunk."""
        statuses = Counter(r.status for r in self.results)
        durations = [r.duration for r in self.results if r.duration is not None]
        errors = Counter(
            type(r.error).__name__ for r in self.results if r.error is not None
        )
        slowest = sorted(
            (r for r in self.results if r.duration is not None),
            key=lambda r: r.duration,
            reverse=True,
        )[: self._slowest]
        processed = len(self.results)

        return {
            "processed": processed,
            "successes": statuses[WorkStatus.SUCCESS],
            "failures": statuses[WorkStatus.FAILED],
            "success_rate": statuses[WorkStatus.SUCCESS] / processed if processed else 0.0,
            "avg_duration": sum(durations) / len(durations) if durations else 0.0,
            "retried_items": sum(1 for r in self.results if r.attempts > 1),
            "error_types": dict(errors),
            "slowest": [(r.item.id, r.duration) for r in slowest],
            "chunks": len(self.chunks),
        }
