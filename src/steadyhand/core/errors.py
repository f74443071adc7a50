"""Error types surfaced by steadyhand."""

from datetime import datetime
from pathlib import Path
from typing import Any

from steadyhand.core.types import ActionType


class SteadyhandError(Exception):
    """Base class for all steadyhand errors."""


class ConfigurationError(SteadyhandError):
    """Invalid configuration detected at construction time."""


class AutomationFailure(SteadyhandError):
    """Every strategy and every retry for one action was exhausted.

    The only error type ``ReliableInteractionEngine.execute`` raises.
    """

    def __init__(
        self,
        action_kind: ActionType,
        target_name: str,
        message: str,
        snapshot: bytes | None = None,
        snapshot_path: Path | None = None,
        locator: str = "",
        attempts: int = 0,
        elapsed: float = 0.0,
        last_reasons: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self._action_kind = action_kind
        self._target_name = target_name
        self._message = message
        self._snapshot = snapshot
        self._snapshot_path = snapshot_path
        self._locator = locator
        self._attempts = attempts
        self._elapsed = elapsed
        self._last_reasons = tuple(last_reasons or ())
        self._timestamp = datetime.now()

    @property
    def action_kind(self) -> ActionType:
        return self._action_kind

    @property
    def target_name(self) -> str:
        return self._target_name

    @property
    def message(self) -> str:
        return self._message

    @property
    def snapshot(self) -> bytes | None:
        """PNG screenshot captured when the action finally failed."""
        return self._snapshot

    @property
    def snapshot_path(self) -> Path | None:
        return self._snapshot_path

    @property
    def locator(self) -> str:
        return self._locator

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def elapsed(self) -> float:
        return self._elapsed

    @property
    def last_reasons(self) -> tuple[str, ...]:
        return self._last_reasons

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for reports and logs."""
        return {
            "error_type": type(self).__name__,
            "action_kind": self._action_kind.value,
            "target_name": self._target_name,
            "message": self._message,
            "locator": self._locator,
            "attempts": self._attempts,
            "elapsed": round(self._elapsed, 3),
            "last_reasons": list(self._last_reasons),
            "snapshot_path": str(self._snapshot_path) if self._snapshot_path else None,
            "timestamp": self._timestamp.isoformat(),
        }


class ItemProcessingFailure(SteadyhandError):
    """A work item's function failed after all retries.

    Recorded on a WorkResult, never raised out of the batch processor.
    """

    def __init__(self, item_id: str, message: str, elapsed: float = 0.0, attempts: int = 0) -> None:
        super().__init__(message)
        self.item_id = item_id
        self.elapsed = elapsed
        self.attempts = attempts


class ItemTimeout(ItemProcessingFailure):
    """A work item exceeded its per-item time budget."""

    def __init__(self, item_id: str, timeout: float, attempts: int = 0) -> None:
        super().__init__(
            item_id,
            f"Item {item_id} timed out after {timeout:.1f}s",
            elapsed=timeout,
            attempts=attempts,
        )
        self.timeout = timeout


class BatchAborted(SteadyhandError):
    """Recorded on items skipped because the error threshold was breached."""

    def __init__(self, failed: int, processed: int, threshold: float) -> None:
        super().__init__(
            f"Batch processing aborted due to error threshold: "
            f"{failed}/{processed} failed (threshold {threshold:.0%})"
        )
        self.failed = failed
        self.processed = processed
        self.threshold = threshold
