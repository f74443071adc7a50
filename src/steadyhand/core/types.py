"""Core types and data models for steadyhand."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, Field, model_validator


class ActionType(str, Enum):
    """Types of actions the engine can perform."""

    CLICK = "CLICK"
    TYPE = "TYPE"
    SELECT = "SELECT"
    CHECK = "CHECK"


class StrategyName(str, Enum):
    """Strategy that satisfied an action."""

    STRUCTURAL = "structural"
    RECOGNITION = "recognition"
    NONE = "none"


class SelectBy(str, Enum):
    """How an option is matched when selecting."""

    VALUE = "value"
    LABEL = "label"
    AUTO = "auto"


class WorkStatus(str, Enum):
    """Terminal status of a work item."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class Coordinates(BaseModel):
    """Screen coordinates for an element."""

    x: int = Field(..., description="X coordinate")
    y: int = Field(..., description="Y coordinate")


class BoundingBox(BaseModel):
    """Axis-aligned box in screenshot pixels."""

    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def center(self) -> Coordinates:
        return Coordinates(
            x=int(self.x0 + (self.x1 - self.x0) / 2),
            y=int(self.y0 + (self.y1 - self.y0) / 2),
        )

    def union(self, other: "BoundingBox") -> "BoundingBox":
        return BoundingBox(
            x0=min(self.x0, other.x0),
            y0=min(self.y0, other.y0),
            x1=max(self.x1, other.x1),
            y1=max(self.y1, other.y1),
        )


class ElementLocator(BaseModel):
    """Structural description of a UI element.

    Several fields may be set; the driver tries them in the order
    css, xpath, role, label, text.
    """

    css: Optional[str] = Field(None, description="CSS selector")
    xpath: Optional[str] = Field(None, description="XPath expression")
    text: Optional[str] = Field(None, description="Visible text of the element")
    role: Optional[str] = Field(None, description="ARIA role, combined with text as its name")
    label: Optional[str] = Field(None, description="Associated form label")
    exact: bool = Field(default=False, description="Require exact text/label match")
    nth: int = Field(default=0, description="Index among multiple matches")

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _require_one_field(self) -> "ElementLocator":
        if not any([self.css, self.xpath, self.text, self.role, self.label]):
            raise ValueError("ElementLocator needs at least one of css, xpath, text, role, label")
        return self

    def describe(self) -> str:
        """Short human-readable form used in logs and errors."""
        parts = []
        for key in ("css", "xpath", "role", "label", "text"):
            value = getattr(self, key)
            if value:
                parts.append(f"{key}={value!r}")
        if self.nth:
            parts.append(f"nth={self.nth}")
        return " ".join(parts)


class RecognitionTarget(BaseModel):
    """What to look for on screen when structural access fails."""

    text: Optional[str] = Field(None, description="Text to find in recognized output")
    image: Optional[Path] = Field(None, description="Template image to match on screen")
    fuzzy: bool = Field(default=True, description="Fuzzy-match recognized tokens")
    threshold: float = Field(default=70.0, description="Fuzzy score threshold (0-100)")
    image_threshold: float = Field(
        default=0.8, description="Template match score threshold (0-1)"
    )

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _require_target(self) -> "RecognitionTarget":
        if not self.text and self.image is None:
            raise ValueError("RecognitionTarget needs text or image")
        return self


class ActionRequest(BaseModel):
    """One desired interaction with the UI."""

    kind: ActionType = Field(..., description="Action to perform")
    locator: ElementLocator = Field(..., description="Primary structural locator")
    name: str = Field(..., description="Human-readable target name for logs and errors")
    value: Optional[str] = Field(
        None, description="Text for TYPE, option for SELECT, \"true\" or \"false\" for CHECK"
    )
    fallback: Optional[RecognitionTarget] = Field(
        None, description="Recognition-based fallback descriptor"
    )
    verification: Optional[Callable[[], Awaitable[bool]]] = Field(
        None, description="Zero-argument async check returning True on success"
    )
    timeout: float = Field(default=10.0, description="Seconds to wait for the element per attempt")
    retries: int = Field(default=2, ge=0, description="Additional attempts after the first")

    # TYPE options
    clear_first: bool = Field(default=True)
    press_enter: bool = Field(default=False)
    verify_text: bool = Field(default=True)

    # SELECT options
    select_by: SelectBy = Field(default=SelectBy.AUTO)

    class Config:
        frozen = True
        arbitrary_types_allowed = True

    @model_validator(mode="after")
    def _require_value(self) -> "ActionRequest":
        if self.kind != ActionType.CLICK and self.value is None:
            raise ValueError(f"{self.kind.value} action requires a value")
        if self.kind == ActionType.CHECK and self.value.lower() not in ("true", "false"):
            raise ValueError(f"CHECK action value must be 'true' or 'false', got {self.value!r}")
        return self

    @property
    def checked(self) -> bool:
        """Desired checkbox state for a CHECK action."""
        return (self.value or "").lower() == "true"


class TransientActionFailure(BaseModel):
    """Why one strategy did not satisfy an action on one attempt.

    Recoverable by retry or fallback; never raised out of the engine.
    """

    strategy: StrategyName
    reason: str
    error_type: str = Field(default="not_found")


class StrategyResult(BaseModel):
    """Result of a single strategy attempt."""

    succeeded: bool
    strategy: StrategyName
    coordinates: Optional[Coordinates] = None
    failure: Optional[TransientActionFailure] = None

    @classmethod
    def ok(
        cls, strategy: StrategyName, coordinates: Coordinates | None = None
    ) -> "StrategyResult":
        return cls(succeeded=True, strategy=strategy, coordinates=coordinates)

    @classmethod
    def failed(
        cls, strategy: StrategyName, reason: str, error_type: str = "not_found"
    ) -> "StrategyResult":
        return cls(
            succeeded=False,
            strategy=strategy,
            failure=TransientActionFailure(
                strategy=strategy, reason=reason, error_type=error_type
            ),
        )


class FailureDetails(BaseModel):
    """Structured error attached to a failed ActionOutcome."""

    action_kind: ActionType
    target_name: str
    message: str
    snapshot_path: Optional[Path] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class ActionOutcome(BaseModel):
    """Result of executing one ActionRequest."""

    success: bool
    strategy: StrategyName
    elapsed: float = Field(..., description="Seconds spent on the action")
    retries_used: int = Field(default=0)
    attempts: int = Field(default=1)
    error: Optional[FailureDetails] = None


class AttemptEvent(BaseModel):
    """Emitted to observers after every action attempt."""

    action_kind: ActionType
    target_name: str
    attempt: int
    success: bool
    strategy: StrategyName
    elapsed: float
    reasons: list[str] = Field(default_factory=list)
    snapshot_path: Optional[Path] = None


class WorkItem(BaseModel):
    """An opaque unit of work plus fields used for reporting."""

    id: str = Field(..., description="Identity used in logs and reports")
    payload: Any = Field(None, description="Caller-owned data")
    labels: dict[str, Any] = Field(default_factory=dict)

    class Config:
        arbitrary_types_allowed = True


class WorkResult(BaseModel):
    """Outcome of processing one WorkItem."""

    item: WorkItem
    status: WorkStatus
    error: Optional[BaseException] = None
    duration: Optional[float] = None
    attempts: int = Field(default=0)
    details: Any = None

    class Config:
        arbitrary_types_allowed = True


class BatchResult(BaseModel):
    """Aggregate of every WorkResult of one process_batch call."""

    results: list[WorkResult] = Field(default_factory=list)
    success_rate: float = 0.0
    total_duration: float = 0.0
    average_duration: float = 0.0
    aborted: bool = False

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def successes(self) -> int:
        return sum(1 for r in self.results if r.status == WorkStatus.SUCCESS)

    @property
    def failures(self) -> int:
        return sum(1 for r in self.results if r.status == WorkStatus.FAILED)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == WorkStatus.SKIPPED)

    def by_status(self, status: WorkStatus) -> list[WorkResult]:
        return [r for r in self.results if r.status == status]


class ChunkEvent(BaseModel):
    """Emitted to observers after every chunk."""

    index: int
    size: int
    successes: int
    failures: int
    skipped: int
    duration: float
    processed_so_far: int
    failed_so_far: int


class RecognizedToken(BaseModel):
    """One word recognized on screen."""

    text: str
    confidence: float
    box: BoundingBox
    line: int = 0


class RecognitionResult(BaseModel):
    """Full text recognition output for an image."""

    text: str
    confidence: float = 0.0
    tokens: list[RecognizedToken] = Field(default_factory=list)


class TextSearchResult(BaseModel):
    """Result of looking for a needle on screen."""

    found: bool
    box: Optional[BoundingBox] = None
    matched_text: Optional[str] = None
    score: float = 0.0
