"""Core module - Shared types, errors, and configuration."""

from .types import (
    ActionType,
    StrategyName,
    SelectBy,
    WorkStatus,
    Coordinates,
    BoundingBox,
    ElementLocator,
    RecognitionTarget,
    ActionRequest,
    ActionOutcome,
    AttemptEvent,
    StrategyResult,
    TransientActionFailure,
    WorkItem,
    WorkResult,
    BatchResult,
    ChunkEvent,
)
from .errors import (
    SteadyhandError,
    AutomationFailure,
    ItemProcessingFailure,
    ItemTimeout,
    BatchAborted,
    ConfigurationError,
)
from .config import Config, EngineConfig, BatchConfig, BrowserConfig

__all__ = [
    "ActionType",
    "StrategyName",
    "SelectBy",
    "WorkStatus",
    "Coordinates",
    "BoundingBox",
    "ElementLocator",
    "RecognitionTarget",
    "ActionRequest",
    "ActionOutcome",
    "AttemptEvent",
    "StrategyResult",
    "TransientActionFailure",
    "WorkItem",
    "WorkResult",
    "BatchResult",
    "ChunkEvent",
    "SteadyhandError",
    "AutomationFailure",
    "ItemProcessingFailure",
    "ItemTimeout",
    "BatchAborted",
    "ConfigurationError",
    "Config",
    "EngineConfig",
    "BatchConfig",
    "BrowserConfig",
]
