"""steadyhand - Reliable UI automation with structural and recognition strategies."""

from steadyhand.batch import ParallelBatchProcessor, WorkQueue
from steadyhand.core import (
    ActionOutcome,
    ActionRequest,
    ActionType,
    AutomationFailure,
    BatchAborted,
    BatchConfig,
    BatchResult,
    BrowserConfig,
    Config,
    ConfigurationError,
    ElementLocator,
    EngineConfig,
    ItemProcessingFailure,
    ItemTimeout,
    RecognitionTarget,
    SteadyhandError,
    StrategyName,
    WorkItem,
    WorkResult,
    WorkStatus,
)
from steadyhand.driver import BrowserSession, PlaywrightDriver, UIDriver
from steadyhand.engine import ReliableInteractionEngine
from steadyhand.matcher import best_match
from steadyhand.recognition import Recognizer, TesseractRecognizer
from steadyhand.retry import RetryPolicy, with_retry

__version__ = "0.1.0"

__all__ = [
    "ParallelBatchProcessor",
    "WorkQueue",
    "ActionOutcome",
    "ActionRequest",
    "ActionType",
    "AutomationFailure",
    "BatchAborted",
    "BatchConfig",
    "BatchResult",
    "BrowserConfig",
    "Config",
    "ConfigurationError",
    "ElementLocator",
    "EngineConfig",
    "ItemProcessingFailure",
    "ItemTimeout",
    "RecognitionTarget",
    "SteadyhandError",
    "StrategyName",
    "WorkItem",
    "WorkResult",
    "WorkStatus",
    "BrowserSession",
    "PlaywrightDriver",
    "UIDriver",
    "ReliableInteractionEngine",
    "best_match",
    "Recognizer",
    "TesseractRecognizer",
    "RetryPolicy",
    "with_retry",
]
