"""Engine module - Reliable interaction engine and its strategies."""

from .engine import ReliableInteractionEngine
from .strategies import RecognitionStrategy, Strategy, StructuralStrategy

__all__ = [
    "ReliableInteractionEngine",
    "Strategy",
    "StructuralStrategy",
    "RecognitionStrategy",
]
