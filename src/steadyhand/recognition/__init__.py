"""Recognition module - Optical recognition capability."""

from .recognition import (
    Recognizer,
    TesseractRecognizer,
    locate_text,
    match_template,
    parse_ocr_data,
)

__all__ = [
    "Recognizer",
    "TesseractRecognizer",
    "locate_text",
    "match_template",
    "parse_ocr_data",
]
