"""Recognition - Screen text and image recognition behind one interface."""

import asyncio
import io
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import cv2
import numpy as np
import pytesseract
import structlog
from PIL import Image

from steadyhand.core.types import (
    BoundingBox,
    RecognitionResult,
    RecognizedToken,
    TextSearchResult,
)
from steadyhand.matcher import DEFAULT_THRESHOLD, best_match, whole_score
from steadyhand.retry import RetryPolicy, with_retry


logger = structlog.get_logger()


@runtime_checkable
class Recognizer(Protocol):
    """Interface for an optical recognition capability.

    The engine only depends on this protocol, never on a specific
    recognition technology.
    """

    async def recognize(self, image: bytes) -> RecognitionResult:
        """Recognize all text in an image.

        Args:
            image: PNG/JPEG bytes

        Returns:
            Full text plus per-token boxes and confidence
        """
        ...

    async def find_text(
        self,
        image: bytes,
        needle: str,
        fuzzy: bool = True,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> TextSearchResult:
        """Find a phrase among recognized tokens.

        Args:
            image: PNG/JPEG bytes
            needle: Text to look for
            fuzzy: Fuzzy-match each token instead of substring search
            threshold: Fuzzy score threshold (0-100)

        Returns:
            Search result with the box of the best token run
        """
        ...

    async def find_image(
        self, image: bytes, template: bytes | Path, threshold: float = 0.8
    ) -> TextSearchResult:
        """Find a template image inside a screenshot."""
        ...


def _group_lines(tokens: list[RecognizedToken]) -> list[list[RecognizedToken]]:
    lines: dict[int, list[RecognizedToken]] = {}
    for token in tokens:
        lines.setdefault(token.line, []).append(token)
    return [lines[key] for key in sorted(lines)]


def _runs(
    tokens: list[RecognizedToken], words: int
) -> list[tuple[str, BoundingBox]]:
    """Runs of ``words`` adjacent tokens on the same line, with union boxes."""
    if words <= 1:
        return [(token.text, token.box) for token in tokens]

    runs = []
    for line in _group_lines(tokens):
        for start in range(len(line) - words + 1):
            run = line[start:start + words]
            box = run[0].box
            for token in run[1:]:
                box = box.union(token.box)
            runs.append((" ".join(token.text for token in run), box))
    return runs


def locate_text(
    tokens: list[RecognizedToken],
    needle: str,
    fuzzy: bool = True,
    threshold: float = DEFAULT_THRESHOLD,
) -> TextSearchResult:
    """Find a needle among recognized tokens.

    A multi-word needle is compared against same-length runs of tokens
    first. Single tokens are only searched when no run matches, which
    catches words the recognizer merged into one token. Fuzzy scores
    compare whole strings, so a stray fragment like "e" never counts as
    a partial hit on a longer needle.

    Args:
        tokens: Recognized tokens with boxes
        needle: Text to look for
        fuzzy: Use the fuzzy matcher instead of case-insensitive containment
        threshold: Fuzzy score threshold (0-100)

    Returns:
        Search result; ``found`` is False when nothing matches
    """
    if not tokens or not needle.strip():
        return TextSearchResult(found=False)

    words = len(needle.split())
    groups = [_runs(tokens, words)]
    if words > 1:
        groups.append(_runs(tokens, 1))

    needle_lower = needle.lower()
    for candidates in groups:
        texts = [text for text, _ in candidates]

        if fuzzy:
            match = best_match(needle, texts, threshold, scorer=whole_score)
            if match is not None:
                return TextSearchResult(
                    found=True,
                    box=candidates[texts.index(match)][1],
                    matched_text=match,
                    score=whole_score(needle, match),
                )
            continue

        for text, box in candidates:
            if needle_lower in text.lower():
                return TextSearchResult(found=True, box=box, matched_text=text, score=100.0)

    return TextSearchResult(found=False)


def parse_ocr_data(data: dict[str, list[Any]], min_confidence: float = 0.0) -> RecognitionResult:
    """Convert ``pytesseract.image_to_data`` output to a RecognitionResult.

    Args:
        data: Dict output of image_to_data
        min_confidence: Drop tokens below this confidence (0-100)

    Returns:
        RecognitionResult with one token per recognized word
    """
    tokens: list[RecognizedToken] = []
    line_ids: dict[tuple[Any, Any, Any], int] = {}
    texts = data.get("text", [])

    for i, raw_text in enumerate(texts):
        text = str(raw_text).strip()
        if not text:
            continue

        try:
            confidence = float(str(data["conf"][i]).strip() or -1)
        except (ValueError, KeyError, IndexError):
            continue
        # Tesseract reports -1 for non-word boxes
        if confidence < 0 or confidence < min_confidence:
            continue

        try:
            left = float(data["left"][i])
            top = float(data["top"][i])
            width = float(data["width"][i])
            height = float(data["height"][i])
        except (KeyError, IndexError, ValueError):
            logger.debug("ocr_token_missing_geometry", index=i)
            continue

        line_key = (
            data.get("block_num", [0] * len(texts))[i],
            data.get("par_num", [0] * len(texts))[i],
            data.get("line_num", [0] * len(texts))[i],
        )
        line = line_ids.setdefault(line_key, len(line_ids))

        tokens.append(
            RecognizedToken(
                text=text,
                confidence=confidence,
                box=BoundingBox(x0=left, y0=top, x1=left + width, y1=top + height),
                line=line,
            )
        )

    lines = [" ".join(token.text for token in line) for line in _group_lines(tokens)]
    mean_confidence = (
        sum(token.confidence for token in tokens) / len(tokens) if tokens else 0.0
    )
    return RecognitionResult(text="\n".join(lines), confidence=mean_confidence, tokens=tokens)


def match_template(image: bytes, template: bytes, threshold: float = 0.8) -> TextSearchResult:
    """Locate a template inside an image with normalized cross-correlation.

    Args:
        image: Screenshot bytes
        template: Template image bytes
        threshold: Minimum correlation (0-1)

    Returns:
        Search result with the matched region
    """
    haystack = cv2.imdecode(np.frombuffer(image, dtype=np.uint8), cv2.IMREAD_GRAYSCALE)
    needle = cv2.imdecode(np.frombuffer(template, dtype=np.uint8), cv2.IMREAD_GRAYSCALE)
    if haystack is None or needle is None:
        raise ValueError("Could not decode image or template")

    needle_h, needle_w = needle.shape[:2]
    haystack_h, haystack_w = haystack.shape[:2]
    if needle_h > haystack_h or needle_w > haystack_w:
        return TextSearchResult(found=False)

    result = cv2.matchTemplate(haystack, needle, cv2.TM_CCOEFF_NORMED)
    _, max_val, _, max_loc = cv2.minMaxLoc(result)

    if max_val < threshold:
        return TextSearchResult(found=False, score=float(max_val))

    x, y = max_loc
    return TextSearchResult(
        found=True,
        box=BoundingBox(x0=x, y0=y, x1=x + needle_w, y1=y + needle_h),
        score=float(max_val),
    )


class TesseractRecognizer:
    """Recognizer backed by Tesseract OCR and OpenCV template matching."""

    def __init__(
        self,
        language: str = "eng",
        tesseract_cmd: str | None = None,
        min_confidence: float = 0.0,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize the recognizer.

        Args:
            language: Tesseract language code
            tesseract_cmd: Path to the tesseract binary if not on PATH
            min_confidence: Drop tokens below this confidence (0-100)
            retry_policy: Backoff for the OCR call
        """
        self.language = language
        self.min_confidence = min_confidence
        self.retry_policy = retry_policy or RetryPolicy(
            retries=2, min_delay=0.5, max_delay=2.0, factor=2.0
        )
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def _recognize_sync(self, image: bytes) -> RecognitionResult:
        with Image.open(io.BytesIO(image)) as img:
            data = pytesseract.image_to_data(
                img.convert("RGB"),
                lang=self.language,
                output_type=pytesseract.Output.DICT,
            )
        return parse_ocr_data(data, self.min_confidence)

    async def recognize(self, image: bytes) -> RecognitionResult:
        """Recognize all text in an image.

        OCR is CPU-bound, so it runs in a worker thread.

        Args:
            image: PNG/JPEG bytes

        Returns:
            Full text plus per-token boxes and confidence
        """
        result = await with_retry(
            lambda: asyncio.to_thread(self._recognize_sync, image),
            self.retry_policy,
            on_failed_attempt=lambda attempt, error, remaining: logger.warning(
                "ocr_attempt_failed",
                attempt=attempt,
                retries_left=remaining,
                error=str(error),
            ),
        )
        logger.debug(
            "ocr_complete",
            tokens=len(result.tokens),
            confidence=round(result.confidence, 1),
        )
        return result

    async def find_text(
        self,
        image: bytes,
        needle: str,
        fuzzy: bool = True,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> TextSearchResult:
        """Find a phrase on screen.

        Args:
            image: PNG/JPEG bytes
            needle: Text to look for
            fuzzy: Fuzzy-match tokens
            threshold: Fuzzy score threshold (0-100)

        Returns:
            Search result, ``found=False`` when OCR fails or nothing matches
        """
        try:
            result = await self.recognize(image)
        except Exception as e:
            logger.error("ocr_find_text_failed", needle=needle, error=str(e))
            return TextSearchResult(found=False)

        search = locate_text(result.tokens, needle, fuzzy=fuzzy, threshold=threshold)
        logger.debug(
            "ocr_find_text",
            needle=needle,
            found=search.found,
            matched_text=search.matched_text,
            score=search.score,
        )
        return search

    async def find_image(
        self, image: bytes, template: bytes | Path, threshold: float = 0.8
    ) -> TextSearchResult:
        """Find a template image inside a screenshot.

        Args:
            image: Screenshot bytes
            template: Template bytes or path to a template file
            threshold: Minimum correlation (0-1)

        Returns:
            Search result, ``found=False`` on decode errors or no match
        """
        try:
            template_bytes = (
                template.read_bytes() if isinstance(template, Path) else template
            )
            return await asyncio.to_thread(match_template, image, template_bytes, threshold)
        except Exception as e:
            logger.error("template_match_failed", template=str(template)[:80], error=str(e))
            return TextSearchResult(found=False)
