"""Strategies - Ordered ways of satisfying one action."""

import asyncio
import time
from typing import Protocol, runtime_checkable

import structlog

from steadyhand.core.types import (
    ActionRequest,
    ActionType,
    Coordinates,
    SelectBy,
    StrategyName,
    StrategyResult,
    TextSearchResult,
)
from steadyhand.driver import UIDriver
from steadyhand.recognition import Recognizer


logger = structlog.get_logger()


@runtime_checkable
class Strategy(Protocol):
    """One way of performing an action.

    ``attempt`` reports "not found" and similar expected conditions as a
    failed StrategyResult instead of raising.
    """

    name: StrategyName

    def applies(self, request: ActionRequest) -> bool:
        ...

    async def attempt(self, request: ActionRequest) -> StrategyResult:
        ...


class StructuralStrategy:
    """Locate the element through the document structure and act on it."""

    name = StrategyName.STRUCTURAL

    def __init__(self, driver: UIDriver) -> None:
        self.driver = driver

    def applies(self, request: ActionRequest) -> bool:
        return True

    async def attempt(self, request: ActionRequest) -> StrategyResult:
        """Locate, wait until actionable, dispatch, then check completion.

        The three driver calls share one ``request.timeout`` budget.

        Args:
            request: Action to perform

        Returns:
            StrategyResult; driver errors are folded into a failed result
        """
        deadline = time.monotonic() + request.timeout
        try:
            handle = await self.driver.locate(request.locator, request.timeout)
            if handle is None:
                return StrategyResult.failed(
                    self.name,
                    f"element not found: {request.locator.describe()}",
                    "not_found",
                )

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return self._out_of_time(request)
            if not await self.driver.actionable(handle, remaining):
                return StrategyResult.failed(
                    self.name,
                    f"element not actionable within {request.timeout:.1f}s",
                    "not_actionable",
                )

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return self._out_of_time(request)
            await self.driver.dispatch(handle, request, timeout=remaining)
            return await self._check_completion(handle, request)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(
                "structural_attempt_error",
                target=request.name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return StrategyResult.failed(
                self.name, f"{type(e).__name__}: {e}", "driver_error"
            )

    def _out_of_time(self, request: ActionRequest) -> StrategyResult:
        return StrategyResult.failed(
            self.name, f"attempt exceeded {request.timeout:.1f}s", "timeout"
        )

    async def _check_completion(self, handle: object, request: ActionRequest) -> StrategyResult:
        """Type-specific checks that the action really took effect."""
        if request.kind == ActionType.TYPE and request.verify_text:
            actual = await self.driver.read_value(handle)
            if actual != request.value:
                return StrategyResult.failed(
                    self.name,
                    f"text verification failed: expected {request.value!r}, got {actual!r}",
                    "verification_failed",
                )

        if request.kind == ActionType.SELECT and request.verification is None:
            value, label = await self.driver.read_selection(handle)
            if request.select_by == SelectBy.VALUE:
                accepted = (value,)
            elif request.select_by == SelectBy.LABEL:
                accepted = (label,)
            else:
                accepted = (value, label)
            if request.value not in accepted:
                return StrategyResult.failed(
                    self.name,
                    f"selection verification failed: expected {request.value!r}, "
                    f"got value={value!r} label={label!r}",
                    "verification_failed",
                )

        if request.kind == ActionType.CHECK and request.verification is None:
            actual = await self.driver.read_checked(handle)
            if actual != request.checked:
                return StrategyResult.failed(
                    self.name,
                    f"checkbox verification failed: expected {request.checked}, got {actual}",
                    "verification_failed",
                )

        return StrategyResult.ok(self.name)


class RecognitionStrategy:
    """Find the target on screen by recognition and act at its coordinates."""

    name = StrategyName.RECOGNITION

    def __init__(self, driver: UIDriver, recognizer: Recognizer | None) -> None:
        self.driver = driver
        self.recognizer = recognizer

    def applies(self, request: ActionRequest) -> bool:
        return self.recognizer is not None and request.fallback is not None

    async def _search(self, screenshot: bytes, request: ActionRequest) -> TextSearchResult:
        target = request.fallback
        result = TextSearchResult(found=False)

        if target.text:
            result = await self.recognizer.find_text(
                screenshot, target.text, fuzzy=target.fuzzy, threshold=target.threshold
            )
        if not result.found and target.image is not None:
            result = await self.recognizer.find_image(
                screenshot, target.image, threshold=target.image_threshold
            )
        return result

    async def _settle_checkbox(self, coords: Coordinates, request: ActionRequest) -> bool | None:
        """Click again if the first click left the checkbox in the wrong state.

        A pointer click toggles, so an already-set box comes out flipped.
        Returns the final state, or None when the focused element is not a
        checkbox.
        """
        checked = await self.driver.read_focused_checked()
        if checked is None or checked == request.checked:
            return checked
        await self.driver.dispatch_at(coords, request)
        return await self.driver.read_focused_checked()

    async def attempt(self, request: ActionRequest) -> StrategyResult:
        """Screenshot, search, dispatch a pointer action at the match.

        Args:
            request: Action to perform

        Returns:
            StrategyResult carrying the coordinates acted on
        """
        if not self.applies(request):
            return StrategyResult.failed(
                self.name, "no recognition fallback configured", "not_configured"
            )

        target = request.fallback
        description = target.text or str(target.image)

        try:
            screenshot = await self.driver.screenshot()
            search = await self._search(screenshot, request)
            if not search.found or search.box is None:
                return StrategyResult.failed(
                    self.name, f"{description!r} not found on screen", "not_found"
                )

            coords = search.box.center
            logger.info(
                "element_found_by_recognition",
                target=request.name,
                matched_text=search.matched_text,
                score=round(search.score, 2),
                x=coords.x,
                y=coords.y,
            )
            await self.driver.dispatch_at(coords, request)

            if request.kind == ActionType.TYPE and request.verify_text:
                actual = await self.driver.read_focused_value()
                # None means the focused element exposes no value to read back
                if actual is not None and actual != request.value:
                    return StrategyResult.failed(
                        self.name,
                        f"text verification failed: expected {request.value!r}, got {actual!r}",
                        "verification_failed",
                    )

            if request.kind == ActionType.CHECK:
                checked = await self._settle_checkbox(coords, request)
                if checked is not None and checked != request.checked:
                    return StrategyResult.failed(
                        self.name,
                        f"checkbox verification failed: expected {request.checked}, got {checked}",
                        "verification_failed",
                    )

            return StrategyResult.ok(self.name, coords)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(
                "recognition_attempt_error",
                target=request.name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return StrategyResult.failed(
                self.name, f"{type(e).__name__}: {e}", "recognition_error"
            )
