"""Driver - UI driver capability and its Playwright implementation."""

import asyncio
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from steadyhand.core.config import EngineConfig
from steadyhand.core.types import (
    ActionRequest,
    ActionType,
    Coordinates,
    ElementLocator,
    SelectBy,
)
from steadyhand.matcher import best_match

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page


logger = structlog.get_logger()


# Elements whose visible text is considered when fuzzy-matching a label
CANDIDATE_SELECTOR = (
    "button, a, label, option, [role=button], [role=tab], [role=menuitem], "
    "[role=option], input[type=submit], input[type=button]"
)

_READ_SELECTION_JS = """el => {
    if (el.options && el.selectedIndex >= 0) {
        const opt = el.options[el.selectedIndex];
        return [opt.value, opt.label];
    }
    return [el.value === undefined ? null : el.value, null];
}"""

_READ_FOCUSED_JS = """() => {
    const el = document.activeElement;
    return el && 'value' in el ? el.value : null;
}"""

_READ_FOCUSED_CHECKED_JS = """() => {
    const el = document.activeElement;
    return el && (el.type === 'checkbox' || el.type === 'radio') ? el.checked : null;
}"""


@runtime_checkable
class UIDriver(Protocol):
    """Interface the engine uses to touch the live UI.

    ``locate`` returns None for elements that cannot be found; "not found"
    is a normal result, not an error.
    """

    async def locate(self, locator: ElementLocator, timeout: float) -> Any | None:
        ...

    async def actionable(self, handle: Any, timeout: float) -> bool:
        ...

    async def dispatch(
        self, handle: Any, request: ActionRequest, timeout: float | None = None
    ) -> None:
        ...

    async def dispatch_at(self, coords: Coordinates, request: ActionRequest) -> None:
        ...

    async def read_value(self, handle: Any) -> str | None:
        ...

    async def read_selection(self, handle: Any) -> tuple[str | None, str | None]:
        ...

    async def read_checked(self, handle: Any) -> bool | None:
        ...

    async def read_focused_value(self) -> str | None:
        ...

    async def read_focused_checked(self) -> bool | None:
        ...

    async def screenshot(self) -> bytes:
        ...

    async def wait_for_idle(self, timeout: float) -> bool:
        ...

    async def wait_for_state(
        self, locator: ElementLocator, state: str, timeout: float
    ) -> bool:
        ...


class PlaywrightDriver:
    """UIDriver over a Playwright page."""

    def __init__(self, page: "Page", config: EngineConfig | None = None) -> None:
        """Initialize the driver.

        Args:
            page: Playwright page instance
            config: Engine configuration (settle check, fuzzy threshold, typing delay)
        """
        self.page = page
        self.config = config or EngineConfig()

    def _build(self, locator: ElementLocator) -> "Locator":
        if locator.css:
            target = self.page.locator(locator.css)
        elif locator.xpath:
            target = self.page.locator(f"xpath={locator.xpath}")
        elif locator.role:
            target = self.page.get_by_role(
                locator.role, name=locator.text, exact=locator.exact
            )
        elif locator.label:
            target = self.page.get_by_label(locator.label, exact=locator.exact)
        else:
            target = self.page.get_by_text(locator.text, exact=locator.exact)
        return target.nth(locator.nth)

    async def locate(self, locator: ElementLocator, timeout: float) -> "Locator | None":
        """Find an element, falling back to fuzzy text lookup.

        Args:
            locator: Structural description of the element
            timeout: Seconds to wait for the element to attach

        Returns:
            Locator handle, or None if not found
        """
        handle = self._build(locator)
        try:
            await handle.wait_for(state="attached", timeout=timeout * 1000)
            return handle
        except PlaywrightTimeoutError:
            logger.debug("element_not_attached", locator=locator.describe())
        except PlaywrightError as e:
            logger.debug("element_locate_error", locator=locator.describe(), error=str(e))
            return None

        target_text = locator.text or locator.label
        if not target_text:
            return None
        return await self._fuzzy_locate(target_text)

    async def _fuzzy_locate(self, target_text: str) -> "Locator | None":
        try:
            texts = await self.page.locator(CANDIDATE_SELECTOR).all_inner_texts()
        except PlaywrightError as e:
            logger.debug("candidate_texts_error", error=str(e))
            return None

        candidates = [text.strip() for text in texts if text and text.strip()]
        match = best_match(target_text, candidates, self.config.fuzzy_threshold)
        if match is None:
            logger.debug(
                "fuzzy_locate_no_match",
                target=target_text,
                candidates=len(candidates),
            )
            return None

        handle = self.page.get_by_text(match, exact=True).first
        if await handle.count() == 0:
            return None

        logger.info("element_found_by_fuzzy_text", target=target_text, matched=match)
        return handle

    async def actionable(self, handle: "Locator", timeout: float) -> bool:
        """Wait until an element is visible, in view and settled.

        Args:
            handle: Element handle from ``locate``
            timeout: Seconds to wait

        Returns:
            True if the element can be acted on
        """
        try:
            await handle.wait_for(state="visible", timeout=timeout * 1000)
            await handle.scroll_into_view_if_needed(timeout=timeout * 1000)
        except PlaywrightTimeoutError:
            logger.debug("element_not_visible", timeout=timeout)
            return False
        except PlaywrightError as e:
            logger.debug("element_not_actionable", error=str(e))
            return False

        return await self._is_settled(handle)

    async def _is_settled(self, handle: "Locator") -> bool:
        """Check the element's position stays put across several samples."""
        checks = self.config.stability_checks
        tolerance = self.config.stability_tolerance
        last: tuple[float, float] | None = None
        stable_count = 0

        for i in range(checks + 2):
            try:
                box = await handle.bounding_box()
            except PlaywrightError:
                return False
            if box is None:
                return False

            position = (box["x"], box["y"])
            if last is not None:
                moved = (
                    abs(position[0] - last[0]) > tolerance
                    or abs(position[1] - last[1]) > tolerance
                )
                if moved:
                    stable_count = 0
                else:
                    stable_count += 1
                    if stable_count >= checks:
                        return True

            last = position
            if i < checks + 1:
                await asyncio.sleep(self.config.stability_interval)

        logger.debug("element_not_settled", checks=checks)
        return False

    async def dispatch(
        self, handle: "Locator", request: ActionRequest, timeout: float | None = None
    ) -> None:
        """Perform the request's action on a located element.

        Args:
            handle: Element handle from ``locate``
            request: Action to perform
            timeout: Seconds allowed, defaults to ``request.timeout``
        """
        timeout_ms = (request.timeout if timeout is None else timeout) * 1000

        match request.kind:
            case ActionType.CLICK:
                await handle.click(timeout=timeout_ms)

            case ActionType.TYPE:
                if request.clear_first:
                    await handle.fill("", timeout=timeout_ms)
                await handle.press_sequentially(
                    request.value, delay=self.config.type_delay * 1000, timeout=timeout_ms
                )
                if request.press_enter:
                    await handle.press("Enter", timeout=timeout_ms)

            case ActionType.SELECT:
                if request.select_by == SelectBy.VALUE:
                    await handle.select_option(value=request.value, timeout=timeout_ms)
                elif request.select_by == SelectBy.LABEL:
                    await handle.select_option(label=request.value, timeout=timeout_ms)
                else:
                    await handle.select_option(request.value, timeout=timeout_ms)

            case ActionType.CHECK:
                if await handle.is_checked(timeout=timeout_ms) == request.checked:
                    logger.debug(
                        "checkbox_already_set", target=request.name, checked=request.checked
                    )
                else:
                    await handle.set_checked(request.checked, timeout=timeout_ms)

        logger.debug("dispatched", action=request.kind.value, target=request.name)

    async def dispatch_at(self, coords: Coordinates, request: ActionRequest) -> None:
        """Perform the request's action with synthetic pointer events.

        Args:
            coords: Screen coordinates of the target
            request: Action to perform
        """
        mouse = self.page.mouse
        keyboard = self.page.keyboard

        match request.kind:
            case ActionType.CLICK | ActionType.CHECK:
                await mouse.click(coords.x, coords.y)

            case ActionType.TYPE:
                # Triple click selects existing text so typing replaces it
                click_count = 3 if request.clear_first else 1
                await mouse.click(coords.x, coords.y, click_count=click_count)
                await keyboard.type(request.value, delay=self.config.type_delay * 1000)
                if request.press_enter:
                    await keyboard.press("Enter")

            case ActionType.SELECT:
                await mouse.click(coords.x, coords.y)
                await self.page.wait_for_timeout(200)  # Wait for dropdown
                await keyboard.type(request.value)
                await keyboard.press("Enter")

        logger.debug(
            "dispatched_at",
            action=request.kind.value,
            target=request.name,
            x=coords.x,
            y=coords.y,
        )

    async def read_value(self, handle: "Locator") -> str | None:
        return await handle.input_value()

    async def read_selection(self, handle: "Locator") -> tuple[str | None, str | None]:
        value, label = await handle.evaluate(_READ_SELECTION_JS)
        return value, label

    async def read_checked(self, handle: "Locator") -> bool | None:
        return await handle.is_checked()

    async def read_focused_value(self) -> str | None:
        return await self.page.evaluate(_READ_FOCUSED_JS)

    async def read_focused_checked(self) -> bool | None:
        """Checked state of the focused checkbox or radio, None for other elements."""
        return await self.page.evaluate(_READ_FOCUSED_CHECKED_JS)

    async def screenshot(self) -> bytes:
        """Get current viewport screenshot as PNG bytes."""
        return await self.page.screenshot(full_page=False)

    async def wait_for_idle(self, timeout: float) -> bool:
        """Wait for network idle; a timeout is not an error.

        Args:
            timeout: Seconds to wait

        Returns:
            True if the page went idle in time
        """
        try:
            await self.page.wait_for_load_state("networkidle", timeout=timeout * 1000)
            return True
        except PlaywrightTimeoutError:
            return False

    async def wait_for_state(
        self, locator: ElementLocator, state: str, timeout: float
    ) -> bool:
        """Wait for an element to reach a state ("visible", "hidden", ...).

        Args:
            locator: Element description
            state: Playwright wait_for state
            timeout: Seconds to wait

        Returns:
            True if the state was reached
        """
        try:
            await self._build(locator).wait_for(state=state, timeout=timeout * 1000)
            return True
        except PlaywrightTimeoutError:
            return False
