"""Shared pytest fixtures for steadyhand tests."""

import asyncio
import io
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from steadyhand.core.config import Config, EngineConfig
from steadyhand.core.types import (
    ActionRequest,
    ActionType,
    BoundingBox,
    Coordinates,
    ElementLocator,
    RecognitionResult,
    TextSearchResult,
)


class FakeDriver:
    """In-memory UIDriver.

    ``present`` may be a bool or a list consumed one entry per ``locate``
    call, to simulate elements that appear or vanish between attempts.
    """

    def __init__(
        self,
        present: bool | list[bool] = True,
        actionable: bool = True,
        type_sticks: bool = True,
        focused_value: str | None = None,
        focused_checked: bool | None = None,
        screenshot_bytes: bytes = b"png-bytes",
    ) -> None:
        self.present = present
        self.is_actionable = actionable
        self.type_sticks = type_sticks
        self.focused_value = focused_value
        self.focused_checked = focused_checked
        self.screenshot_bytes = screenshot_bytes
        self.screenshot_error: Exception | None = None
        self.locate_error: Exception | None = None
        self.idle = True
        self.state_reached = True
        self.locate_delay = 0.0

        self.locate_calls: list[ElementLocator] = []
        self.dispatched: list[ActionRequest] = []
        self.dispatched_at: list[tuple[Coordinates, ActionRequest]] = []
        self.screenshots = 0
        self.values: dict[str, str | None] = {}
        self.selection: tuple[str | None, str | None] = (None, None)
        self.checked: dict[str, bool] = {}
        self.actionable_timeouts: list[float] = []
        self.dispatch_timeouts: list[float | None] = []

    async def locate(self, locator: ElementLocator, timeout: float) -> Any | None:
        self.locate_calls.append(locator)
        if self.locate_delay:
            await asyncio.sleep(self.locate_delay)
        if self.locate_error is not None:
            raise self.locate_error
        if isinstance(self.present, list):
            found = self.present.pop(0) if self.present else False
        else:
            found = self.present
        return locator.describe() if found else None

    async def actionable(self, handle: Any, timeout: float) -> bool:
        self.actionable_timeouts.append(timeout)
        return self.is_actionable

    async def dispatch(
        self, handle: Any, request: ActionRequest, timeout: float | None = None
    ) -> None:
        self.dispatched.append(request)
        self.dispatch_timeouts.append(timeout)
        if request.kind == ActionType.TYPE:
            self.values[handle] = request.value if self.type_sticks else ""
        elif request.kind == ActionType.SELECT:
            self.selection = (request.value, request.value.title())
        elif request.kind == ActionType.CHECK:
            self.checked[handle] = request.checked

    async def dispatch_at(self, coords: Coordinates, request: ActionRequest) -> None:
        self.dispatched_at.append((coords, request))
        # A pointer click toggles the focused checkbox
        if request.kind == ActionType.CHECK and self.focused_checked is not None:
            self.focused_checked = not self.focused_checked

    async def read_value(self, handle: Any) -> str | None:
        return self.values.get(handle)

    async def read_selection(self, handle: Any) -> tuple[str | None, str | None]:
        return self.selection

    async def read_checked(self, handle: Any) -> bool | None:
        return self.checked.get(handle)

    async def read_focused_value(self) -> str | None:
        return self.focused_value

    async def read_focused_checked(self) -> bool | None:
        return self.focused_checked

    async def screenshot(self) -> bytes:
        self.screenshots += 1
        if self.screenshot_error is not None:
            raise self.screenshot_error
        return self.screenshot_bytes

    async def wait_for_idle(self, timeout: float) -> bool:
        return self.idle

    async def wait_for_state(self, locator: ElementLocator, state: str, timeout: float) -> bool:
        return self.state_reached


class FakeRecognizer:
    """Recognizer returning a fixed search result."""

    def __init__(self, text_result: TextSearchResult | None = None) -> None:
        self.text_result = text_result or TextSearchResult(found=False)
        self.image_result = TextSearchResult(found=False)
        self.find_text_calls: list[str] = []
        self.find_image_calls: list[Any] = []

    async def recognize(self, image: bytes) -> RecognitionResult:
        return RecognitionResult(text="")

    async def find_text(
        self, image: bytes, needle: str, fuzzy: bool = True, threshold: float = 70.0
    ) -> TextSearchResult:
        self.find_text_calls.append(needle)
        return self.text_result

    async def find_image(
        self, image: bytes, template: Any, threshold: float = 0.8
    ) -> TextSearchResult:
        self.find_image_calls.append(template)
        return self.image_result


@pytest.fixture
def temp_screenshots_dir(tmp_path: Path) -> Path:
    """Create a temporary directory for screenshots.

    Args:
        tmp_path: pytest's built-in temporary directory fixture

    Returns:
        Path to temporary screenshots directory
    """
    screenshots_dir = tmp_path / "screenshots"
    screenshots_dir.mkdir(parents=True, exist_ok=True)
    return screenshots_dir


@pytest.fixture
def test_config(temp_screenshots_dir: Path) -> Config:
    """Create a test configuration with temporary directories.

    Args:
        temp_screenshots_dir: Temporary screenshots directory

    Returns:
        Config instance for testing
    """
    return Config(
        screenshots_dir=temp_screenshots_dir,
        headless=True,
        viewport_width=1280,
        viewport_height=720,
        action_timeout=1.0,
        per_item_timeout=30.0,
    )


@pytest.fixture
def engine_config() -> EngineConfig:
    """Engine configuration with instant settle checks."""
    return EngineConfig(stability_interval=0.0, type_delay=0.0)


@pytest.fixture
def fake_driver() -> FakeDriver:
    """Driver whose elements are always found and actionable."""
    return FakeDriver()


@pytest.fixture
def found_box() -> BoundingBox:
    """Box a recognizer reports for a match."""
    return BoundingBox(x0=100, y0=200, x1=140, y1=220)


@pytest.fixture
def fake_recognizer(found_box: BoundingBox) -> FakeRecognizer:
    """Recognizer that always finds its needle."""
    return FakeRecognizer(
        TextSearchResult(found=True, box=found_box, matched_text="Heated Seats", score=100.0)
    )


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Awaitable sleep that returns immediately and records its delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def mock_page() -> AsyncMock:
    """Create a mock Playwright Page object.

    Returns:
        AsyncMock configured to simulate Playwright Page
    """
    page = AsyncMock()

    # Mock screenshot method
    page.screenshot = AsyncMock()

    # Mock wait_for_load_state method
    page.wait_for_load_state = AsyncMock()

    return page


@pytest.fixture
def sample_image_bytes() -> bytes:
    """Create a sample PNG image as bytes.

    Returns:
        PNG image bytes (100x100 white image)
    """
    img = Image.new("RGB", (100, 100), color=(255, 255, 255))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def patterned_image() -> Image.Image:
    """White 100x100 image with a black square at (30, 40)-(40, 50)."""
    img = Image.new("RGB", (100, 100), color=(255, 255, 255))
    pixels = img.load()
    for x in range(30, 40):
        for y in range(40, 50):
            pixels[x, y] = (0, 0, 0)
    return img


@pytest.fixture
def to_png():
    """Encode a PIL image as PNG bytes."""

    def encode(img: Image.Image) -> bytes:
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return buffer.getvalue()

    return encode


@pytest.fixture
def make_driver() -> type[FakeDriver]:
    """Factory for drivers with custom behavior."""
    return FakeDriver


@pytest.fixture
def make_recognizer() -> type[FakeRecognizer]:
    """Factory for recognizers with custom results."""
    return FakeRecognizer
