"""Driver module - UI driver capability and browser session."""

from .driver import UIDriver, PlaywrightDriver, CANDIDATE_SELECTOR
from .session import BrowserSession

__all__ = ["UIDriver", "PlaywrightDriver", "CANDIDATE_SELECTOR", "BrowserSession"]
