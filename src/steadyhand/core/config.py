"""Configuration management for steadyhand."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from steadyhand.core.errors import ConfigurationError
from steadyhand.retry.retry import RetryPolicy


load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


class EngineConfig(BaseModel):
    """Settings for the reliable interaction engine."""

    action_timeout: float = Field(default=10.0, gt=0, description="Per-attempt actionable wait (s)")
    retries: int = Field(default=2, ge=0)

    # Interaction backoff is intentionally short, UI state changes quickly
    min_delay: float = Field(default=0.5, ge=0)
    max_delay: float = Field(default=2.0, ge=0)
    factor: float = Field(default=2.0, ge=1)

    fuzzy_threshold: float = Field(default=70.0, ge=0, le=100)

    # Settle check
    stability_checks: int = Field(default=3, ge=1)
    stability_interval: float = Field(default=0.1, ge=0)
    stability_tolerance: float = Field(default=2.0, ge=0, description="Pixels")

    type_delay: float = Field(default=0.05, ge=0, description="Delay between keystrokes (s)")
    idle_timeout: float = Field(default=5.0, ge=0)

    capture_attempt_snapshots: bool = Field(default=False)
    capture_failure_snapshots: bool = Field(default=True)

    class Config:
        frozen = True

    def retry_policy(self, retries: int | None = None) -> RetryPolicy:
        """Backoff used between interaction attempts."""
        return RetryPolicy(
            retries=self.retries if retries is None else retries,
            min_delay=self.min_delay,
            max_delay=self.max_delay,
            factor=self.factor,
        )


class BatchConfig(BaseModel):
    """Settings for the parallel batch processor."""

    max_concurrency: int = Field(default=3, ge=1)
    batch_size: int = Field(default=10, ge=1)
    retry_attempts: int = Field(default=2, ge=1, description="Total attempts per item")
    per_item_timeout: float = Field(default=300.0, gt=0, description="Seconds per item")
    error_threshold: float = Field(default=0.5, ge=0, le=1)
    abort_on_error: bool = Field(default=False)

    min_delay: float = Field(default=2.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    factor: float = Field(default=2.0, ge=1)

    class Config:
        frozen = True

    def retry_policy(self) -> RetryPolicy:
        """Backoff used between attempts of one item."""
        return RetryPolicy(
            retries=self.retry_attempts - 1,
            min_delay=self.min_delay,
            max_delay=self.max_delay,
            factor=self.factor,
        )


class BrowserConfig(BaseModel):
    """Settings for the Playwright browser session."""

    headless: bool = Field(default=False)
    viewport_width: int = Field(default=1280)
    viewport_height: int = Field(default=720)
    navigation_timeout: float = Field(default=60.0)
    user_data_dir: Path | None = Field(
        default=None, description="Browser profile directory for persistent sessions"
    )
    storage_state: Path | None = Field(
        default=None, description="Path to storage state JSON for session persistence"
    )

    class Config:
        frozen = True


class Config(BaseModel):
    """Application configuration."""

    # Screenshot settings
    screenshots_dir: Path = Field(
        default_factory=lambda: Path(
            os.getenv("STEADYHAND_SCREENSHOTS_DIR", "./data/screenshots")
        )
    )

    # Browser settings
    headless: bool = Field(default_factory=lambda: _env_bool("STEADYHAND_HEADLESS", False))
    viewport_width: int = Field(default=1280)
    viewport_height: int = Field(default=720)
    user_data_dir: Path | None = Field(default=None)
    storage_state: Path | None = Field(default=None)

    # Recognition settings
    tesseract_cmd: str | None = Field(default_factory=lambda: os.getenv("TESSERACT_CMD"))
    ocr_language: str = Field(default="eng")
    fuzzy_threshold: float = Field(
        default_factory=lambda: _env_float("STEADYHAND_FUZZY_THRESHOLD", 70.0)
    )

    # Engine settings
    action_timeout: float = Field(
        default_factory=lambda: _env_float("STEADYHAND_ACTION_TIMEOUT", 10.0)
    )
    action_retries: int = Field(default_factory=lambda: _env_int("STEADYHAND_ACTION_RETRIES", 2))
    capture_attempt_snapshots: bool = Field(default=False)

    # Batch settings
    max_concurrency: int = Field(
        default_factory=lambda: _env_int("STEADYHAND_MAX_CONCURRENCY", 3)
    )
    batch_size: int = Field(default_factory=lambda: _env_int("STEADYHAND_BATCH_SIZE", 10))
    retry_attempts: int = Field(default=2)
    per_item_timeout: float = Field(
        default_factory=lambda: _env_float("STEADYHAND_ITEM_TIMEOUT", 300.0)
    )
    error_threshold: float = Field(
        default_factory=lambda: _env_float("STEADYHAND_ERROR_THRESHOLD", 0.5)
    )
    abort_on_error: bool = Field(
        default_factory=lambda: _env_bool("STEADYHAND_ABORT_ON_ERROR", False)
    )

    # Logging settings
    log_level: str = Field(default_factory=lambda: os.getenv("STEADYHAND_LOG_LEVEL", "INFO"))

    class Config:
        arbitrary_types_allowed = True

    @model_validator(mode="after")
    def _check_budgets(self) -> "Config":
        # The engine timeout nests inside the item budget
        if self.action_timeout >= self.per_item_timeout:
            raise ConfigurationError(
                f"action_timeout ({self.action_timeout}s) must be smaller than "
                f"per_item_timeout ({self.per_item_timeout}s)"
            )
        if not 0.0 <= self.error_threshold <= 1.0:
            raise ConfigurationError(
                f"error_threshold must be within [0, 1], got {self.error_threshold}"
            )
        if self.max_concurrency < 1 or self.batch_size < 1:
            raise ConfigurationError("max_concurrency and batch_size must be at least 1")
        return self

    @property
    def engine(self) -> EngineConfig:
        return EngineConfig(
            action_timeout=self.action_timeout,
            retries=self.action_retries,
            fuzzy_threshold=self.fuzzy_threshold,
            capture_attempt_snapshots=self.capture_attempt_snapshots,
        )

    @property
    def batch(self) -> BatchConfig:
        return BatchConfig(
            max_concurrency=self.max_concurrency,
            batch_size=self.batch_size,
            retry_attempts=self.retry_attempts,
            per_item_timeout=self.per_item_timeout,
            error_threshold=self.error_threshold,
            abort_on_error=self.abort_on_error,
        )

    @property
    def browser(self) -> BrowserConfig:
        return BrowserConfig(
            headless=self.headless,
            viewport_width=self.viewport_width,
            viewport_height=self.viewport_height,
            user_data_dir=self.user_data_dir,
            storage_state=self.storage_state,
        )
