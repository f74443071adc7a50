"""Snapshots - Forensic screenshots of failed interactions."""

from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from steadyhand.driver import UIDriver


logger = structlog.get_logger()


class Snapshot(BaseModel):
    """Screenshot captured at a point in time."""

    name: str
    timestamp: datetime = Field(default_factory=datetime.now)
    image: Optional[bytes] = Field(None, description="Screenshot as PNG bytes")
    path: Optional[Path] = Field(None, description="Where the screenshot was saved")


def snapshot_filename(name: str, timestamp: datetime) -> str:
    """Build ``YYYYMMDD_HHMMSS_ffffff_<name>.png`` with a filesystem-safe name."""
    safe_name = "".join(c if c.isalnum() or c in "-_" else "_" for c in name)
    return f"{timestamp.strftime('%Y%m%d_%H%M%S_%f')}_{safe_name}.png"


class SnapshotRecorder:
    """Captures screenshots through a UI driver and saves them to disk."""

    def __init__(
        self,
        driver: UIDriver,
        directory: Path | None = None,
        enabled: bool = True,
    ) -> None:
        """Initialize the recorder.

        Args:
            driver: Driver used to take screenshots
            directory: Where to save PNG files; None keeps images in memory only
            enabled: When False, ``capture`` returns an empty snapshot
        """
        self.driver = driver
        self.enabled = enabled
        self._directory = Path(directory) if directory is not None else None
        if self._directory is not None:
            self._directory.mkdir(parents=True, exist_ok=True)
        self._last_snapshot: Snapshot | None = None

    @property
    def directory(self) -> Path | None:
        return self._directory

    async def capture(self, name: str) -> Snapshot:
        """Take a screenshot and save it with a descriptive name.

        Capture failures are logged and produce a snapshot without an image.

        Args:
            name: Descriptive name for this state

        Returns:
            Snapshot with image bytes and saved path when available
        """
        snapshot = Snapshot(name=name)
        if not self.enabled:
            return snapshot

        try:
            snapshot.image = await self.driver.screenshot()
        except Exception as e:
            logger.warning("snapshot_capture_failed", name=name, error=str(e))
            return snapshot

        if self._directory is not None:
            filepath = self._directory / snapshot_filename(name, snapshot.timestamp)
            try:
                filepath.write_bytes(snapshot.image)
                snapshot.path = filepath
            except OSError as e:
                logger.warning("snapshot_write_failed", filepath=str(filepath), error=str(e))

        self._last_snapshot = snapshot
        logger.info(
            "snapshot_captured",
            name=name,
            filepath=str(snapshot.path) if snapshot.path else None,
        )
        return snapshot

    @property
    def last_snapshot(self) -> Snapshot | None:
        """Get the last captured snapshot."""
        return self._last_snapshot
