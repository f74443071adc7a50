"""Snapshots module - Failure screenshots."""

from .snapshots import Snapshot, SnapshotRecorder, snapshot_filename

__all__ = ["Snapshot", "SnapshotRecorder", "snapshot_filename"]
