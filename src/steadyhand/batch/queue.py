"""Work queue shared by the workers of one chunk."""

import asyncio
from typing import Iterable

from steadyhand.core.types import WorkItem


class WorkQueue:
    """FIFO of work items with a single atomic ``pop``.

    Workers never index into the queue; ``pop`` hands each item to exactly
    one caller.
    """

    def __init__(self, items: Iterable[WorkItem]) -> None:
        self._queue: asyncio.Queue[WorkItem] = asyncio.Queue()
        for item in items:
            self._queue.put_nowait(item)

    def pop(self) -> WorkItem | None:
        """Claim the next item, or None when the queue is drained."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def drain(self) -> list[WorkItem]:
        """Claim every remaining item at once."""
        remaining = []
        while (item := self.pop()) is not None:
            remaining.append(item)
        return remaining

    def __len__(self) -> int:
        return self._queue.qsize()
