"""
Same-day retry holding area, ordered by the wall-clock time a line becomes ready.
"""

import heapq
import itertools
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple
from uuid import UUID

from .models import QueueItem


class DelayQueue:
    """
    Min-heap of delayed queue items keyed by ready-at time.

    Each line id appears at most once; rescheduling a line replaces its entry.
    Superseded heap entries are skipped lazily when they surface.
    """

    def __init__(self) -> None:
        self._heap: List[Tuple[datetime, int, UUID]] = []
        self._entries: Dict[UUID, Tuple[datetime, int, QueueItem]] = {}
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, line_id: object) -> bool:
        return line_id in self._entries

    def __iter__(self) -> Iterator[QueueItem]:
        for _, _, item in sorted(self._entries.values(), key=lambda e: e[:2]):
            yield item

    def schedule(self, item: QueueItem, ready_at: datetime) -> None:
        """Add ``item`` or move its existing entry to ``ready_at``."""
        seq = next(self._counter)
        self._entries[item.line_id] = (ready_at, seq, item)
        heapq.heappush(self._heap, (ready_at, seq, item.line_id))

    def ready_at(self, line_id: UUID) -> Optional[datetime]:
        entry = self._entries.get(line_id)
        return entry[0] if entry else None

    def discard(self, line_id: UUID) -> bool:
        """Remove a line's entry; returns False if it was not delayed."""
        return self._entries.pop(line_id, None) is not None

    def _prune(self) -> None:
        while self._heap:
            ready_at, seq, line_id = self._heap[0]
            entry = self._entries.get(line_id)
            if entry is not None and entry[1] == seq:
                return
            heapq.heappop(self._heap)

    def peek(self) -> Optional[Tuple[datetime, QueueItem]]:
        """Return the soonest entry without removing it."""
        self._prune()
        if not self._heap:
            return None
        line_id = self._heap[0][2]
        ready_at, _, item = self._entries[line_id]
        return ready_at, item

    def pop_soonest(self) -> Optional[QueueItem]:
        """Remove and return the soonest entry, ready or not."""
        self._prune()
        if not self._heap:
            return None
        _, _, line_id = heapq.heappop(self._heap)
        _, _, item = self._entries.pop(line_id)
        return item

    def pop_ready(self, now: datetime) -> Optional[QueueItem]:
        """Remove and return the earliest entry whose ready-at has passed."""
        head = self.peek()
        if head is None or head[0] > now:
            return None
        return self.pop_soonest()
