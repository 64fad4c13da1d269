import threading
from collections import deque
from typing import Deque, Iterator, Optional, Union
from vto.domain.models import ProgressSnapshot, TerminalResult

StreamItem = Union[ProgressSnapshot, TerminalResult]

class EventStream:
    """Finite, ordered stream of progress snapshots ending with one TerminalResult.

    The producer (the job's serialized update path) pushes; one consumer
    iterates. With ``coalesce`` set, a snapshot that has not been consumed yet
    is replaced by the next one, so slow consumers only see the latest. The
    terminal result is never dropped and always comes last.
    """

    def __init__(self, job_id: str, coalesce: bool = False):
        self.job_id = job_id
        self.coalesce = coalesce
        self._items: Deque[StreamItem] = deque()
        self._cond = threading.Condition()
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def push(self, item: StreamItem) -> bool:
        """Queues an item; returns False once the stream has been closed."""
        with self._cond:
            if self._closed:
                return False
            if isinstance(item, TerminalResult):
                self._closed = True
            elif self.coalesce and self._items and isinstance(self._items[-1], ProgressSnapshot):
                self._items.pop()
            self._items.append(item)
            self._cond.notify_all()
            return True

    def get(self, timeout: Optional[float] = None) -> Optional[StreamItem]:
        """Next item, or None on timeout or after the terminal result was consumed."""
        with self._cond:
            if not self._cond.wait_for(lambda: self._items or self._finished, timeout=timeout):
                return None
            if not self._items:
                return None
            item = self._items.popleft()
            if isinstance(item, TerminalResult):
                self._finished = True
            return item

    def __iter__(self) -> Iterator[StreamItem]:
        while True:
            item = self.get()
            if item is None:
                return
            yield item
            if isinstance(item, TerminalResult):
                return
