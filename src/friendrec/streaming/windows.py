from __future__ import annotations
import logging
import threading
from typing import Dict, Generic, Hashable, List, Optional, TypeVar

from src.friendrec.data.schema import FiredWindow, WindowKey
from src.friendrec.errors import LateEvent
from src.friendrec.streaming.aggregates import Aggregator

LOGGER = logging.getLogger("friendrec.windows")

V = TypeVar("V")
A = TypeVar("A")


def window_starts(timestamp: int, length: int, slide: int) -> List[int]:
    """
    Starts of every window [start, start + length) holding timestamp, where
    start is a multiple of slide. Ascending; ceil(length / slide) entries at most.
    """
    last = timestamp - (timestamp % slide)
    starts = []
    start = last
    while start > timestamp - length:
        starts.append(start)
        start -= slide
    starts.reverse()
    return starts


class WindowManager(Generic[V, A]):
    """
    Event-time sliding windows with lazy instances and watermark-driven firing.

    - assign() merges a value into every open instance covering its timestamp
    - advance_watermark() moves the watermark to max(observed) - out_of_order
    - fire() emits each instance whose end <= watermark exactly once, then drops it

    An instance that has fired is never recreated: events that only map to
    closed windows, or that trail the watermark by more than the out-of-order
    bound, raise LateEvent.
    """

    def __init__(
        self,
        length_ms: int,
        slide_ms: int,
        aggregator: Aggregator[V, A],
        out_of_order_ms: int = 0,
        name: str = "windows",
    ):
        if length_ms <= 0 or slide_ms <= 0:
            raise ValueError("length and slide must be positive")
        self.length = int(length_ms)
        self.slide = int(slide_ms)
        self.out_of_order = int(out_of_order_ms)
        self.aggregator = aggregator
        self.name = name

        self._instances: Dict[WindowKey, A] = {}
        self._watermark: Optional[int] = None
        self._lock = threading.Lock()

    @property
    def watermark(self) -> Optional[int]:
        return self._watermark

    @property
    def open_windows(self) -> int:
        return len(self._instances)

    def _is_open(self, end: int) -> bool:
        return self._watermark is None or end > self._watermark

    def assign(self, key: Optional[Hashable], timestamp: int, value: V) -> List[WindowKey]:
        with self._lock:
            wm = self._watermark
            if wm is not None and timestamp < wm - self.out_of_order:
                raise LateEvent(timestamp, wm, key)

            targets = [
                WindowKey(key, s, s + self.length)
                for s in window_starts(timestamp, self.length, self.slide)
                if self._is_open(s + self.length)
            ]
            if not targets:
                raise LateEvent(timestamp, wm, key)

            for wk in targets:
                acc = self._instances.get(wk)
                if acc is None:
                    acc = self.aggregator.create()
                self._instances[wk] = self.aggregator.add(acc, value)
            return targets

    def combine_into(self, window: WindowKey, partial: A) -> None:
        """
        Fold an already reduced partial aggregate into one instance.
        """
        if window.end - window.start != self.length or window.start % self.slide:
            raise ValueError(f"{window} is not a window of this manager")
        with self._lock:
            if not self._is_open(window.end):
                raise LateEvent(window.start, self._watermark, window.key)
            acc = self._instances.get(window)
            if acc is None:
                acc = self.aggregator.create()
            # combine returns a fresh accumulator; the caller keeps ownership of partial
            self._instances[window] = self.aggregator.combine(acc, partial)

    def advance_watermark(self, observed: int) -> int:
        with self._lock:
            candidate = int(observed) - self.out_of_order
            if self._watermark is None or candidate > self._watermark:
                self._watermark = candidate
            return self._watermark

    def fire(self) -> List[FiredWindow[A]]:
        with self._lock:
            if self._watermark is None:
                return []
            ready = [wk for wk in self._instances if wk.end <= self._watermark]
            ready.sort(key=lambda wk: (wk.end, wk.start, str(wk.key)))
            fired = [FiredWindow(wk.key, wk.start, wk.end, self._instances.pop(wk)) for wk in ready]
        if fired:
            LOGGER.debug("%s: fired %s windows at watermark %s", self.name, len(fired), self._watermark)
        return fired

    def discard(self) -> int:
        """
        Drop every unfired instance. Returns how many were dropped.
        """
        with self._lock:
            n = len(self._instances)
            self._instances.clear()
        return n
