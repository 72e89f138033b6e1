"""
Threaded stages wiring the windowed recommender together.

    source --(item_id % workers)--> item workers --> coarse stage --> sink

Every channel is a FIFO queue. An item worker always forwards its fired
results before the watermark that fired them, so the coarse stage, whose
watermark is the minimum over all workers, never closes a period that
could still receive an item result.
"""
from __future__ import annotations
import logging
import queue
import threading
from dataclasses import dataclass, field, fields
from typing import Callable, Iterable, List, Optional

from src.friendrec.config import RecommenderConfig
from src.friendrec.data.parsing import format_timestamp
from src.friendrec.data.schema import (
    ActivityEvent,
    Anchors,
    CountAggregate,
    ItemSimilarity,
    RecommendationBatch,
    SimilarityMatrix,
    StaticSimilarityMatrix,
)
from src.friendrec.errors import LateEvent, ParseError
from src.friendrec.ranking.ranker import Ranker
from src.friendrec.similarity.dynamic import extract_item_similarity
from src.friendrec.streaming.aggregates import CountAggregator, SimilarityAggregator
from src.friendrec.streaming.windows import WindowManager

LOGGER = logging.getLogger("friendrec.pipeline")

# observed timestamp that closes every window at end of input
END_OF_STREAM = 2 ** 62

Sink = Callable[[RecommendationBatch], None]


@dataclass
class PipelineStats:
    events_seen: int = 0
    late_events: int = 0
    parse_errors: int = 0
    item_windows_fired: int = 0
    item_results_forwarded: int = 0
    coarse_windows_fired: int = 0
    windows_discarded: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def incr(self, name: str, n: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + n)

    def on_parse_error(self, exc: ParseError) -> None:
        # on_error hook for iter_activities / iter_tuples
        self.incr("parse_errors")

    def as_dict(self) -> dict:
        with self._lock:
            return {f.name: getattr(self, f.name) for f in fields(self) if not f.name.startswith("_")}


class ItemStage:
    """
    Sliding windows keyed by item; turns fired activity counts into
    per-item similarity contributions.
    """

    def __init__(self, config: RecommenderConfig, anchors: Anchors, stats: PipelineStats, name: str = "item"):
        spec = config.item_window
        self.anchors = anchors
        self.stats = stats
        self.windows: WindowManager[ActivityEvent, CountAggregate] = WindowManager(
            spec.length_ms, spec.slide_ms, CountAggregator(), out_of_order_ms=spec.out_of_order_ms, name=name,
        )

    def on_event(self, event: ActivityEvent) -> None:
        try:
            self.windows.assign(event.item_id, event.event_time, event)
        except LateEvent as exc:
            self.stats.incr("late_events")
            LOGGER.debug("Dropped %s", exc)

    def on_watermark(self, observed: int) -> List[ItemSimilarity]:
        self.windows.advance_watermark(observed)
        fired = self.windows.fire()
        self.stats.incr("item_windows_fired", len(fired))
        out = []
        for w in fired:
            sim = extract_item_similarity(w, self.anchors)
            if sim is not None:
                out.append(sim)
        self.stats.incr("item_results_forwarded", len(out))
        return out

    @property
    def watermark(self) -> Optional[int]:
        return self.windows.watermark


class CoarseStage:
    """
    Single global window that sums item contributions per period and ranks.
    """

    def __init__(
        self,
        config: RecommenderConfig,
        anchors: Anchors,
        ranker: Ranker,
        stats: PipelineStats,
    ):
        spec = config.coarse_window
        self.anchors = anchors
        self.ranker = ranker
        self.stats = stats
        self.windows: WindowManager[SimilarityMatrix, SimilarityMatrix] = WindowManager(
            spec.length_ms, spec.slide_ms, SimilarityAggregator(len(anchors)), out_of_order_ms=0, name="coarse",
        )

    def on_item_similarity(self, sim: ItemSimilarity) -> None:
        try:
            self.windows.assign(None, sim.window_end, sim.similarities)
        except LateEvent as exc:
            # unreachable while upstream watermarks stay ordered; counted all the same
            self.stats.incr("late_events")
            LOGGER.warning("Coarse stage dropped item %s result: %s", sim.item_id, exc)

    def on_watermark(self, watermark: int) -> List[RecommendationBatch]:
        self.windows.advance_watermark(watermark)
        batches = []
        for w in self.windows.fire():
            recs = self.ranker.rank(w.aggregate)
            batch = RecommendationBatch(w.start, w.end, self.anchors.user_ids, recs)
            LOGGER.info(
                "Window [%s, %s): %s",
                format_timestamp(w.start), format_timestamp(w.end), batch.as_dict()["recommendations"],
            )
            batches.append(batch)
        self.stats.incr("coarse_windows_fired", len(batches))
        return batches


_STOP = ("stop", None)


class StreamingPipeline:
    """
    Runs one source loop (caller thread), `workers` item threads and one
    coarse thread. Output batches go to `sink` from the coarse thread.
    """

    def __init__(
        self,
        config: RecommenderConfig,
        anchors: Anchors,
        static: StaticSimilarityMatrix,
        sink: Sink,
        stats: Optional[PipelineStats] = None,
    ):
        if len(static) != len(anchors):
            raise ValueError("static similarity rows must match the anchors")
        self.config = config
        self.anchors = anchors
        self.sink = sink
        self.stats = stats if stats is not None else PipelineStats()
        self.n_workers = config.pipeline.workers

        ranker = Ranker(
            static,
            static_weight=config.ranking.static_weight,
            k=config.ranking.top_k,
            anchor_ids=anchors.user_ids,
        )
        self.item_stages = [
            ItemStage(config, anchors, self.stats, name=f"item-{i}") for i in range(self.n_workers)
        ]
        self.coarse_stage = CoarseStage(config, anchors, ranker, self.stats)

        self._item_queues: List[queue.Queue] = [queue.Queue() for _ in range(self.n_workers)]
        self._coarse_queue: queue.Queue = queue.Queue()
        self._cancelled = threading.Event()
        self._errors: List[BaseException] = []
        self._threads: List[threading.Thread] = []

    # ---- stage loops ----
    def _item_loop(self, idx: int) -> None:
        stage = self.item_stages[idx]
        inbox = self._item_queues[idx]
        try:
            while True:
                kind, payload = inbox.get()
                if kind == "stop" or self._cancelled.is_set():
                    break
                if kind == "event":
                    stage.on_event(payload)
                elif kind == "watermark":
                    for sim in stage.on_watermark(payload):
                        self._coarse_queue.put(("result", idx, sim))
                    self._coarse_queue.put(("watermark", idx, stage.watermark))
        except Exception as exc:
            LOGGER.exception("Item worker %s failed: %s", idx, exc)
            self._errors.append(exc)
            self._cancelled.set()
        finally:
            if self._cancelled.is_set():
                self.stats.incr("windows_discarded", stage.windows.discard())
            self._coarse_queue.put(("stop", idx, None))

    def _coarse_loop(self) -> None:
        stage = self.coarse_stage
        watermarks: List[Optional[int]] = [None] * self.n_workers
        running = self.n_workers
        try:
            while running:
                kind, idx, payload = self._coarse_queue.get()
                if kind == "stop":
                    running -= 1
                    continue
                if self._cancelled.is_set():
                    continue
                if kind == "result":
                    stage.on_item_similarity(payload)
                elif kind == "watermark":
                    watermarks[idx] = payload
                    if all(w is not None for w in watermarks):
                        for batch in stage.on_watermark(min(watermarks)):
                            self.sink(batch)
        except Exception as exc:
            LOGGER.exception("Coarse stage failed: %s", exc)
            self._errors.append(exc)
            self._cancelled.set()
            # keep draining so item workers are never left writing to nobody
            while running:
                kind, _, _ = self._coarse_queue.get()
                if kind == "stop":
                    running -= 1
        finally:
            if self._cancelled.is_set():
                self.stats.incr("windows_discarded", stage.windows.discard())

    # ---- control ----
    def start(self) -> None:
        if self._threads:
            return
        for i in range(self.n_workers):
            t = threading.Thread(target=self._item_loop, args=(i,), name=f"friendrec-item-{i}", daemon=True)
            self._threads.append(t)
        self._threads.append(threading.Thread(target=self._coarse_loop, name="friendrec-coarse", daemon=True))
        for t in self._threads:
            t.start()

    def cancel(self) -> None:
        """
        Stop accepting input. Unfired windows are discarded, nothing is flushed.
        """
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _route(self, event: ActivityEvent) -> int:
        return hash(event.item_id) % self.n_workers

    def _broadcast(self, msg) -> None:
        for q in self._item_queues:
            q.put(msg)

    def run(self, events: Iterable[ActivityEvent]) -> PipelineStats:
        """
        Consume events until exhausted or cancelled, then shut the stages down.
        With flush_on_close every open window fires at end of input.
        """
        self.start()
        max_seen: Optional[int] = None
        try:
            for event in events:
                if self._cancelled.is_set():
                    break
                self.stats.incr("events_seen")
                self._item_queues[self._route(event)].put(("event", event))
                if max_seen is None or event.event_time > max_seen:
                    max_seen = event.event_time
                    self._broadcast(("watermark", max_seen))
            if self.config.pipeline.flush_on_close and not self._cancelled.is_set():
                self._broadcast(("watermark", END_OF_STREAM))
        except BaseException:
            self.cancel()
            raise
        finally:
            self._broadcast(_STOP)
            for t in self._threads:
                t.join()
            self._threads = []

        if self._errors:
            raise self._errors[0]
        LOGGER.info("Pipeline finished: %s", self.stats.as_dict())
        return self.stats


def run_pipeline(
    config: RecommenderConfig,
    anchors: Anchors,
    static: StaticSimilarityMatrix,
    events: Iterable[ActivityEvent],
    sink: Optional[Sink] = None,
    stats_out: Optional[dict] = None,
    stats: Optional[PipelineStats] = None,
) -> List[RecommendationBatch]:
    """
    Convenience wrapper: run to completion and also return every batch.

    Pass `stats` when the event source reports skipped records through
    `stats.on_parse_error`, so parse_errors lands in the same counters.
    """
    batches: List[RecommendationBatch] = []

    def _collect(batch: RecommendationBatch) -> None:
        batches.append(batch)
        if sink is not None:
            sink(batch)

    stats = StreamingPipeline(config, anchors, static, _collect, stats=stats).run(events)
    if stats_out is not None:
        stats_out.update(stats.as_dict())
    return batches
