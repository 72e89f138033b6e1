from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence
import numpy as np
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt

from src.friendrec.data.schema import RecommendationBatch, SimData


@dataclass
class DiagnosticsSummary:
    n_events: int
    n_batches: int
    late_events: int
    late_rate: float
    mean_recs_per_anchor: float
    empty_list_rate: float
    distinct_recommended: int
    item_windows_fired: int
    item_results_forwarded: int


def list_lengths(batches: Sequence[RecommendationBatch]) -> np.ndarray:
    """
    Length of every per-anchor recommendation list, over all batches.
    """
    return np.array([len(recs) for b in batches for recs in b.recommendations], dtype=np.int32)


def events_per_hour(data: SimData) -> np.ndarray:
    if not data.events:
        return np.zeros(0, dtype=np.int32)
    ts = np.array([e.event_time for e in data.events], dtype=np.int64)
    hours = (ts - ts.min()) // (60 * 60 * 1000)
    return np.bincount(hours)


def plot_events_per_hour(counts: np.ndarray, outpath: Path, title: str = "Activity events per hour") -> None:
    outpath.parent.mkdir(parents=True, exist_ok=True)

    plt.figure()
    plt.bar(np.arange(counts.size), counts)
    plt.xlabel("hour since stream start")
    plt.ylabel("events")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(outpath, dpi=160)
    plt.close()


def plot_list_lengths(lengths: np.ndarray, top_k: int, outpath: Path, title: str = "Recommendation list length") -> None:
    outpath.parent.mkdir(parents=True, exist_ok=True)

    plt.figure()
    plt.hist(lengths, bins=np.arange(top_k + 2) - 0.5)
    plt.xlabel("candidates per anchor per window")
    plt.ylabel("number of lists")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(outpath, dpi=160)
    plt.close()


def plot_stage_counters(stats: Dict[str, int], outpath: Path, title: str = "Pipeline counters") -> None:
    outpath.parent.mkdir(parents=True, exist_ok=True)

    names = list(stats.keys())
    plt.figure(figsize=(8, 4))
    plt.barh(names, [stats[n] for n in names])
    plt.xlabel("count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(outpath, dpi=160)
    plt.close()


def run_diagnostics(
    data: SimData,
    batches: List[RecommendationBatch],
    stats: Dict[str, int],
    figs_dir: Path,
    top_k: int = 5,
) -> DiagnosticsSummary:
    """
    Produces 3 diagnostic figures + returns summary stats.
    """
    lengths = list_lengths(batches)
    n_events = int(stats.get("events_seen", len(data.events)))
    late = int(stats.get("late_events", 0))
    distinct = {u for b in batches for recs in b.recommendations for u in recs}

    plot_events_per_hour(events_per_hour(data), figs_dir / "events_per_hour.png")
    plot_list_lengths(lengths, top_k, figs_dir / "list_lengths.png")
    plot_stage_counters(stats, figs_dir / "pipeline_counters.png")

    return DiagnosticsSummary(
        n_events=n_events,
        n_batches=len(batches),
        late_events=late,
        late_rate=late / n_events if n_events else 0.0,
        mean_recs_per_anchor=float(np.mean(lengths)) if lengths.size else 0.0,
        empty_list_rate=float(np.mean(lengths == 0)) if lengths.size else 0.0,
        distinct_recommended=len(distinct),
        item_windows_fired=int(stats.get("item_windows_fired", 0)),
        item_results_forwarded=int(stats.get("item_results_forwarded", 0)),
    )
