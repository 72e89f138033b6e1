from __future__ import annotations
from typing import Dict, Iterable, Protocol, TypeVar

from src.friendrec.data.schema import ActivityEvent, CountAggregate, SimilarityMatrix

V = TypeVar("V", contravariant=True)
A = TypeVar("A")


class Aggregator(Protocol[V, A]):
    """
    Incremental aggregation attached to a WindowManager.

    combine must be associative and commutative: window instances receive
    partial results in arbitrary order.
    """

    def create(self) -> A: ...

    def add(self, acc: A, value: V) -> A: ...

    def combine(self, a: A, b: A) -> A: ...


class CountAggregator:
    """
    Activity count per user inside one item window. Raw events are not kept.
    """

    def create(self) -> CountAggregate:
        return {}

    def add(self, acc: CountAggregate, event: ActivityEvent) -> CountAggregate:
        acc[event.user_id] = acc.get(event.user_id, 0) + 1
        return acc

    def combine(self, a: CountAggregate, b: CountAggregate) -> CountAggregate:
        out = dict(a)
        for user_id, c in b.items():
            out[user_id] = out.get(user_id, 0) + c
        return out


def merge_rows(a: Dict[int, int], b: Dict[int, int]) -> Dict[int, int]:
    # union of keys, sum where both sides have a value
    out = dict(a)
    for k, v in b.items():
        out[k] = out.get(k, 0) + v
    return out


def merge_matrices(a: SimilarityMatrix, b: SimilarityMatrix) -> SimilarityMatrix:
    if len(a) != len(b):
        raise ValueError(f"similarity matrices disagree on anchor count: {len(a)} vs {len(b)}")
    return [merge_rows(ra, rb) for ra, rb in zip(a, b)]


class SimilarityAggregator:
    """
    Sums per-item similarity matrices into one matrix per coarse window.
    """

    def __init__(self, n_anchors: int):
        self.n_anchors = n_anchors

    def create(self) -> SimilarityMatrix:
        return [{} for _ in range(self.n_anchors)]

    def add(self, acc: SimilarityMatrix, value: SimilarityMatrix) -> SimilarityMatrix:
        if len(value) != len(acc):
            raise ValueError(f"expected {len(acc)} anchor rows, got {len(value)}")
        for row, contrib in zip(acc, value):
            for k, v in contrib.items():
                row[k] = row.get(k, 0) + v
        return acc

    def combine(self, a: SimilarityMatrix, b: SimilarityMatrix) -> SimilarityMatrix:
        return merge_matrices(a, b)


def sum_matrices(matrices: Iterable[SimilarityMatrix], n_anchors: int) -> SimilarityMatrix:
    agg = SimilarityAggregator(n_anchors)
    acc = agg.create()
    for m in matrices:
        acc = agg.add(acc, m)
    return acc
