from __future__ import annotations
import logging
from typing import Dict, List, Mapping, Sequence, Tuple
import numpy as np

from src.friendrec.data.schema import RecommendationList, SimilarityMatrix, StaticSimilarityMatrix

LOGGER = logging.getLogger("friendrec.ranker")


def row_arrays(row: Mapping[int, int]) -> Tuple[np.ndarray, np.ndarray]:
    ids = np.fromiter(row.keys(), dtype=np.int64, count=len(row))
    vals = np.fromiter(row.values(), dtype=np.float64, count=len(row))
    return ids, vals


def normalize_values(vals: np.ndarray) -> np.ndarray:
    """
    Min-max scale into [0, 1]. Without spread (one distinct value) every
    entry is maximally similar, i.e. 1.0.
    """
    if vals.size == 0:
        return vals
    lo, hi = float(vals.min()), float(vals.max())
    if hi > lo:
        return (vals - lo) / (hi - lo)
    return np.ones_like(vals)


def normalize_row(row: Mapping[int, int]) -> Dict[int, float]:
    ids, vals = row_arrays(row)
    return dict(zip(ids.tolist(), normalize_values(vals).tolist()))


def blend_row(
    static_row: Mapping[int, int],
    dynamic_row: Mapping[int, int],
    static_weight: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Candidates (ascending id) and their blended scores

        w * static_norm + (1 - w) * dynamic_norm

    where a side the candidate is missing from contributes 0.
    """
    s_norm = normalize_row(static_row)
    d_norm = normalize_row(dynamic_row)
    candidates = np.array(sorted(s_norm.keys() | d_norm.keys()), dtype=np.int64)
    if candidates.size == 0:
        return candidates, np.zeros(0, dtype=np.float64)

    s = np.array([s_norm.get(int(c), 0.0) for c in candidates], dtype=np.float64)
    d = np.array([d_norm.get(int(c), 0.0) for c in candidates], dtype=np.float64)
    scores = static_weight * s + (1.0 - static_weight) * d
    return candidates, scores


def top_k(candidates: np.ndarray, scores: np.ndarray, k: int) -> List[int]:
    # score descending, ties broken by ascending user id
    order = np.lexsort((candidates, -scores))[:k]
    return [int(candidates[i]) for i in order]


class Ranker:
    """
    Blends a coarse-window dynamic matrix with the constant static matrix and
    keeps the best k candidates per anchor.
    """

    def __init__(
        self,
        static: StaticSimilarityMatrix,
        static_weight: float = 0.3,
        k: int = 5,
        anchor_ids: Sequence[int] = (),
    ):
        if not 0.0 <= static_weight <= 1.0:
            raise ValueError(f"static_weight must be in [0, 1], got {static_weight}")
        self.static = static
        self.static_weight = float(static_weight)
        self.k = int(k)
        self.anchor_ids = tuple(anchor_ids)

    def rank(self, dynamic: SimilarityMatrix) -> RecommendationList:
        if len(dynamic) != len(self.static):
            raise ValueError(
                f"dynamic matrix has {len(dynamic)} rows, static has {len(self.static)}"
            )
        out: RecommendationList = []
        for i, (static_row, dynamic_row) in enumerate(zip(self.static, dynamic)):
            candidates, scores = blend_row(static_row, dynamic_row, self.static_weight)
            picked = top_k(candidates, scores, self.k)
            if LOGGER.isEnabledFor(logging.DEBUG):
                anchor = self.anchor_ids[i] if i < len(self.anchor_ids) else i
                by_id = dict(zip(candidates.tolist(), scores.tolist()))
                LOGGER.debug("recommend for %s: %s", anchor, [(u, round(by_id[u], 4)) for u in picked])
            out.append(picked)
        return out
