from __future__ import annotations
import logging
from typing import Optional

from src.friendrec.data.schema import Anchors, CountAggregate, FiredWindow, ItemSimilarity, SimilarityMatrix

LOGGER = logging.getLogger("friendrec.dynamic")


def dynamic_similarity(counts: CountAggregate, anchors: Anchors) -> SimilarityMatrix:
    """
    Co-engagement score of every active user against each active anchor:

        sim[a][u] = count[a] * count[u]

    for u != a and u not already a friend of a. Anchors without activity in
    the window get an empty row.
    """
    rows: SimilarityMatrix = [{} for _ in range(len(anchors))]
    for i, anchor in enumerate(anchors.user_ids):
        eigen_count = counts.get(anchor, 0)
        if eigen_count <= 0:
            continue
        row = rows[i]
        for user_id, c in counts.items():
            if anchors.excluded(i, user_id):
                continue
            row[user_id] = eigen_count * c
    return rows


def extract_item_similarity(window: FiredWindow[CountAggregate], anchors: Anchors) -> Optional[ItemSimilarity]:
    """
    Turn one fired item window into its similarity contribution, or None when
    no anchor produced a non-empty row.
    """
    rows = dynamic_similarity(window.aggregate, anchors)
    if not any(rows):
        return None
    LOGGER.debug(
        "item=%s window=[%s, %s) similarities=%s",
        window.key, window.start, window.end, rows,
    )
    return ItemSimilarity(item_id=window.key, window_end=window.end, similarities=rows)
