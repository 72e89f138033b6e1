from __future__ import annotations
import logging
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping

from src.friendrec.data.schema import Anchors, SimilarityMatrix, StaticSimilarityMatrix

LOGGER = logging.getLogger("friendrec.static")


def add_relation_similarity(
    similarities: SimilarityMatrix,
    relation: Mapping[int, FrozenSet[int]],
    anchors: Anchors,
) -> SimilarityMatrix:
    """
    Add |objects(u) & objects(anchor)| for every user u of one relation snapshot.
    Zero overlaps are left out so rows stay sparse.
    """
    for i, anchor in enumerate(anchors.user_ids):
        eigen_set = relation.get(anchor)
        if not eigen_set:
            continue
        row = similarities[i]
        for user_id, objects in relation.items():
            if anchors.excluded(i, user_id):
                continue
            overlap = len(objects & eigen_set)
            if overlap:
                row[user_id] = row.get(user_id, 0) + overlap
    return similarities


def freeze(similarities: SimilarityMatrix) -> StaticSimilarityMatrix:
    return tuple(MappingProxyType(dict(row)) for row in similarities)


def compute_static_similarity(
    relations: Iterable[Mapping[int, FrozenSet[int]]],
    anchors: Anchors,
) -> StaticSimilarityMatrix:
    """
    Profile-attribute similarity summed over all relation snapshots.
    Computed once before streaming; the result is read-only.
    """
    similarities: SimilarityMatrix = [{} for _ in range(len(anchors))]
    n = 0
    for relation in relations:
        add_relation_similarity(similarities, relation, anchors)
        n += 1
    sizes: Dict[int, int] = {a: len(row) for a, row in zip(anchors.user_ids, similarities)}
    LOGGER.info("Static similarity from %s snapshots, candidates per anchor: %s", n, sizes)
    return freeze(similarities)
