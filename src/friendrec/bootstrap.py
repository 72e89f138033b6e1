from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from src.friendrec.config import RecommenderConfig
from src.friendrec.data.schema import Anchors, SimData, StaticSimilarityMatrix
from src.friendrec.data.snapshots import StaticInputs, load_static_inputs
from src.friendrec.similarity.static import compute_static_similarity

LOGGER = logging.getLogger("friendrec.bootstrap")


@dataclass
class BootstrapContext:
    config: RecommenderConfig
    anchors: Anchors
    static: StaticSimilarityMatrix


def bootstrap(config: RecommenderConfig, sim: Optional[SimData] = None) -> BootstrapContext:
    """
    Load friendships and relation snapshots (from the configured files, or from
    a simulated dataset) and precompute static similarity.

    Raises ConfigError when a configured source is missing or unreadable.
    """
    if sim is None:
        inputs = load_static_inputs(config.paths.knows, config.paths.relations, config.anchors)
    else:
        inputs = StaticInputs(knows=sim.knows, relations=sim.relations)

    anchors = Anchors.build(config.anchors, inputs.knows)
    static = compute_static_similarity(inputs.relations.values(), anchors)
    LOGGER.info(
        "Bootstrapped %s anchors, %s relation snapshots", len(anchors), len(inputs.relations),
    )
    return BootstrapContext(config=config, anchors=anchors, static=static)
