"""
Loaders for the startup snapshots: who already knows whom, and the
user -> object relations (interests, places, organisations) that feed
static similarity.

Files are pipe-delimited with a header row; only the first two columns
are read, anything after them (classYear, workFrom, ...) is ignored.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple, Union

from src.friendrec.errors import ConfigError

LOGGER = logging.getLogger("friendrec.snapshots")

Relation = Dict[int, FrozenSet[int]]


@dataclass
class LoadResult:
    ok: bool
    payload: Any = None
    error: Optional[str] = None
    source: Optional[str] = None

    def unwrap(self):
        if not self.ok:
            raise ConfigError(f"{self.source}: {self.error}")
        return self.payload


def _read_pairs(path: Path) -> Iterable[Tuple[int, int]]:
    with open(path, "r", encoding="utf-8") as f:
        next(f, None)  # header
        for lineno, line in enumerate(f, start=2):
            line = line.strip()
            if not line:
                continue
            parts = line.split("|")
            if len(parts) < 2:
                raise ValueError(f"line {lineno}: expected at least 2 columns")
            yield int(parts[0]), int(parts[1])


def relation_from_pairs(pairs: Iterable[Tuple[int, int]]) -> Relation:
    sets: Dict[int, Set[int]] = {}
    for user_id, object_id in pairs:
        sets.setdefault(user_id, set()).add(object_id)
    return {u: frozenset(objs) for u, objs in sets.items()}


def load_relation_snapshot(path: Union[str, Path]) -> LoadResult:
    path = Path(path)
    try:
        relation = relation_from_pairs(_read_pairs(path))
    except (OSError, ValueError) as exc:
        return LoadResult(ok=False, error=str(exc), source=str(path))
    LOGGER.info("Loaded relation %s: %s users", path.name, len(relation))
    return LoadResult(ok=True, payload=relation, source=str(path))


def load_friend_sets(path: Union[str, Path], anchors: Sequence[int]) -> LoadResult:
    """
    knower|knowee rows; only rows whose knower is an anchor are kept.
    """
    path = Path(path)
    wanted = set(anchors)
    knows: Dict[int, List[int]] = {a: [] for a in anchors}
    try:
        for knower, knowee in _read_pairs(path):
            if knower in wanted:
                knows[knower].append(knowee)
    except (OSError, ValueError) as exc:
        return LoadResult(ok=False, error=str(exc), source=str(path))
    LOGGER.info("Loaded friendships for %s anchors from %s", len(anchors), path.name)
    return LoadResult(ok=True, payload=knows, source=str(path))


@dataclass
class StaticInputs:
    knows: Dict[int, List[int]]
    relations: Dict[str, Relation] = field(default_factory=dict)


def load_static_inputs(
    knows_path: Optional[Union[str, Path]],
    relation_paths: Sequence[Union[str, Path]],
    anchors: Sequence[int],
) -> StaticInputs:
    """
    Load every startup snapshot. Any failure is fatal and surfaces as ConfigError.
    """
    if knows_path is None:
        raise ConfigError("no friendship source configured")
    if not relation_paths:
        raise ConfigError("no relation snapshots configured")

    knows = load_friend_sets(knows_path, anchors).unwrap()
    # keyed by full path: snapshots from different directories may share a file name
    relations = {}
    for p in relation_paths:
        relations[str(Path(p))] = load_relation_snapshot(p).unwrap()
    return StaticInputs(knows=knows, relations=relations)
