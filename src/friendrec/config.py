from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import yaml

from src.friendrec.errors import ConfigError

MS_PER_MINUTE = 60 * 1000


@dataclass(frozen=True)
class WindowSpec:
    length_ms: int
    slide_ms: int
    out_of_order_ms: int = 0

    def __post_init__(self):
        if self.length_ms <= 0 or self.slide_ms <= 0:
            raise ConfigError("window length and slide must be positive")
        if self.slide_ms > self.length_ms:
            raise ConfigError("window slide must not exceed its length")
        if self.out_of_order_ms < 0:
            raise ConfigError("out-of-order bound must be non-negative")


@dataclass(frozen=True)
class RankingSpec:
    static_weight: float = 0.3
    top_k: int = 5

    def __post_init__(self):
        if not 0.0 <= self.static_weight <= 1.0:
            raise ConfigError(f"static_weight must be in [0, 1], got {self.static_weight}")
        if self.top_k <= 0:
            raise ConfigError("top_k must be positive")


@dataclass(frozen=True)
class PipelineSpec:
    workers: int = 2
    flush_on_close: bool = True

    def __post_init__(self):
        if self.workers <= 0:
            raise ConfigError("pipeline needs at least one item worker")


@dataclass(frozen=True)
class PathsSpec:
    knows: Optional[Path] = None
    relations: Tuple[Path, ...] = ()
    activities: Optional[Path] = None
    out_dir: Path = Path("outputs")


@dataclass(frozen=True)
class RecommenderConfig:
    """
    Everything the recommender needs, built once and handed to each component.
    """
    anchors: Tuple[int, ...]
    item_window: WindowSpec = field(default_factory=lambda: WindowSpec(240 * MS_PER_MINUTE, 60 * MS_PER_MINUTE, 5 * MS_PER_MINUTE))
    coarse_window: WindowSpec = field(default_factory=lambda: WindowSpec(60 * MS_PER_MINUTE, 60 * MS_PER_MINUTE))
    ranking: RankingSpec = field(default_factory=RankingSpec)
    pipeline: PipelineSpec = field(default_factory=PipelineSpec)
    paths: PathsSpec = field(default_factory=PathsSpec)
    seed: int = 42
    sim: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.anchors:
            raise ConfigError("at least one anchor user is required")


def _minutes(section: Dict[str, Any], key: str, default: float) -> int:
    try:
        return int(float(section.get(key, default)) * MS_PER_MINUTE)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number of minutes") from exc


def config_from_dict(raw: Dict[str, Any]) -> RecommenderConfig:
    if not isinstance(raw, dict):
        raise ConfigError("config root must be a mapping")
    try:
        anchors = tuple(int(a) for a in raw.get("anchors") or ())
    except (TypeError, ValueError) as exc:
        raise ConfigError("anchors must be integer user ids") from exc

    wcfg = raw.get("windows") or {}
    icfg = wcfg.get("item") or {}
    ccfg = wcfg.get("coarse") or {}
    item_window = WindowSpec(
        length_ms=_minutes(icfg, "length_minutes", 240),
        slide_ms=_minutes(icfg, "slide_minutes", 60),
        out_of_order_ms=_minutes(icfg, "out_of_order_minutes", 5),
    )
    coarse_len = _minutes(ccfg, "length_minutes", 60)
    coarse_window = WindowSpec(
        length_ms=coarse_len,
        slide_ms=_minutes(ccfg, "slide_minutes", coarse_len / MS_PER_MINUTE),
    )

    rcfg = raw.get("ranking") or {}
    pcfg = raw.get("pipeline") or {}
    paths = raw.get("paths") or {}
    try:
        ranking = RankingSpec(
            static_weight=float(rcfg.get("static_weight", 0.3)),
            top_k=int(rcfg.get("top_k", 5)),
        )
        pipeline = PipelineSpec(
            workers=int(pcfg.get("workers", 2)),
            flush_on_close=bool(pcfg.get("flush_on_close", True)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid ranking/pipeline settings: {exc}") from exc

    return RecommenderConfig(
        anchors=anchors,
        item_window=item_window,
        coarse_window=coarse_window,
        ranking=ranking,
        pipeline=pipeline,
        paths=PathsSpec(
            knows=Path(paths["knows"]) if paths.get("knows") else None,
            relations=tuple(Path(p) for p in paths.get("relations") or ()),
            activities=Path(paths["activities"]) if paths.get("activities") else None,
            out_dir=Path(paths.get("out_dir", "outputs")),
        ),
        seed=int(raw.get("seed", 42)),
        sim=dict(raw.get("sim") or {}),
    )


def load_config(path: str | Path) -> RecommenderConfig:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"cannot read config {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"config {path} is not valid YAML: {exc}") from exc
    return config_from_dict(data)
