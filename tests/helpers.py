from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from src.friendrec.config import RecommenderConfig, config_from_dict
from src.friendrec.data.schema import ActivityEvent, ActivityKind

ROOT = Path(__file__).resolve().parents[1]
SAMPLE_DIR = ROOT / "data" / "sample"

MINUTE = 60 * 1000
HOUR = 60 * MINUTE


def ev(user_id: int, item_id: int, ts: int, kind: ActivityKind = ActivityKind.COMMENT) -> ActivityEvent:
    return ActivityEvent(kind=kind, item_id=item_id, user_id=user_id, event_time=ts)


def make_config(**overrides: Any) -> RecommenderConfig:
    """
    One-hour tumbling item and coarse windows with no out-of-order slack,
    single anchor 1. Top-level sections in overrides are merged shallowly.
    """
    raw: Dict[str, Any] = {
        "anchors": [1],
        "windows": {
            "item": {"length_minutes": 60, "slide_minutes": 60, "out_of_order_minutes": 0},
            "coarse": {"length_minutes": 60, "slide_minutes": 60},
        },
        "ranking": {"static_weight": 0.3, "top_k": 5},
        "pipeline": {"workers": 2, "flush_on_close": True},
    }
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(raw.get(key), dict):
            raw[key] = {**raw[key], **value}
        else:
            raw[key] = value
    return config_from_dict(raw)
