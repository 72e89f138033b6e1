from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Generic, Hashable, List, Mapping, Optional, Sequence, Tuple, TypeVar

A = TypeVar("A")

# userId -> activity count inside one item window
CountAggregate = Dict[int, int]

# one row per anchor (anchor order): candidateId -> score
SimilarityMatrix = List[Dict[int, int]]

# frozen rows, shared read-only by every ranking call
StaticSimilarityMatrix = Tuple[Mapping[int, int], ...]

# one list per anchor (anchor order), at most top_k user ids each
RecommendationList = List[List[int]]

AnchorSet = Tuple[int, ...]
FriendSet = Tuple[FrozenSet[int], ...]


class ActivityKind(str, Enum):
    POST = "Post"
    COMMENT = "Comment"
    LIKE = "Like"
    OTHER = "Other"

    @classmethod
    def from_text(cls, text: str) -> "ActivityKind":
        for kind in (cls.POST, cls.COMMENT, cls.LIKE):
            if text == kind.value:
                return kind
        return cls.OTHER


@dataclass(frozen=True)
class ActivityEvent:
    kind: ActivityKind
    item_id: int
    user_id: int
    event_time: int  # epoch milliseconds, UTC


@dataclass(frozen=True)
class WindowKey:
    """
    Identity of one window instance.
    key is the item id for item-level windows and None for the global stage.
    """
    key: Optional[Hashable]
    start: int
    end: int


@dataclass(frozen=True)
class FiredWindow(Generic[A]):
    key: Optional[Hashable]
    start: int
    end: int
    aggregate: A


@dataclass(frozen=True)
class ItemSimilarity:
    """
    Dynamic similarity contributed by one fired item window.
    The window end doubles as the event time for the coarse stage.
    """
    item_id: int
    window_end: int
    similarities: SimilarityMatrix


@dataclass(frozen=True)
class Anchors:
    """
    Anchor users and their existing friends, aligned by position.
    """
    user_ids: AnchorSet
    friends: FriendSet

    def __post_init__(self):
        if len(self.user_ids) != len(self.friends):
            raise ValueError("anchors and friend sets must be aligned")

    def __len__(self) -> int:
        return len(self.user_ids)

    def excluded(self, i: int, user_id: int) -> bool:
        return user_id == self.user_ids[i] or user_id in self.friends[i]

    @classmethod
    def build(cls, user_ids: Sequence[int], knows: Mapping[int, Sequence[int]]) -> "Anchors":
        ids = tuple(int(u) for u in user_ids)
        return cls(user_ids=ids, friends=tuple(frozenset(knows.get(u, ())) for u in ids))


@dataclass(frozen=True)
class RecommendationBatch:
    window_start: int
    window_end: int
    anchors: AnchorSet
    recommendations: RecommendationList

    def as_dict(self) -> Dict[str, object]:
        return {
            "window_start": self.window_start,
            "window_end": self.window_end,
            "recommendations": {
                str(a): list(recs) for a, recs in zip(self.anchors, self.recommendations)
            },
        }


@dataclass
class SimData:
    """
    Synthetic social-network snapshot plus an activity stream.
    """
    events: List[ActivityEvent]
    knows: Dict[int, List[int]]  # userId -> ids the user already knows
    relations: Dict[str, Dict[int, FrozenSet[int]]] = field(default_factory=dict)  # snapshot name -> userId -> objectIds
