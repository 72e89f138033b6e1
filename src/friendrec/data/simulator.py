from __future__ import annotations
from pathlib import Path
from typing import Dict, FrozenSet, List, Sequence
import numpy as np

from src.friendrec.data.parsing import format_timestamp, parse_timestamp
from src.friendrec.data.schema import ActivityEvent, ActivityKind, SimData

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE

KINDS = [ActivityKind.POST, ActivityKind.COMMENT, ActivityKind.LIKE]
RELATIONS = ("person_hasInterest_tag", "person_isLocatedIn_place", "person_studyAt_organisation", "person_workAt_organisation")


def _relation(rng: np.random.RandomState, user_ids: Sequence[int], n_objects: int, lo: int, hi: int) -> Dict[int, FrozenSet[int]]:
    out = {}
    for u in user_ids:
        k = int(rng.randint(lo, hi + 1))
        if k == 0:
            continue
        out[int(u)] = frozenset(int(x) for x in rng.choice(n_objects, size=min(k, n_objects), replace=False))
    return out


def simulate_social_data(cfg: dict) -> SimData:
    """
    Small synthetic social network: friendships, profile relations and an
    activity stream on items with bounded out-of-order arrival.

    Item popularity decays with age (half-life in hours), so activity clusters
    on recent items the way a real feed does.
    """
    seed = int(cfg["seed"])
    rng = np.random.RandomState(seed)

    scfg = cfg["sim"]
    n_users = int(scfg["n_users"])
    n_items = int(scfg["n_items"])
    hours = int(scfg["hours"])
    events_per_hour = int(scfg["events_per_hour"])
    user_base = int(scfg.get("user_id_base", 10000))
    jitter_ms = int(float(scfg.get("out_of_order_minutes", 0)) * MS_PER_MINUTE)
    start_ts = parse_timestamp(scfg.get("start", "2019-05-01 00:00:00"))

    user_ids = np.arange(user_base, user_base + n_users)
    anchors = [int(a) for a in cfg.get("anchors", [])]

    # ---- friendships (each user knows ~2-8 others) ----
    knows: Dict[int, List[int]] = {}
    for u in user_ids:
        k = rng.randint(2, 9)
        others = rng.choice(user_ids[user_ids != u], size=min(k, n_users - 1), replace=False)
        knows[int(u)] = sorted(int(x) for x in others)

    # ---- profile relations ----
    relations = {
        RELATIONS[0]: _relation(rng, user_ids, int(scfg.get("n_tags", 40)), 1, 6),
        RELATIONS[1]: _relation(rng, user_ids, int(scfg.get("n_places", 10)), 1, 1),
        RELATIONS[2]: _relation(rng, user_ids, int(scfg.get("n_orgs", 15)), 0, 2),
        RELATIONS[3]: _relation(rng, user_ids, int(scfg.get("n_orgs", 15)), 0, 2),
    }

    # ---- items appear over time ----
    total_ms = hours * MS_PER_HOUR
    item_created = np.sort(rng.randint(0, total_ms, size=n_items))
    half_life = float(scfg.get("item_half_life_hours", 3.0)) * MS_PER_HOUR

    # anchors are somewhat more active so they show up in most windows
    activity = rng.lognormal(mean=0.0, sigma=0.6, size=n_users)
    for a in anchors:
        if user_base <= a < user_base + n_users:
            activity[a - user_base] *= float(scfg.get("anchor_activity_boost", 3.0))
    activity = activity / activity.sum()

    n_events = hours * events_per_hour
    # whole seconds, matching the text format
    event_ts = np.sort(rng.randint(0, total_ms // 1000, size=n_events)).astype(np.int64) * 1000

    events: List[ActivityEvent] = []
    for ts in event_ts:
        avail = np.where(item_created <= ts)[0]
        if avail.size == 0:
            continue
        age = (ts - item_created[avail]).astype(np.float64)
        weights = np.exp(-age / (half_life + 1e-12))
        item = int(rng.choice(avail, p=weights / weights.sum()))
        user = int(rng.choice(user_ids, p=activity))
        kind = KINDS[int(rng.randint(0, len(KINDS)))]
        events.append(ActivityEvent(kind=kind, item_id=item, user_id=user, event_time=start_ts + int(ts)))

    # ---- bounded disorder: arrival order = event time + jitter ----
    if jitter_ms > 0 and events:
        delay = rng.randint(0, jitter_ms + 1, size=len(events))
        order = np.argsort(np.array([e.event_time for e in events]) + delay, kind="stable")
        events = [events[i] for i in order]

    return SimData(events=events, knows=knows, relations=relations)


def write_sim_files(data: SimData, out_dir: Path) -> Dict[str, Path]:
    """
    Dump a simulated dataset in the on-disk formats the loaders read.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    paths: Dict[str, Path] = {}

    knows_path = out_dir / "person_knows_person.csv"
    with open(knows_path, "w", encoding="utf-8") as f:
        f.write("Person.id|Person.id\n")
        for u, friends in sorted(data.knows.items()):
            for v in friends:
                f.write(f"{u}|{v}\n")
    paths["knows"] = knows_path

    for name, relation in data.relations.items():
        p = out_dir / f"{name}.csv"
        with open(p, "w", encoding="utf-8") as f:
            f.write("Person.id|Object.id\n")
            for u, objects in sorted(relation.items()):
                for o in sorted(objects):
                    f.write(f"{u}|{o}\n")
        paths[name] = p

    act_path = out_dir / "activities.txt"
    with open(act_path, "w", encoding="utf-8") as f:
        for e in data.events:
            f.write(f"{e.kind.value},{e.item_id},{e.user_id},{format_timestamp(e.event_time)}\n")
    paths["activities"] = act_path
    return paths
