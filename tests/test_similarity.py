import pytest

from src.friendrec.data.schema import Anchors, FiredWindow
from src.friendrec.data.snapshots import load_relation_snapshot
from src.friendrec.similarity.dynamic import dynamic_similarity, extract_item_similarity
from src.friendrec.similarity.static import compute_static_similarity


@pytest.fixture
def anchors():
    # 1 is friends with 2; 5 has no friends
    return Anchors.build([1, 5], {1: [2]})


def test_dynamic_matches_brute_force(anchors):
    counts = {1: 3, 2: 1, 3: 2, 4: 1, 5: 2}
    rows = dynamic_similarity(counts, anchors)

    for i, a in enumerate(anchors.user_ids):
        expected = {
            u: counts[a] * c
            for u, c in counts.items()
            if u != a and u not in anchors.friends[i]
        }
        assert rows[i] == expected
    assert rows[0] == {3: 6, 4: 3, 5: 6}


def test_dynamic_excludes_self_and_friends(anchors):
    rows = dynamic_similarity({1: 1, 2: 5, 5: 1}, anchors)
    assert 1 not in rows[0] and 2 not in rows[0]
    assert 5 not in rows[1]


def test_inactive_anchor_gets_empty_row(anchors):
    rows = dynamic_similarity({1: 2, 3: 1}, anchors)
    assert rows[1] == {}


def test_extract_skips_windows_without_anchor_activity(anchors):
    window = FiredWindow(key=42, start=0, end=100, aggregate={3: 1, 4: 2})
    assert extract_item_similarity(window, anchors) is None


def test_extract_carries_window_end(anchors):
    window = FiredWindow(key=42, start=0, end=100, aggregate={1: 1, 3: 2})
    sim = extract_item_similarity(window, anchors)
    assert sim.item_id == 42
    assert sim.window_end == 100
    assert sim.similarities == [{3: 2}, {}]


def test_static_sums_overlap_across_snapshots(anchors):
    tags = {1: frozenset({10, 11, 12}), 3: frozenset({10, 11}), 4: frozenset({99})}
    places = {1: frozenset({7}), 3: frozenset({7}), 5: frozenset({7})}
    static = compute_static_similarity([tags, places], anchors)

    assert dict(static[0]) == {3: 3, 5: 1}
    # anchor 5 only appears in the place snapshot
    assert dict(static[1]) == {1: 1, 3: 1}


def test_static_omits_friends_and_zero_overlap(anchors):
    tags = {1: frozenset({10}), 2: frozenset({10}), 4: frozenset({11})}
    static = compute_static_similarity([tags], anchors)
    assert dict(static[0]) == {}
    assert dict(static[1]) == {}


def test_static_rows_are_read_only(anchors):
    static = compute_static_similarity([{1: frozenset({1}), 3: frozenset({1})}], anchors)
    with pytest.raises(TypeError):
        static[0][3] = 100


def test_static_from_sample_snapshots(sample_dir):
    names = [
        "person_hasInterest_tag",
        "person_isLocatedIn_place",
        "person_studyAt_organisation",
        "person_workAt_organisation",
    ]
    relations = [load_relation_snapshot(sample_dir / f"{n}.csv").unwrap() for n in names]
    anchors = Anchors.build([10000, 10001], {10000: [10001], 10001: [10010]})
    static = compute_static_similarity(relations, anchors)

    assert dict(static[0]) == {10010: 4, 10011: 4}
    assert dict(static[1]) == {10000: 8, 10011: 4}
