from pathlib import Path

import pytest

from src.friendrec.bootstrap import bootstrap
from src.friendrec.config import config_from_dict
from src.friendrec.data.parsing import iter_activities, parse_timestamp, read_activity_file
from src.friendrec.data.schema import Anchors
from src.friendrec.data.simulator import simulate_social_data, write_sim_files
from src.friendrec.similarity.static import compute_static_similarity
from src.friendrec.streaming.pipeline import PipelineStats, StreamingPipeline, run_pipeline

from tests.helpers import HOUR, MINUTE, ev, make_config

ANCHOR_STREAM = [
    ev(1, 100, 10 * MINUTE),
    ev(2, 100, 20 * MINUTE),
    ev(2, 100, 30 * MINUTE),
    ev(3, 100, 40 * MINUTE),
]


@pytest.fixture
def single_anchor():
    anchors = Anchors.build([1], {})
    static = compute_static_similarity([{1: frozenset({10}), 4: frozenset({10})}], anchors)
    return anchors, static


def test_one_item_window_to_one_batch(single_anchor):
    anchors, static = single_anchor
    stats = {}
    batches = run_pipeline(make_config(), anchors, static, ANCHOR_STREAM, stats_out=stats)

    assert len(batches) == 1
    b = batches[0]
    # the item window [0, 1h) lands in the coarse window holding its end
    assert (b.window_start, b.window_end) == (HOUR, 2 * HOUR)
    # 2: 0.7 * 1.0, 4: 0.3 * 1.0, 3: 0.0
    assert b.recommendations == [[2, 4, 3]]
    assert stats["events_seen"] == 4
    assert stats["item_results_forwarded"] == 1
    assert stats["coarse_windows_fired"] == 1


def test_late_event_is_counted_and_dropped(single_anchor):
    anchors, static = single_anchor
    events = ANCHOR_STREAM + [ev(5, 200, 2 * HOUR), ev(6, 100, 5 * MINUTE)]
    stats = {}
    batches = run_pipeline(make_config(), anchors, static, events, stats_out=stats)

    assert stats["late_events"] == 1
    assert [b.recommendations for b in batches] == [[[2, 4, 3]]]


def test_without_flush_open_windows_never_fire(single_anchor):
    anchors, static = single_anchor
    cfg = make_config(pipeline={"flush_on_close": False})
    stats = {}
    assert run_pipeline(cfg, anchors, static, ANCHOR_STREAM, stats_out=stats) == []
    assert stats["item_windows_fired"] == 0


def test_cancel_stops_consuming_and_emits_nothing(single_anchor):
    anchors, static = single_anchor
    batches = []
    pipeline = StreamingPipeline(make_config(), anchors, static, batches.append)

    def feed():
        for i, e in enumerate(ANCHOR_STREAM):
            if i == 3:
                pipeline.cancel()
            yield e

    stats = pipeline.run(feed())
    assert pipeline.cancelled
    assert stats.events_seen == 3
    assert batches == []


def test_sink_failure_propagates(single_anchor):
    anchors, static = single_anchor

    def broken_sink(batch):
        raise RuntimeError("sink down")

    with pytest.raises(RuntimeError, match="sink down"):
        StreamingPipeline(make_config(), anchors, static, broken_sink).run(ANCHOR_STREAM)


def test_source_failure_cancels_and_propagates(single_anchor):
    anchors, static = single_anchor
    pipeline = StreamingPipeline(make_config(), anchors, static, lambda b: None)

    def feed():
        yield ANCHOR_STREAM[0]
        raise OSError("source lost")

    with pytest.raises(OSError):
        pipeline.run(feed())
    assert pipeline.cancelled


def test_static_rows_must_match_anchors(single_anchor):
    anchors, static = single_anchor
    with pytest.raises(ValueError):
        StreamingPipeline(make_config(), anchors, static + static, lambda b: None)


def test_sample_stream(sample_config):
    ctx = bootstrap(sample_config)
    stats = {}
    batches = run_pipeline(
        sample_config,
        ctx.anchors,
        ctx.static,
        read_activity_file(sample_config.paths.activities),
        stats_out=stats,
    )

    assert [b.window_start for b in batches] == [
        parse_timestamp("2019-05-01 10:00:00"),
        parse_timestamp("2019-05-01 11:00:00"),
        parse_timestamp("2019-05-01 12:00:00"),
    ]
    for b in batches:
        assert b.window_end - b.window_start == HOUR
        assert b.as_dict()["recommendations"] == {
            "10000": [10010, 10011],
            "10001": [10000, 10011],
        }
    assert stats["late_events"] == 0


def _sim_config(workers: int, **paths):
    return config_from_dict(
        {
            "anchors": [10000, 10001, 10002],
            "seed": 3,
            "paths": paths,
            "windows": {
                "item": {"length_minutes": 240, "slide_minutes": 60, "out_of_order_minutes": 5},
                "coarse": {"length_minutes": 60},
            },
            "pipeline": {"workers": workers},
            "sim": {
                "n_users": 40,
                "n_items": 30,
                "hours": 12,
                "events_per_hour": 40,
                "out_of_order_minutes": 4,
            },
        }
    )


def _simulate(cfg):
    return simulate_social_data({"seed": cfg.seed, "anchors": list(cfg.anchors), "sim": cfg.sim})


def test_output_does_not_depend_on_worker_count():
    outputs = []
    for workers in (1, 4):
        cfg = _sim_config(workers)
        data = _simulate(cfg)
        ctx = bootstrap(cfg, sim=data)
        stats = {}
        batches = run_pipeline(cfg, ctx.anchors, ctx.static, data.events, stats_out=stats)
        # disorder stays inside the out-of-order bound
        assert stats["late_events"] == 0
        outputs.append([b.as_dict() for b in batches])

    assert outputs[0] == outputs[1]
    assert outputs[0]


def test_recommendations_respect_exclusions_and_k():
    cfg = _sim_config(2)
    data = _simulate(cfg)
    ctx = bootstrap(cfg, sim=data)

    for b in run_pipeline(cfg, ctx.anchors, ctx.static, data.events):
        for i, recs in enumerate(b.recommendations):
            assert len(recs) <= cfg.ranking.top_k
            assert len(set(recs)) == len(recs)
            assert not any(ctx.anchors.excluded(i, u) for u in recs)


def test_files_and_memory_give_the_same_batches(tmp_path: Path):
    cfg = _sim_config(2)
    data = _simulate(cfg)
    paths = write_sim_files(data, tmp_path)

    file_cfg = _sim_config(
        2,
        knows=str(paths["knows"]),
        relations=[str(p) for name, p in paths.items() if name not in ("knows", "activities")],
        activities=str(paths["activities"]),
    )
    from_files = bootstrap(file_cfg)
    in_memory = bootstrap(cfg, sim=data)
    assert [dict(r) for r in from_files.static] == [dict(r) for r in in_memory.static]

    a = run_pipeline(file_cfg, from_files.anchors, from_files.static, read_activity_file(paths["activities"]))
    b = run_pipeline(cfg, in_memory.anchors, in_memory.static, data.events)
    assert [x.as_dict() for x in a] == [y.as_dict() for y in b]


def test_skipped_records_land_in_pipeline_stats(single_anchor):
    anchors, static = single_anchor
    lines = [
        "Post,100,1,1970-01-01 00:10:00",
        "Post,100,2,not a time",
        "Like,100,2,1970-01-01 00:20:00",
        "broken",
    ]
    stats = PipelineStats()
    stats_out = {}
    batches = run_pipeline(
        make_config(),
        anchors,
        static,
        iter_activities(lines, on_error=stats.on_parse_error),
        stats_out=stats_out,
        stats=stats,
    )

    assert stats_out["parse_errors"] == 2
    assert stats_out["events_seen"] == 2
    assert [b.recommendations for b in batches] == [[[2, 4]]]
