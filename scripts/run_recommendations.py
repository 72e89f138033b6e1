import argparse
import json
import sys
from pathlib import Path

from src.friendrec.bootstrap import bootstrap
from src.friendrec.config import load_config
from src.friendrec.data.parsing import read_activity_file
from src.friendrec.data.simulator import simulate_social_data
from src.friendrec.errors import ConfigError
from src.friendrec.streaming.pipeline import StreamingPipeline
from src.friendrec.utils.logging import setup_logger


def main(config_path: str, simulate: bool) -> int:
    log = setup_logger("friendrec")

    # everything before streaming is fatal on failure
    try:
        cfg = load_config(config_path)
        sim = None
        if simulate:
            sim = simulate_social_data({"seed": cfg.seed, "anchors": list(cfg.anchors), "sim": cfg.sim})
        elif cfg.paths.activities is None or not cfg.paths.activities.exists():
            raise ConfigError(f"activity source not found: {cfg.paths.activities}")
        ctx = bootstrap(cfg, sim=sim)
    except ConfigError as exc:
        log.error("Startup failed: %s", exc)
        return 2

    batches = []

    def sink(batch):
        batches.append(batch.as_dict())
        print(json.dumps(batch.as_dict()))

    pipeline = StreamingPipeline(cfg, ctx.anchors, ctx.static, sink)
    if sim is not None:
        events = sim.events
    else:
        events = read_activity_file(cfg.paths.activities, on_error=pipeline.stats.on_parse_error)

    try:
        stats = pipeline.run(events)
    except KeyboardInterrupt:
        log.warning("Cancelled, unfired windows discarded")
        return 130

    report = {
        "anchors": list(cfg.anchors),
        "static_weight": cfg.ranking.static_weight,
        "stats": stats.as_dict(),
        "batches": batches,
    }
    out_path = Path(cfg.paths.out_dir) / "recommendation_report.json"
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(report, indent=2))
    log.info("Wrote %s", out_path.resolve())
    return 0


if __name__ == "__main__":
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", default="configs/dev.yaml")
    ap.add_argument("--simulate", action="store_true", help="use the synthetic dataset instead of the configured files")
    args = ap.parse_args()
    sys.exit(main(args.config, args.simulate))
