import json
from dataclasses import asdict
from pathlib import Path

from src.friendrec.bootstrap import bootstrap
from src.friendrec.config import load_config
from src.friendrec.data.simulator import simulate_social_data
from src.friendrec.streaming.pipeline import run_pipeline
from src.friendrec.utils.logging import setup_logger
from src.friendrec.viz.diagnostics import run_diagnostics


def main():
    setup_logger("friendrec")
    cfg = load_config("configs/dev.yaml")
    data = simulate_social_data({"seed": cfg.seed, "anchors": list(cfg.anchors), "sim": cfg.sim})

    ctx = bootstrap(cfg, sim=data)

    stats = {}
    batches = run_pipeline(cfg, ctx.anchors, ctx.static, data.events, stats_out=stats)

    figs_dir = Path(cfg.paths.out_dir) / "figures"
    summary = run_diagnostics(
        data=data,
        batches=batches,
        stats=stats,
        figs_dir=figs_dir,
        top_k=cfg.ranking.top_k,
    )

    summary_path = Path(cfg.paths.out_dir) / "diagnostics_summary.json"
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    summary_path.write_text(json.dumps(asdict(summary), indent=2))

    print("Saved figures to:", figs_dir.resolve())
    print("Saved summary to:", summary_path.resolve())
    print(json.dumps(asdict(summary), indent=2))


if __name__ == "__main__":
    main()
