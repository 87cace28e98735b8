import argparse
import os
import sys

import pandas as pd
from dotenv import load_dotenv

from cfrec.data.loader import load_events
from cfrec.scripts.run_pipeline import run_all_modes
from cfrec.utils.config import FeedbackMode, PipelineConfig
from cfrec.utils.errors import PipelineError
from cfrec.utils.logger import setup_logger

logger = setup_logger(__name__)

CONFIG_ENV = "CFREC_CONFIG"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Train explicit/implicit factor models and report top-N hit rate.")
    ap.add_argument("--events", required=True, help="CSV event log, one row per (user, item) event")
    ap.add_argument("--config", default=None, help=f"YAML config (falls back to ${CONFIG_ENV})")
    ap.add_argument("--mode", choices=["explicit", "implicit", "both"], default="both")
    ap.add_argument("--user-col", default="user_id")
    ap.add_argument("--item-col", default="item_id")
    ap.add_argument("--recommendations", default=None, help="write decoded top-N lists to this CSV")
    return ap.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = parse_args(argv)

    try:
        config_path = args.config or os.environ.get(CONFIG_ENV)
        config = PipelineConfig.from_yaml(config_path) if config_path else PipelineConfig()
        events = load_events(args.events, user_col=args.user_col, item_col=args.item_col)

        modes = tuple(FeedbackMode) if args.mode == "both" else (FeedbackMode.parse(args.mode),)
        results = run_all_modes(events, config, modes=modes)
    except PipelineError as err:
        logger.error(f"{type(err).__name__}: {err}")
        return 1

    logger.info("\nEvaluation:")
    for mode, result in results.items():
        for k, v in result.evaluation.as_dict().items():
            logger.info(f"  [{mode.value}] {k}: {v}")

    if args.recommendations:
        recs = pd.concat(
            [result.recommendations().assign(mode=mode.value) for mode, result in results.items()],
            ignore_index=True,
        )
        recs.to_csv(args.recommendations, index=False)
        logger.info(f"Wrote {len(recs):,} recommendations to {args.recommendations}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
