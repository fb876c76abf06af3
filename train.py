"""Training entrypoint for the zone-climbing agent.

Loads the experiment config, builds environment, agent and orchestrator, and
runs the requested number of episodes, checkpointing as it goes.
"""

from __future__ import annotations

import argparse
import logging
import signal
from pathlib import Path
from typing import Optional

from climbrl.engine import build_orchestrator
from climbrl.utils.config import load_config
from climbrl.utils.logger import ConsoleSink, Logger, LoggingSink

logger = logging.getLogger("climbrl.train")


def _parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Train an agent to climb the zone staircase")
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--experiment", type=str, default=None)
    parser.add_argument("--algo", type=str, choices=("dqn", "ppo"), default=None)
    parser.add_argument("--episodes", type=int, default=None)
    parser.add_argument("--checkpoint-dir", type=Path, default=None)
    parser.add_argument("--resume", action="store_true", help="Load the last checkpoint before training")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--device", type=str, default=None)
    parser.add_argument("--console", action="store_true", help="Show a live rich dashboard")
    parser.add_argument("--log-level", type=str, default="INFO")
    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg, cfg_path, experiment = load_config(args.config, experiment=args.experiment)
    logger.info("Loaded config %s%s", cfg_path, f" (experiment={experiment})" if experiment else "")
    if args.seed is not None:
        cfg.training.seed = args.seed
    if args.device is not None:
        cfg.dqn.device = args.device
        cfg.ppo.device = args.device

    sinks = [ConsoleSink()] if args.console else [LoggingSink()]
    orchestrator = build_orchestrator(
        cfg,
        algorithm=args.algo,
        metrics_logger=Logger(sinks),
        checkpoint_dir=args.checkpoint_dir,
    )
    if args.resume:
        orchestrator.load_checkpoint()

    previous_handler = signal.signal(signal.SIGINT, lambda *_: orchestrator.stop_training())
    try:
        stats = orchestrator.start_training(args.episodes)
    finally:
        signal.signal(signal.SIGINT, previous_handler)
    logger.info(
        "Finished: %d episodes, %d steps, best reward %s",
        stats.current_episode,
        stats.total_steps,
        "n/a" if stats.best_reward is None else f"{stats.best_reward:.3f}",
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
