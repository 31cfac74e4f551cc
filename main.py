"""
Command-line entry point for pool dataset generation.

Usage:
    python main.py generate [--config FILE] [--smoketest] [--resume] [--backend mujoco|null]
    python main.py preview [--seeds 1 2 3] [--count N] [--out DIR]
    python main.py describe [--seed N]          # config + one sampled frame
    python main.py split-plan --total-images N  # images per split

Ctrl-C during generate stops after the current frame; rerun with --resume
to continue.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

import numpy as np
import yaml

from config import Config
from pool_scene.errors import ConfigError, GenerationCancelled, PoolSynthError

log = logging.getLogger(__name__)


def _setup_logging(level: int = logging.INFO) -> None:
    """Configure the root logger and install an excepthook.

    Unhandled exceptions are logged through whatever handlers are active
    before the default hook prints the traceback.
    """
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s  %(levelname)-8s  %(name)s  %(message)s", "%H:%M:%S")
        )
        root.addHandler(handler)

    _original_excepthook = sys.excepthook

    def _logging_excepthook(exc_type, exc_value, exc_tb):
        if not issubclass(exc_type, KeyboardInterrupt):
            logging.critical(
                "Unhandled exception", exc_info=(exc_type, exc_value, exc_tb)
            )
        _original_excepthook(exc_type, exc_value, exc_tb)

    sys.excepthook = _logging_excepthook


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def _add_config_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", type=str, default=None, help="YAML config file")
    p.add_argument("--smoketest", action="store_true", help="Tiny fast config")
    p.add_argument("--seed", type=int, default=None, help="Base random seed")
    p.add_argument("--width", type=int, default=None, help="Capture width in pixels")
    p.add_argument("--height", type=int, default=None, help="Capture height in pixels")


def _add_backend_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--backend",
        choices=["mujoco", "null"],
        default="mujoco",
        help="Scene backend (null writes blank images, labels only)",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="main.py",
        description="Synthetic pool-table detection dataset generator",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # generate
    p_gen = sub.add_parser("generate", help="Generate the dataset")
    _add_config_args(p_gen)
    _add_backend_arg(p_gen)
    p_gen.add_argument("--output-dir", type=str, default=None, help="Dataset root")
    p_gen.add_argument("--total-images", type=int, default=None, help="Images across all splits")
    p_gen.add_argument("--resume", action="store_true", help="Keep existing files, skip finished frames")

    # preview
    p_prev = sub.add_parser("preview", help="Render a contact sheet with label boxes")
    _add_config_args(p_prev)
    _add_backend_arg(p_prev)
    p_prev.add_argument("--seeds", nargs="*", type=int, help="Specific seeds to render")
    p_prev.add_argument("--count", type=_positive_int, default=8, help="Number of random frames (default: 8)")
    p_prev.add_argument("--out", default="docs/preview", help="Output directory")

    # describe
    p_desc = sub.add_parser("describe", help="Print the config and one sampled frame")
    _add_config_args(p_desc)

    # split-plan
    p_split = sub.add_parser("split-plan", help="Print images per split")
    _add_config_args(p_split)
    p_split.add_argument("--total-images", type=int, default=None, help="Images across all splits")

    return parser


def _load_config(args) -> Config:
    """Config from --smoketest/--config, then command-line overrides."""
    if args.config:
        cfg = Config.from_yaml(args.config)
    elif args.smoketest:
        cfg = Config.for_smoketest()
    else:
        cfg = Config()

    if args.seed is not None:
        cfg.dataset.seed = args.seed
    if args.width is not None:
        cfg.render.image_width = args.width
    if args.height is not None:
        cfg.render.image_height = args.height
    if getattr(args, "output_dir", None) is not None:
        cfg.dataset.output_dir = args.output_dir
    if getattr(args, "total_images", None) is not None:
        cfg.dataset.total_images = args.total_images
    if getattr(args, "resume", False):
        cfg.dataset.resume = True
    return cfg.validate()


def _make_backend(name: str, cfg: Config):
    if name == "null":
        from pool_scene.backend import NullBackend
        return NullBackend.from_config(cfg)
    from pool_scene.world import PoolWorld
    return PoolWorld.from_config(cfg)


def _run_generate(args, cfg: Config) -> None:
    from pool_scene.dataset import DatasetGenerator

    stop_event = threading.Event()

    def _on_sigint(signum, frame):
        if stop_event.is_set():
            raise KeyboardInterrupt
        log.warning("Stop requested; finishing the current frame (Ctrl-C again to abort)")
        stop_event.set()

    signal.signal(signal.SIGINT, _on_sigint)

    log.info("Config: %s", cfg.to_flat_dict())
    backend = _make_backend(args.backend, cfg)
    try:
        DatasetGenerator(cfg, backend, stop_event=stop_event).run()
    finally:
        backend.close()


def _run_preview(args, cfg: Config) -> None:
    from pool_scene.render_preview import render_preview_grid

    if args.seeds:
        seeds = args.seeds
    else:
        rng = np.random.default_rng()
        seeds = [int(rng.integers(0, 2**32)) for _ in range(args.count)]

    backend = _make_backend(args.backend, cfg)
    try:
        log.info("Rendering %d frames...", len(seeds))
        path = render_preview_grid(seeds, Path(args.out), cfg, backend)
    finally:
        backend.close()
    print(f"Saved to {path}")


def _run_describe(cfg: Config) -> None:
    from pool_scene.backend import NullBackend
    from pool_scene.dataset import DatasetGenerator
    from pool_scene.entities import describe_state

    print(yaml.safe_dump(cfg.to_dict(), sort_keys=False))
    generator = DatasetGenerator(cfg, NullBackend.from_config(cfg))
    seed = cfg.dataset.seed
    generator.randomizer.randomize(generator.state, np.random.default_rng(seed))
    print(describe_state(generator.state, seed=seed))


def _run_split_plan(cfg: Config) -> None:
    from pool_scene.dataset import plan_splits

    ds = cfg.dataset
    plan = plan_splits(ds.total_images, ds.train_ratio, ds.valid_ratio, ds.split_threshold)
    for split, count in plan.items():
        print(f"{split:<6} {count}")
    print(f"{'total':<6} {plan.total}")


def main():
    parser = _build_parser()
    args = parser.parse_args()
    _setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    if args.command is None:
        parser.print_help()
        return

    try:
        cfg = _load_config(args)
    except (ConfigError, OSError, yaml.YAMLError) as e:
        log.error("Invalid configuration: %s", e)
        sys.exit(2)

    try:
        if args.command == "generate":
            _run_generate(args, cfg)
        elif args.command == "preview":
            _run_preview(args, cfg)
        elif args.command == "describe":
            _run_describe(cfg)
        elif args.command == "split-plan":
            _run_split_plan(cfg)
    except GenerationCancelled as e:
        log.warning("%s", e)
        sys.exit(130)
    except PoolSynthError as e:
        log.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
