"""Dataset orchestration: splits, frame loop, output tree.

Phases of a run:

    1. cleanup      delete the output tree (resuming only prunes frames
                    beyond the planned split sizes)
    2. directories  <split>/images and <split>/labels for every split
    3. generation   per split, per index: randomize -> render -> write

Every frame draws from its own generator seeded with (seed, split, index),
so a frame's content does not depend on the frames before it. That makes
resume produce the same files as an uninterrupted run.

Usage:
    backend = NullBackend.from_config(cfg)
    summary = DatasetGenerator(cfg, backend).run()
"""

from __future__ import annotations

import logging
import shutil
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from pool_scene.backend import SceneBackend
from pool_scene.entities import EntityRegistry, LightState
from pool_scene.errors import GenerationCancelled, GenerationError, OutputDirectoryError
from pool_scene.export import (
    image_path,
    label_path,
    validate_frame,
    write_dataset_yaml,
    write_image,
    write_labels,
)
from pool_scene.projection import Label, compute_labels
from pool_scene.randomizer import SceneRandomizer

if TYPE_CHECKING:
    from config import Config

log = logging.getLogger(__name__)

SPLITS = ("train", "valid", "test")


@dataclass(frozen=True)
class SplitPlan:
    train: int
    valid: int
    test: int

    @property
    def total(self) -> int:
        return self.train + self.valid + self.test

    def items(self) -> list[tuple[str, int]]:
        return [("train", self.train), ("valid", self.valid), ("test", self.test)]


def plan_splits(
    total: int, train_ratio: float, valid_ratio: float, threshold: int = 100
) -> SplitPlan:
    """Image count per split. Small datasets go entirely to train.

    >>> plan_splits(100, 0.7, 0.2)
    SplitPlan(train=70, valid=20, test=10)
    >>> plan_splits(10, 0.7, 0.2)
    SplitPlan(train=10, valid=0, test=0)
    """
    if total < threshold:
        return SplitPlan(total, 0, 0)
    train = int(np.floor(total * train_ratio))
    valid = int(np.floor(total * valid_ratio))
    return SplitPlan(train, valid, total - train - valid)


def is_background_frame(index: int, period: int = 30) -> bool:
    """Frames whose index is a multiple of *period* hide balls and table."""
    return index % period == 0


def frame_rng(seed: int, split: str, index: int) -> np.random.Generator:
    return np.random.default_rng([seed, SPLITS.index(split), index])


@dataclass
class GenerationSummary:
    counts: dict[str, int] = field(default_factory=dict)
    written: int = 0
    skipped: int = 0
    background: int = 0
    exhausted_frames: int = 0
    elapsed: float = 0.0


class DatasetGenerator:
    """Runs the frame loop against a SceneBackend.

    The optional *stop_event* is checked between frames only; a frame that
    has started always finishes writing before the run stops.
    """

    def __init__(
        self,
        cfg: Config,
        backend: SceneBackend,
        stop_event: threading.Event | None = None,
    ):
        self.cfg = cfg
        self.backend = backend
        self.stop_event = stop_event or threading.Event()
        self.root = Path(cfg.dataset.output_dir)

        self.registry = EntityRegistry.from_children(
            backend.enumerate_children(), cfg.ball.radius
        )
        lights = [
            LightState(name=name, kind=kind, position=np.asarray(pos, dtype=float))
            for name, kind, pos in backend.enumerate_lights()
        ]
        self.randomizer = SceneRandomizer(
            cfg,
            texture_count=backend.table_texture_count,
            skybox_count=backend.skybox_count,
        )
        self.state = self.randomizer.initial_state(self.registry, lights)
        log.info(
            "Discovered %d balls, %d pockets, %d lights",
            len(self.registry.balls),
            len(self.registry.pockets),
            len(lights),
        )

    def plan(self) -> SplitPlan:
        ds = self.cfg.dataset
        return plan_splits(
            ds.total_images, ds.train_ratio, ds.valid_ratio, ds.split_threshold
        )

    # -------------------------------------------------------------------
    # Output tree
    # -------------------------------------------------------------------

    def prepare_output(self) -> None:
        """Delete (unless resuming) and recreate the split directories."""
        if self.root.exists() and not self.cfg.dataset.resume:
            log.info("Removing existing dataset at %s", self.root)
            try:
                shutil.rmtree(self.root)
            except OSError as e:
                raise OutputDirectoryError(f"Cannot remove {self.root}: {e}") from e

        try:
            for split in SPLITS:
                (self.root / split / "images").mkdir(parents=True, exist_ok=True)
                (self.root / split / "labels").mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputDirectoryError(f"Cannot create {self.root}: {e}") from e

    def prune_stale(self, plan: SplitPlan) -> int:
        """Delete frames at or past each split's planned count.

        Only matters when resuming into a tree written with a larger
        total_images. Returns the number of files removed.
        """
        removed = 0
        try:
            for split, count in plan.items():
                for kind, suffix in (("images", ".jpg"), ("labels", ".txt")):
                    for path in (self.root / split / kind).glob(f"image_*{suffix}"):
                        index = path.stem[len("image_") :]
                        if index.isdigit() and int(index) >= count:
                            path.unlink()
                            removed += 1
        except OSError as e:
            raise OutputDirectoryError(f"Cannot prune {self.root}: {e}") from e
        if removed:
            log.info("Removed %d files beyond the planned split sizes", removed)
        return removed

    def is_done(self, split: str, index: int) -> bool:
        return (
            image_path(self.root, split, index).exists()
            and label_path(self.root, split, index).exists()
        )

    # -------------------------------------------------------------------
    # Frames
    # -------------------------------------------------------------------

    def generate_frame(self, split: str, index: int) -> list[Label]:
        """Randomize, render and write one frame. Returns its labels."""
        state = self.state
        backend = self.backend
        hide = is_background_frame(index, self.cfg.dataset.background_frame_period)
        state.hide_entities = hide
        rng = frame_rng(self.cfg.dataset.seed, split, index)

        try:
            if hide:
                backend.set_entities_visible(False)
            try:
                self.randomizer.randomize(state, rng)
                backend.apply(state)
                pixels = validate_frame(
                    backend.render(state),
                    self.cfg.render.image_width,
                    self.cfg.render.image_height,
                )
            finally:
                if hide:
                    backend.set_entities_visible(True)

            labels = compute_labels(state)
            write_image(
                image_path(self.root, split, index), pixels, self.cfg.dataset.jpeg_quality
            )
            write_labels(label_path(self.root, split, index), labels)
        finally:
            backend.reset_dynamics()
        return labels

    def run(self) -> GenerationSummary:
        ds = self.cfg.dataset
        plan = self.plan()
        summary = GenerationSummary(counts=dict(plan.items()))
        start = time.monotonic()

        self.prepare_output()
        if ds.resume:
            self.prune_stale(plan)
        write_dataset_yaml(self.root, list(SPLITS), self.registry.class_names())
        self.cfg.to_yaml(self.root / "config.yaml")
        log.info(
            "Generating %d images into %s (train=%d valid=%d test=%d, seed=%d)",
            plan.total,
            self.root,
            plan.train,
            plan.valid,
            plan.test,
            ds.seed,
        )

        for split, count in plan.items():
            if count == 0:
                continue
            log.info("Split %s: %d images", split, count)
            for index in range(count):
                if self.stop_event.is_set():
                    self.backend.reset_dynamics()
                    log.info(
                        "Stopped at %s/image_%d (%d written, %d skipped)",
                        split,
                        index,
                        summary.written,
                        summary.skipped,
                    )
                    raise GenerationCancelled(split, index)

                if ds.resume and self.is_done(split, index):
                    summary.skipped += 1
                    continue

                try:
                    labels = self.generate_frame(split, index)
                except Exception as e:
                    raise GenerationError(split, index, str(e)) from e

                summary.written += 1
                if self.state.hide_entities:
                    summary.background += 1
                placement = self.randomizer.last_placement
                if placement is not None and placement.exhausted:
                    summary.exhausted_frames += 1

                if ds.log_every > 0 and (index + 1) % ds.log_every == 0:
                    log.info(
                        "  %s %d/%d  (%d labels in last frame)",
                        split,
                        index + 1,
                        count,
                        len(labels),
                    )
            log.info("Split %s done", split)

        summary.elapsed = time.monotonic() - start
        log.info(
            "Dataset complete: %d written, %d skipped, %d background frames in %.1fs",
            summary.written,
            summary.skipped,
            summary.background,
            summary.elapsed,
        )
        if summary.exhausted_frames:
            log.warning(
                "%d frames kept stale ball positions after placement ran out of attempts",
                summary.exhausted_frames,
            )
        return summary
