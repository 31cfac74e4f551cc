"""Per-frame scene randomization.

SceneRandomizer.randomize() runs every sampler in a fixed order:

    table -> skybox -> balls -> cue -> camera -> lighting -> post -> impulse

The order matters in two places only: the cue is posed at the cue ball's
*new* position, and the camera must be final before labels are projected.
Everything else is independent.

Usage:
    randomizer = SceneRandomizer(cfg, texture_count=4, skybox_count=6)
    state = randomizer.initial_state(registry, lights)
    randomizer.randomize(state, np.random.default_rng(seed))
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from pool_scene.appearance import (
    randomize_lighting,
    randomize_post_processing,
    randomize_table,
    sample_motion_impulse,
    sample_skybox,
)
from pool_scene.entities import EntityRegistry, LightState, SceneState, Table
from pool_scene.placement import PlacementResult, apply_placement, place_balls
from pool_scene.poses import sample_camera_pose, sample_cue_pose

if TYPE_CHECKING:
    from config import Config

log = logging.getLogger(__name__)


class SceneRandomizer:
    """Drives all samplers for one frame against an explicit SceneState."""

    def __init__(self, cfg: Config, texture_count: int = 0, skybox_count: int = 0):
        self.cfg = cfg
        self.texture_count = texture_count
        self.skybox_count = skybox_count
        self.last_placement: PlacementResult | None = None
        self._warned: set[str] = set()

    def initial_state(
        self,
        registry: EntityRegistry,
        lights: list[LightState] | None = None,
    ) -> SceneState:
        t = self.cfg.table
        state = SceneState(
            registry=registry,
            table=Table(length=t.length, width=t.width, height=t.height),
            lights=list(lights or []),
        )
        state.camera.fovy = self.cfg.camera.fovy
        state.camera.aspect = self.cfg.camera.aspect
        return state

    def _warn_once(self, key: str, message: str) -> None:
        if key not in self._warned:
            self._warned.add(key)
            log.warning(message)

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------

    def randomize(self, state: SceneState, rng: np.random.Generator) -> SceneState:
        """Resample every randomized axis of *state* in place."""
        self.randomize_table(state, rng)
        self.randomize_skybox(state, rng)
        self.randomize_balls(state, rng)
        self.randomize_cue(state, rng)
        self.randomize_camera(state, rng)
        self.randomize_lighting(state, rng)
        randomize_post_processing(rng, state.post, self.cfg.post)
        self.maybe_apply_impulse(state, rng)
        return state

    def randomize_table(self, state: SceneState, rng: np.random.Generator) -> None:
        if not randomize_table(rng, state.table, self.cfg.table, self.texture_count):
            self._warn_once("table", "No table textures available; table appearance not randomized")

    def randomize_skybox(self, state: SceneState, rng: np.random.Generator) -> None:
        index = sample_skybox(rng, self.skybox_count)
        if index is None:
            self._warn_once("skybox", "No skyboxes available; background not randomized")
            return
        state.skybox_index = index

    def randomize_balls(self, state: SceneState, rng: np.random.Generator) -> None:
        balls = state.balls
        if not balls:
            return
        b = self.cfg.ball
        result = place_balls(
            rng,
            n=len(balls),
            radius=b.radius,
            length=state.table.length,
            width=state.table.width,
            height=state.table.height,
            max_attempts=b.max_attempts,
            previous=np.array([ball.position for ball in balls]),
            previous_quats=np.array([ball.quat for ball in balls]),
            on_exhaustion=b.on_exhaustion,
        )
        apply_placement(balls, result)
        self.last_placement = result

    def randomize_cue(self, state: SceneState, rng: np.random.Generator) -> None:
        cue_ball = state.registry.cue_ball
        if cue_ball is None:
            return
        state.cue = sample_cue_pose(rng, self.cfg.cue, cue_ball.position)

    def randomize_camera(self, state: SceneState, rng: np.random.Generator) -> None:
        state.camera = sample_camera_pose(rng, self.cfg.camera, state.table.center)

    def randomize_lighting(self, state: SceneState, rng: np.random.Generator) -> None:
        if not randomize_lighting(rng, state.lights, self.cfg.lighting):
            self._warn_once("lights", "No lights found; lighting not randomized")

    def maybe_apply_impulse(self, state: SceneState, rng: np.random.Generator) -> None:
        """Probability-gated random impulse on every ball."""
        state.ball_velocities = None
        # Always draw so the stream does not depend on the probability
        roll = rng.random()
        if roll < self.cfg.motion.event_probability and state.balls:
            state.ball_velocities = sample_motion_impulse(
                rng, len(state.balls), self.cfg.motion, self.cfg.ball.mass
            )
