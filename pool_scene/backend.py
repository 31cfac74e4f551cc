"""Scene backend interface.

The generator core never talks to a renderer directly. It needs exactly
these capabilities: discover named scene children and lights, pose the
scene from a SceneState, toggle ball/table visibility, render an RGB
buffer, and clear transient physics state between frames.

NullBackend implements the interface without rendering, for tests and for
dry runs that only produce labels.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np

from pool_scene.entities import LightKind, SceneState
from pool_scene.table import pocket_positions


class SceneBackend(Protocol):
    """Render and scene-graph boundary consumed by the dataset generator."""

    @property
    def table_texture_count(self) -> int:
        """Number of felt textures the table can switch between."""
        ...

    @property
    def skybox_count(self) -> int:
        """Number of backgrounds the skybox can switch between."""
        ...

    def enumerate_children(self) -> list[tuple[str, np.ndarray]]:
        """(name, world position) for every table child, in discovery order."""
        ...

    def enumerate_lights(self) -> list[tuple[str, LightKind, np.ndarray]]:
        """(name, kind, world position) for every scene light."""
        ...

    def set_entities_visible(self, visible: bool) -> None:
        """Show or hide all balls and the table mesh."""
        ...

    def apply(self, state: SceneState) -> None:
        """Pose the scene from a frame state."""
        ...

    def render(self, state: SceneState) -> np.ndarray:
        """Render the current scene to an (H, W, 3) uint8 RGB buffer."""
        ...

    def reset_dynamics(self) -> None:
        """Zero any velocities left by a motion impulse."""
        ...

    def close(self) -> None:
        ...


class NullBackend:
    """In-memory backend: real entity layout, blank images.

    Records what it was asked to do so tests can check the orchestration:
    `renders` holds one (entities_visible, skybox_index) tuple per render.
    """

    def __init__(
        self,
        n_balls: int = 16,
        length: float = 2.54,
        width: float = 1.27,
        height: float = 0.805,
        image_width: int = 512,
        image_height: int = 512,
        texture_count: int = 4,
        skybox_count: int = 6,
        lights: list[tuple[str, LightKind, np.ndarray]] | None = None,
    ):
        self.n_balls = n_balls
        self.length = length
        self.width = width
        self.height = height
        self.image_width = image_width
        self.image_height = image_height
        self._texture_count = texture_count
        self._skybox_count = skybox_count
        if lights is None:
            lights = [
                ("spot_0", LightKind.SPOT, np.array([-0.8, 0.0, 2.4])),
                ("spot_1", LightKind.SPOT, np.array([0.8, 0.0, 2.4])),
                ("sun", LightKind.DIRECTIONAL, np.array([0.0, -2.0, 4.0])),
            ]
        self._lights = lights
        self.entities_visible = True
        self.renders: list[tuple[bool, int | None]] = []
        self.applied = 0
        self.dynamics_resets = 0
        self.closed = False

    @classmethod
    def from_config(cls, cfg) -> NullBackend:
        return cls(
            n_balls=cfg.ball.count,
            length=cfg.table.length,
            width=cfg.table.width,
            height=cfg.table.height,
            image_width=cfg.render.image_width,
            image_height=cfg.render.image_height,
            texture_count=cfg.render.table_textures,
            skybox_count=cfg.render.procedural_skyboxes,
        )

    @property
    def table_texture_count(self) -> int:
        return self._texture_count

    @property
    def skybox_count(self) -> int:
        return self._skybox_count

    def enumerate_children(self) -> list[tuple[str, np.ndarray]]:
        children = [
            (f"ball_{i}", np.array([0.0, 0.0, self.height])) for i in range(self.n_balls)
        ]
        for i, pos in enumerate(pocket_positions(self.length, self.width, self.height)):
            children.append((f"pocket_{i}", np.array(pos)))
        return children

    def enumerate_lights(self) -> list[tuple[str, LightKind, np.ndarray]]:
        return list(self._lights)

    def set_entities_visible(self, visible: bool) -> None:
        self.entities_visible = visible

    def apply(self, state: SceneState) -> None:
        self.applied += 1

    def render(self, state: SceneState) -> np.ndarray:
        self.renders.append((self.entities_visible, state.skybox_index))
        return np.zeros((self.image_height, self.image_width, 3), dtype=np.uint8)

    def reset_dynamics(self) -> None:
        self.dynamics_resets += 1

    def close(self) -> None:
        self.closed = True
