"""Scene state records passed explicitly between randomizer, backend and projector.

Nothing here talks to a renderer. A SceneState is the complete description
of one frame: the randomizer writes it, the backend reads it to pose the
3D scene, and the annotation projector reads it to compute labels.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from pool_scene.geometry import euler_to_quat, rot_y, rot_z

BALL_TAG = "ball_"
POCKET_TAG = "pocket"


# ---------------------------------------------------------------------------
# Entities discovered from the scene
# ---------------------------------------------------------------------------


@dataclass
class Ball:
    """A pool ball. Index 0 is the cue ball; the index doubles as class id.

    Attributes:
        index: Discovery order (0-based)
        name: Scene object name (contains "ball_")
        position: World position (x, y, z), z is the ball center height
        quat: Orientation (w, x, y, z), visual only
        radius: Shared by all balls
    """

    index: int
    name: str
    position: np.ndarray
    radius: float
    quat: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0, 0.0]))

    @property
    def class_id(self) -> int:
        return self.index


@dataclass(frozen=True)
class Pocket:
    """A table pocket. Static for the whole run."""

    index: int
    name: str
    position: tuple[float, float, float]


@dataclass
class EntityRegistry:
    """Typed lists of balls and pockets, built once at startup."""

    balls: list[Ball] = field(default_factory=list)
    pockets: list[Pocket] = field(default_factory=list)

    @classmethod
    def from_children(
        cls,
        children: list[tuple[str, np.ndarray]],
        radius: float,
    ) -> EntityRegistry:
        """Partition (name, position) pairs into balls and pockets.

        Names containing "ball_" become balls, names containing "pocket"
        become pockets. Discovery order is kept and sets the class ids.
        Anything else is ignored.
        """
        registry = cls()
        for name, pos in children:
            if BALL_TAG in name:
                registry.balls.append(
                    Ball(
                        index=len(registry.balls),
                        name=name,
                        position=np.array(pos, dtype=float),
                        radius=radius,
                    )
                )
            elif POCKET_TAG in name:
                registry.pockets.append(
                    Pocket(
                        index=len(registry.pockets),
                        name=name,
                        position=tuple(float(v) for v in pos),
                    )
                )
        return registry

    @property
    def pocket_class_id(self) -> int:
        """All pockets share the class right after the last ball."""
        return len(self.balls)

    @property
    def cue_ball(self) -> Ball | None:
        return self.balls[0] if self.balls else None

    def class_names(self) -> list[str]:
        names = [b.name for b in self.balls]
        if self.pockets:
            names.append(POCKET_TAG)
        return names


# ---------------------------------------------------------------------------
# Per-frame appearance and pose records
# ---------------------------------------------------------------------------


@dataclass
class Table:
    """Table geometry (fixed) and surface appearance (randomized)."""

    length: float
    width: float
    height: float
    roughness: float = 0.5
    normal_intensity: float = 1.0
    texture_index: int | None = None

    @property
    def center(self) -> np.ndarray:
        return np.array([0.0, 0.0, self.height])


@dataclass
class CameraState:
    """Camera pose plus fixed intrinsics.

    rotation has columns (right, up, back); the camera looks along -back.
    fovy is the vertical field of view in degrees.
    """

    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    fovy: float = 61.33
    aspect: float = 1.0

    @property
    def right(self) -> np.ndarray:
        return self.rotation[:, 0]

    @property
    def up(self) -> np.ndarray:
        return self.rotation[:, 1]

    @property
    def forward(self) -> np.ndarray:
        return -self.rotation[:, 2]


class LightKind(Enum):
    """Spot lights get a randomized range and cone; directional ones do not."""

    SPOT = "spot"
    DIRECTIONAL = "directional"


@dataclass
class LightState:
    name: str
    kind: LightKind
    position: np.ndarray
    intensity: float = 1.0
    color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    temperature: float = 6500.0
    shadow_strength: float = 1.0
    shadow_bias: float = 0.02
    shadow_normal_bias: float = 0.2
    range: float | None = None
    spot_angle: float | None = None
    direction: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, -1.0]))


@dataclass
class CuePose:
    """Cue stick pose.

    The stick pivots at the cue ball. Its center sits *offset* meters along
    its own forward (+X) axis, so negative offsets pull the tip back from
    the ball. yaw turns about world up, tilt about the stick's horizontal
    axis; negative tilt raises the butt. Angles in degrees.
    """

    pivot: np.ndarray
    yaw: float = 0.0
    tilt: float = 0.0
    offset: float = -1.0

    @property
    def rotation(self) -> np.ndarray:
        return rot_z(np.radians(self.yaw)) @ rot_y(-np.radians(self.tilt))

    @property
    def stick_center(self) -> np.ndarray:
        return self.pivot + self.rotation @ np.array([self.offset, 0.0, 0.0])


# ---------------------------------------------------------------------------
# Post-processing capability map
# ---------------------------------------------------------------------------


@dataclass
class ColorAdjustments:
    exposure: float = 0.0  # EV stops
    contrast: float = 0.0  # percent
    hue_shift: float = 0.0  # degrees
    saturation: float = 0.0  # percent


@dataclass
class FilmGrain:
    intensity: float = 0.0
    grain_type: int = 0
    seed: int = 0


EFFECT_TYPES: dict[str, type] = {
    "color_adjustments": ColorAdjustments,
    "film_grain": FilmGrain,
}


class PostProcessStack:
    """Mapping from effect name to an optional settings record.

    Effects are created on first request and then reused, so callers never
    need to know whether an effect already exists.
    """

    def __init__(self):
        self._effects: dict[str, object] = {}

    def get(self, name: str):
        """Return the effect record, or None when it was never created."""
        return self._effects.get(name)

    def get_or_create(self, name: str):
        if name not in self._effects:
            if name not in EFFECT_TYPES:
                raise KeyError(f"Unknown post-processing effect: {name!r}")
            self._effects[name] = EFFECT_TYPES[name]()
        return self._effects[name]

    def names(self) -> list[str]:
        return list(self._effects)

    def __contains__(self, name: str) -> bool:
        return name in self._effects


# ---------------------------------------------------------------------------
# Frame state
# ---------------------------------------------------------------------------


@dataclass
class SceneState:
    """Everything needed to render and annotate one frame."""

    registry: EntityRegistry
    table: Table
    camera: CameraState = field(default_factory=CameraState)
    lights: list[LightState] = field(default_factory=list)
    post: PostProcessStack = field(default_factory=PostProcessStack)
    skybox_index: int | None = None
    cue: CuePose | None = None
    # Per-ball linear velocity (N, 3) from a motion impulse, None when idle
    ball_velocities: np.ndarray | None = None
    hide_entities: bool = False

    @property
    def balls(self) -> list[Ball]:
        return self.registry.balls

    @property
    def pockets(self) -> list[Pocket]:
        return self.registry.pockets


def random_ball_quat(rng: np.random.Generator) -> np.ndarray:
    """Independent uniform rotation about each axis, for visual variety."""
    roll, pitch, yaw = np.radians(rng.uniform(0.0, 360.0, size=3))
    return euler_to_quat(roll, pitch, yaw)


def describe_state(state: SceneState, seed: int | None = None) -> str:
    """Multi-line textual description of a frame.

    Example output:
        Frame (seed=42)  16 balls, 6 pockets, 3 lights
          camera at (+0.41, -0.63, 1.32) fovy 61.3
          [0] ball_0 at (+0.52, -0.10)
          ...
    """
    header = "Frame" if seed is None else f"Frame (seed={seed})"
    lines = [
        f"{header}  {len(state.balls)} balls, {len(state.pockets)} pockets, "
        f"{len(state.lights)} lights"
        + ("  [background]" if state.hide_entities else "")
    ]
    cx, cy, cz = state.camera.position
    lines.append(f"  camera at ({cx:+.2f}, {cy:+.2f}, {cz:.2f}) fovy {state.camera.fovy:.1f}")
    t = state.table
    lines.append(
        f"  table texture={t.texture_index} roughness={t.roughness:.2f} "
        f"normal={t.normal_intensity:.2f}  skybox={state.skybox_index}"
    )
    for light in state.lights:
        lines.append(
            f"  light {light.name}: {light.intensity:.2f} @ {light.temperature:.0f}K"
        )
    if state.cue is not None:
        lines.append(
            f"  cue yaw {state.cue.yaw:+.0f}° tilt {state.cue.tilt:+.0f}° "
            f"offset {state.cue.offset:+.2f}"
        )
    for ball in state.balls:
        x, y, _ = ball.position
        lines.append(f"  [{ball.index}] {ball.name} at ({x:+.2f}, {y:+.2f})")
    return "\n".join(lines)
