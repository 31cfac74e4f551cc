"""Appearance samplers: table surface, skybox, lights, post-processing, impulses.

Each sampler mutates one part of a SceneState in place. A sampler whose
assets are missing (no textures, no skyboxes, no lights) leaves that part
of the state unchanged instead of failing the run.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

import numpy as np

from pool_scene.entities import (
    LightKind,
    LightState,
    PostProcessStack,
    Table,
)
from pool_scene.poses import aim_direction, sample_floor_target

if TYPE_CHECKING:
    from config import LightingConfig, MotionConfig, PostProcessConfig, TableConfig


def _clamp01(v: float) -> float:
    return max(0.0, min(1.0, v))


def kelvin_to_rgb(kelvin: float, clamp_range=(1000.0, 40000.0)) -> tuple[float, float, float]:
    """Approximate black-body color for a temperature, channels in [0, 1]."""
    t = min(max(kelvin, clamp_range[0]), clamp_range[1]) / 100.0

    r = 255.0 if t <= 66.0 else 329.698727446 * ((t - 60.0) ** -0.1332047592)

    if t <= 66.0:
        g = 99.4708025861 * math.log(max(1e-8, t)) - 161.1195681661
    else:
        g = 288.1221695283 * ((t - 60.0) ** -0.0755148492)

    if t >= 66.0:
        b = 255.0
    elif t <= 19.0:
        b = 0.0
    else:
        b = 138.5177312231 * math.log(max(1e-8, t - 10.0)) - 305.0447927307

    return (_clamp01(r / 255.0), _clamp01(g / 255.0), _clamp01(b / 255.0))


# ---------------------------------------------------------------------------
# Table + skybox
# ---------------------------------------------------------------------------


def randomize_table(
    rng: np.random.Generator,
    table: Table,
    ranges: TableConfig,
    texture_count: int,
) -> bool:
    """Pick a felt texture, roughness and normal-map strength.

    Returns False (and leaves the table untouched) when no textures exist.
    """
    if texture_count <= 0:
        return False
    table.texture_index = int(rng.integers(texture_count))
    table.roughness = float(rng.uniform(ranges.min_roughness, ranges.max_roughness))
    table.normal_intensity = float(
        rng.uniform(ranges.min_normal_intensity, ranges.max_normal_intensity)
    )
    return True


def sample_skybox(rng: np.random.Generator, skybox_count: int) -> int | None:
    """Uniform skybox index, or None when there is nothing to choose from."""
    if skybox_count <= 0:
        return None
    return int(rng.integers(skybox_count))


# ---------------------------------------------------------------------------
# Lighting
# ---------------------------------------------------------------------------


def randomize_light(
    rng: np.random.Generator, light: LightState, ranges: LightingConfig
) -> None:
    """Resample one light's intensity, shadows, color and aim."""
    light.intensity = float(rng.uniform(ranges.min_intensity, ranges.max_intensity))
    light.shadow_strength = float(
        rng.uniform(ranges.min_shadow_strength, ranges.max_shadow_strength)
    )
    light.shadow_bias = ranges.shadow_bias
    light.shadow_normal_bias = ranges.shadow_normal_bias

    light.temperature = float(
        rng.uniform(ranges.min_temperature, ranges.max_temperature)
    )
    light.color = kelvin_to_rgb(light.temperature)

    if light.kind == LightKind.SPOT:
        light.range = float(rng.uniform(ranges.min_spot_range, ranges.max_spot_range))
        light.spot_angle = float(
            rng.uniform(ranges.min_spot_angle, ranges.max_spot_angle)
        )

    target = sample_floor_target(rng, ranges.aim_radius)
    light.direction = aim_direction(light.position, target)


def randomize_lighting(
    rng: np.random.Generator, lights: list[LightState], ranges: LightingConfig
) -> bool:
    """Randomize every scene light. Returns False when there are none."""
    if not lights:
        return False
    for light in lights:
        randomize_light(rng, light, ranges)
    return True


# ---------------------------------------------------------------------------
# Post-processing
# ---------------------------------------------------------------------------


def randomize_post_processing(
    rng: np.random.Generator, post: PostProcessStack, ranges: PostProcessConfig
) -> None:
    """Resample color adjustments and film grain, creating them if absent."""
    color = post.get_or_create("color_adjustments")
    color.exposure = float(rng.uniform(ranges.min_exposure, ranges.max_exposure))
    color.contrast = float(rng.uniform(ranges.min_contrast, ranges.max_contrast))
    color.hue_shift = float(rng.uniform(ranges.min_hue_shift, ranges.max_hue_shift))
    color.saturation = float(
        rng.uniform(ranges.min_saturation, ranges.max_saturation)
    )

    grain = post.get_or_create("film_grain")
    grain.intensity = float(
        rng.uniform(ranges.min_grain_intensity, ranges.max_grain_intensity)
    )
    grain.grain_type = int(rng.integers(ranges.grain_types))
    # Grain noise is drawn by the backend; the seed keeps it reproducible
    grain.seed = int(rng.integers(2**31))


# ---------------------------------------------------------------------------
# Motion impulse
# ---------------------------------------------------------------------------


def sample_motion_impulse(
    rng: np.random.Generator,
    n_balls: int,
    ranges: MotionConfig,
    mass: float,
) -> np.ndarray:
    """Per-ball horizontal velocity (N, 3) from a random impulse.

    Impulse magnitude is uniform in [min_force, max_force] (N*s) along a
    uniform horizontal direction; velocity = impulse / mass.
    """
    velocities = np.zeros((n_balls, 3))
    for i in range(n_balls):
        force = rng.uniform(ranges.min_force, ranges.max_force)
        angle = np.radians(rng.uniform(0.0, 360.0))
        velocities[i, 0] = np.cos(angle) * force / mass
        velocities[i, 1] = np.sin(angle) * force / mass
    return velocities
