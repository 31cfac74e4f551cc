"""Pose samplers: camera, cue stick and light aim.

Each sampler is a pure function of (rng, ranges, current anchors) -> pose.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from pool_scene.entities import CameraState, CuePose
from pool_scene.geometry import look_at, rot_x

if TYPE_CHECKING:
    from config import CameraConfig, CueConfig


def camera_rotation(
    position: np.ndarray, target: np.ndarray, pitch_down: float = 0.0
) -> np.ndarray:
    """Look-at rotation toward target, then pitch about the camera's right axis.

    pitch_down is in degrees; positive values tilt the view downward.
    """
    return look_at(position, target) @ rot_x(-np.radians(pitch_down))


def sample_camera_pose(
    rng: np.random.Generator,
    ranges: CameraConfig,
    table_center: np.ndarray,
) -> CameraState:
    """Player-eye viewpoint somewhere around the table.

    Height, polar angle in [-180, 180) and radial distance from the table
    center are drawn independently. Field of view and aspect are fixed.
    """
    player_height = rng.uniform(ranges.min_player_height, ranges.max_player_height)
    angle = np.radians(rng.uniform(-180.0, 180.0))
    distance = rng.uniform(ranges.min_distance, ranges.max_distance)

    position = np.array(
        [np.cos(angle) * distance, np.sin(angle) * distance, player_height]
    )
    pitch = rng.uniform(ranges.min_look_angle, ranges.max_look_angle)

    return CameraState(
        position=position,
        rotation=camera_rotation(position, table_center, pitch),
        fovy=ranges.fovy,
        aspect=ranges.aspect,
    )


def sample_cue_pose(
    rng: np.random.Generator,
    ranges: CueConfig,
    cue_ball_position: np.ndarray,
) -> CuePose:
    """Cue stick pivoting at the cue ball, pulled back and tilted up."""
    offset = rng.uniform(ranges.min_offset, ranges.max_offset)
    yaw = rng.uniform(ranges.min_yaw, ranges.max_yaw)
    tilt = rng.uniform(ranges.min_angle, ranges.max_angle)
    return CuePose(
        pivot=np.array(cue_ball_position, dtype=float),
        yaw=float(yaw),
        tilt=float(tilt),
        offset=float(offset),
    )


def sample_floor_target(rng: np.random.Generator, radius: float) -> np.ndarray:
    """Random point on the floor (z=0) within radius of the origin."""
    angle = np.radians(rng.uniform(0.0, 360.0))
    distance = rng.uniform(0.0, radius)
    return np.array([np.cos(angle) * distance, np.sin(angle) * distance, 0.0])


def aim_direction(origin: np.ndarray, target: np.ndarray) -> np.ndarray:
    """Unit vector from origin to target; straight down if they coincide."""
    d = np.asarray(target, dtype=float) - np.asarray(origin, dtype=float)
    norm = np.linalg.norm(d)
    if norm < 1e-9:
        return np.array([0.0, 0.0, -1.0])
    return d / norm
