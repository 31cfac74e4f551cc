"""Annotation projector: 3D entity positions -> normalized YOLO boxes.

Viewport coordinates follow the usual camera convention: (0, 0) is the
bottom-left of the image, (1, 1) the top-right, depth is the distance
along the view direction. Labels flip y (1 - vy) to match image rows.

Ball box size is estimated from four points offset by +/- radius along the
camera right and up axes. This is cheaper than projecting the true sphere
silhouette and slightly underestimates boxes near the image border, which
is accepted.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from pool_scene.entities import CameraState, SceneState

POCKET_BOX_SIZE = 0.05


@dataclass(frozen=True)
class Label:
    """One YOLO detection line, all coordinates normalized to [0, 1]."""

    class_id: int
    x_center: float
    y_center: float
    width: float
    height: float

    def to_line(self) -> str:
        return (
            f"{self.class_id} {self.x_center:.6f} {self.y_center:.6f} "
            f"{self.width:.6f} {self.height:.6f}"
        )

    @classmethod
    def from_line(cls, line: str) -> Label:
        cls_id, x, y, w, h = line.split()
        return cls(int(cls_id), float(x), float(y), float(w), float(h))


def project_point(camera: CameraState, point: np.ndarray) -> tuple[float, float, float]:
    """World point -> (vx, vy, depth) in viewport space.

    depth <= 0 means the point is at or behind the camera; vx/vy are
    meaningless in that case and returned as nan.
    """
    local = camera.rotation.T @ (np.asarray(point, dtype=float) - camera.position)
    depth = -local[2]
    if depth <= 0.0:
        return (float("nan"), float("nan"), float(depth))

    tan_half = np.tan(np.radians(camera.fovy) / 2.0)
    ndc_x = local[0] / (depth * tan_half * camera.aspect)
    ndc_y = local[1] / (depth * tan_half)
    return (float((ndc_x + 1.0) / 2.0), float((ndc_y + 1.0) / 2.0), float(depth))


def is_visible(vx: float, vy: float, depth: float) -> bool:
    """In front of the camera and inside the viewport, bounds inclusive."""
    return depth > 0.0 and 0.0 <= vx <= 1.0 and 0.0 <= vy <= 1.0


def project_sphere(
    camera: CameraState, center: np.ndarray, radius: float
) -> tuple[float, float, float, float] | None:
    """(x_center, y_center, width, height) of a sphere, or None if not visible."""
    vx, vy, depth = project_point(camera, center)
    if not is_visible(vx, vy, depth):
        return None

    right = camera.right * radius
    up = camera.up * radius
    left_x = project_point(camera, center - right)[0]
    right_x = project_point(camera, center + right)[0]
    up_y = project_point(camera, center + up)[1]
    down_y = project_point(camera, center - up)[1]

    width = abs(right_x - left_x)
    height = abs(up_y - down_y)
    return (vx, 1.0 - vy, width, height)


def compute_labels(state: SceneState) -> list[Label]:
    """Labels for every visible ball and pocket. Empty on background frames."""
    if state.hide_entities:
        return []

    labels: list[Label] = []
    camera = state.camera
    for ball in state.balls:
        box = project_sphere(camera, ball.position, ball.radius)
        if box is None:
            continue
        labels.append(Label(ball.class_id, *box))

    pocket_class = state.registry.pocket_class_id
    for pocket in state.pockets:
        vx, vy, depth = project_point(camera, np.asarray(pocket.position))
        if not is_visible(vx, vy, depth):
            continue
        labels.append(
            Label(pocket_class, vx, 1.0 - vy, POCKET_BOX_SIZE, POCKET_BOX_SIZE)
        )
    return labels
