"""Annotation projector: viewport math, visibility filtering, label lines."""

import numpy as np
import pytest

from pool_scene.entities import CameraState, EntityRegistry, SceneState, Table
from pool_scene.poses import camera_rotation
from pool_scene.projection import (
    POCKET_BOX_SIZE,
    Label,
    compute_labels,
    is_visible,
    project_point,
    project_sphere,
)
from pool_scene.table import pocket_positions

RADIUS = 0.028575
TARGET = np.array([0.0, 0.0, 0.805])


@pytest.fixture
def camera():
    position = np.array([0.0, -2.0, 1.805])
    return CameraState(position=position, rotation=camera_rotation(position, TARGET, 0.0))


def _state(camera, ball_positions, with_pockets=True):
    children = [(f"ball_{i}", np.asarray(p, dtype=float)) for i, p in enumerate(ball_positions)]
    if with_pockets:
        children += [
            (f"pocket_{i}", np.asarray(p)) for i, p in enumerate(pocket_positions(2.54, 1.27, 0.805))
        ]
    registry = EntityRegistry.from_children(children, RADIUS)
    return SceneState(registry=registry, table=Table(2.54, 1.27, 0.805), camera=camera)


class TestProjectPoint:
    def test_look_at_point_is_center(self, camera):
        vx, vy, depth = project_point(camera, TARGET)
        assert vx == pytest.approx(0.5)
        assert vy == pytest.approx(0.5)
        assert depth == pytest.approx(np.linalg.norm(TARGET - camera.position))

    def test_wide_capture_narrows_x(self):
        # 2:1 capture at the fixed vertical FOV, as MuJoCo renders it
        wide = CameraState(position=np.zeros(3), rotation=np.eye(3), fovy=61.33, aspect=2.0)
        vx, vy, _ = project_point(wide, np.array([0.3, 0.0, -2.0]))
        assert vx == pytest.approx(0.5632, abs=1e-3)
        assert vy == pytest.approx(0.5)

    def test_right_is_positive_x(self, camera):
        vx, _, _ = project_point(camera, TARGET + 0.1 * camera.right)
        assert vx > 0.5

    def test_up_is_positive_viewport_y(self, camera):
        _, vy, _ = project_point(camera, TARGET + 0.1 * camera.up)
        assert vy > 0.5

    def test_behind_camera(self, camera):
        vx, vy, depth = project_point(camera, camera.position - camera.forward)
        assert depth < 0
        assert np.isnan(vx) and np.isnan(vy)
        assert not is_visible(vx, vy, depth)

    def test_zero_depth_not_visible(self, camera):
        vx, vy, depth = project_point(camera, camera.position + camera.right)
        assert depth == pytest.approx(0.0)
        assert not is_visible(vx, vy, depth)

    def test_bounds_inclusive(self):
        assert is_visible(0.0, 1.0, 1.0)
        assert is_visible(1.0, 0.0, 1.0)
        assert not is_visible(1.0001, 0.5, 1.0)
        assert not is_visible(0.5, -0.0001, 1.0)


class TestProjectSphere:
    def test_centered_ball(self, camera):
        x, y, w, h = project_sphere(camera, TARGET, RADIUS)
        assert (x, y) == pytest.approx((0.5, 0.5))
        assert w > 0
        assert w == pytest.approx(h)

    def test_closer_ball_is_larger(self, camera):
        near = project_sphere(camera, TARGET - 0.5 * camera.forward, RADIUS)
        far = project_sphere(camera, TARGET + 0.5 * camera.forward, RADIUS)
        assert near[2] > far[2]

    def test_label_y_flipped(self, camera):
        _, y, _, _ = project_sphere(camera, TARGET + 0.1 * camera.up, RADIUS)
        assert y < 0.5

    def test_outside_viewport(self, camera):
        assert project_sphere(camera, TARGET + 10.0 * camera.right, RADIUS) is None


class TestComputeLabels:
    def test_ball_at_center(self, camera):
        state = _state(camera, [TARGET], with_pockets=False)
        labels = compute_labels(state)
        assert len(labels) == 1
        assert labels[0].class_id == 0
        assert labels[0].x_center == pytest.approx(0.5)
        assert labels[0].y_center == pytest.approx(0.5)

    def test_hidden_frame_has_no_labels(self, camera):
        state = _state(camera, [TARGET])
        state.hide_entities = True
        assert compute_labels(state) == []

    def test_invisible_ball_skipped(self, camera):
        behind = camera.position - camera.forward
        state = _state(camera, [TARGET, behind], with_pockets=False)
        assert [lb.class_id for lb in compute_labels(state)] == [0]

    def test_pockets_share_class(self, camera):
        state = _state(camera, [TARGET, TARGET + [0.3, 0.0, 0.0]])
        pockets = [lb for lb in compute_labels(state) if lb.class_id == 2]
        assert pockets, "camera should see some pockets"
        for lb in pockets:
            assert lb.width == POCKET_BOX_SIZE
            assert lb.height == POCKET_BOX_SIZE

    def test_balls_before_pockets(self, camera):
        state = _state(camera, [TARGET])
        classes = [lb.class_id for lb in compute_labels(state)]
        assert classes[0] == 0
        assert all(c == 1 for c in classes[1:])

    def test_all_values_normalized(self, camera):
        state = _state(camera, [TARGET, TARGET + [0.5, 0.2, 0.0], TARGET + [-0.8, -0.3, 0.0]])
        for lb in compute_labels(state):
            for v in (lb.x_center, lb.y_center, lb.width, lb.height):
                assert 0.0 <= v <= 1.0


class TestLabelLine:
    def test_format(self):
        line = Label(3, 0.5, 0.25, 0.031, 0.0125).to_line()
        assert line == "3 0.500000 0.250000 0.031000 0.012500"

    def test_parse(self):
        label = Label.from_line("16 0.1 0.2 0.05 0.05")
        assert label == Label(16, 0.1, 0.2, 0.05, 0.05)
