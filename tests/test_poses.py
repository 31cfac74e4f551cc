"""Camera, cue and light pose samplers plus the rotation helpers they use."""

import numpy as np
import pytest

from config import CameraConfig, CueConfig
from pool_scene.geometry import look_at, mat_to_quat, quat_to_mat
from pool_scene.poses import (
    aim_direction,
    camera_rotation,
    sample_camera_pose,
    sample_cue_pose,
    sample_floor_target,
)

TABLE_CENTER = np.array([0.0, 0.0, 0.805])


def _is_rotation(m):
    return np.allclose(m @ m.T, np.eye(3), atol=1e-9) and np.isclose(np.linalg.det(m), 1.0)


class TestGeometry:
    def test_look_at_forward(self):
        eye = np.array([1.0, -2.0, 1.5])
        rot = look_at(eye, TABLE_CENTER)
        forward = -rot[:, 2]
        expected = (TABLE_CENTER - eye) / np.linalg.norm(TABLE_CENTER - eye)
        np.testing.assert_allclose(forward, expected, atol=1e-12)
        assert _is_rotation(rot)

    def test_look_at_straight_down(self):
        rot = look_at(np.array([0.0, 0.0, 2.0]), np.zeros(3))
        assert _is_rotation(rot)
        np.testing.assert_allclose(-rot[:, 2], [0.0, 0.0, -1.0], atol=1e-12)

    def test_look_at_same_point(self):
        with pytest.raises(ValueError):
            look_at(np.ones(3), np.ones(3))

    def test_quat_matrix_round_trip(self):
        rot = look_at(np.array([0.3, -1.1, 1.4]), TABLE_CENTER)
        np.testing.assert_allclose(quat_to_mat(mat_to_quat(rot)), rot, atol=1e-9)


class TestCameraPose:
    @pytest.fixture(params=range(20))
    def pose(self, request):
        return sample_camera_pose(np.random.default_rng(request.param), CameraConfig(), TABLE_CENTER)

    def test_height_in_range(self, pose):
        assert 1.0 <= pose.position[2] <= 1.6

    def test_radial_distance_in_range(self, pose):
        assert np.hypot(pose.position[0], pose.position[1]) <= 1.0 + 1e-12

    def test_intrinsics_fixed(self, pose):
        assert pose.fovy == 61.33
        assert pose.aspect == 1.0

    def test_rotation_proper(self, pose):
        assert _is_rotation(pose.rotation)

    def test_look_angle_bounded(self, pose):
        to_center = TABLE_CENTER - pose.position
        to_center /= np.linalg.norm(to_center)
        angle = np.degrees(np.arccos(np.clip(pose.forward @ to_center, -1.0, 1.0)))
        assert angle <= 15.0 + 1e-6

    def test_positive_pitch_looks_down(self):
        eye = np.array([0.0, -2.0, 1.2])
        level = camera_rotation(eye, eye + np.array([0.0, 1.0, 0.0]), 0.0)
        down = camera_rotation(eye, eye + np.array([0.0, 1.0, 0.0]), 10.0)
        assert -down[2, 2] < -level[2, 2]
        np.testing.assert_allclose(np.degrees(np.arcsin(down[2, 2])), 10.0, atol=1e-9)


class TestCuePose:
    @pytest.fixture(params=range(10))
    def cue(self, request):
        return sample_cue_pose(np.random.default_rng(request.param), CueConfig(), TABLE_CENTER)

    def test_pivot_at_cue_ball(self, cue):
        np.testing.assert_array_equal(cue.pivot, TABLE_CENTER)

    def test_ranges(self, cue):
        assert -1.25 <= cue.offset <= -0.75
        assert -60.0 <= cue.yaw <= 60.0
        assert -25.0 <= cue.tilt <= -5.0

    def test_butt_raised(self, cue):
        assert cue.stick_center[2] > cue.pivot[2]

    def test_stick_distance(self, cue):
        assert np.isclose(np.linalg.norm(cue.stick_center - cue.pivot), abs(cue.offset))


class TestLightAim:
    def test_floor_target_within_radius(self):
        rng = np.random.default_rng(0)
        for _ in range(50):
            target = sample_floor_target(rng, 5.0)
            assert target[2] == 0.0
            assert np.hypot(target[0], target[1]) <= 5.0

    def test_aim_direction_unit(self):
        d = aim_direction(np.array([0.0, 0.0, 3.0]), np.array([1.0, 1.0, 0.0]))
        assert np.isclose(np.linalg.norm(d), 1.0)
        assert d[2] < 0

    def test_aim_direction_degenerate(self):
        np.testing.assert_array_equal(aim_direction(np.ones(3), np.ones(3)), [0.0, 0.0, -1.0])
