"""MuJoCo backend: world compilation, discovery, posing and rendering.

Compilation and posing need no GL context. Rendering tests skip when the
offscreen context cannot be created (set MUJOCO_GL=egl or osmesa on
headless machines).
"""

import mujoco
import numpy as np
import pytest

from config import Config
from pool_scene import table
from pool_scene.dataset import DatasetGenerator
from pool_scene.entities import LightKind
from pool_scene.projection import project_point
from pool_scene.world import PoolWorld, build_world_xml


@pytest.fixture(scope="module")
def cfg():
    return Config.for_smoketest().validate()


@pytest.fixture(scope="module")
def world(cfg):
    w = PoolWorld.from_config(cfg)
    yield w
    w.close()


class TestTableGeometry:
    def test_prims(self):
        prims = table.generate(table.Params())
        assert len(prims) == 9
        assert prims[0].name == "table_felt"
        for p in prims:
            assert isinstance(p.geom_type, table.GeomType)
            assert all(0 <= c <= 1 for c in p.rgba)

    def test_felt_top_at_surface(self):
        params = table.Params(surface_z=0.776)
        felt = table.generate(params)[0]
        assert felt.pos[2] + felt.size[2] == pytest.approx(0.776)

    def test_pockets(self):
        pockets = table.pocket_positions(2.54, 1.27, 0.805)
        assert len(pockets) == 6
        assert (-1.27, -0.635, 0.805) in pockets
        assert (0.0, 0.635, 0.805) in pockets


class TestCompile:
    def test_xml_compiles(self, cfg):
        model = mujoco.MjModel.from_xml_string(build_world_xml(cfg))
        assert model.nlight == 3
        assert model.ncam == 1

    def test_discovery_order(self, world):
        names = [name for name, _ in world.enumerate_children()]
        assert names[0] == "table"
        assert names[1:5] == ["ball_0", "ball_1", "ball_2", "ball_3"]
        assert names[5:11] == [f"pocket_{i}" for i in range(6)]
        assert names[-1] == "cue"

    def test_registry_from_world(self, world, cfg):
        gen = DatasetGenerator(cfg, world)
        assert len(gen.registry.balls) == 4
        assert len(gen.registry.pockets) == 6
        assert gen.registry.pocket_class_id == 4

    def test_lights(self, world):
        kinds = {name: kind for name, kind, _ in world.enumerate_lights()}
        assert kinds == {
            "spot_0": LightKind.SPOT,
            "spot_1": LightKind.SPOT,
            "sun": LightKind.DIRECTIONAL,
        }

    def test_asset_counts(self, world, cfg):
        assert world.table_texture_count == cfg.render.table_textures
        assert world.skybox_count == cfg.render.procedural_skyboxes


class TestApply:
    @pytest.fixture(scope="class")
    def posed(self, world, cfg):
        gen = DatasetGenerator(cfg, world)
        gen.randomizer.randomize(gen.state, np.random.default_rng(3))
        world.apply(gen.state)
        return gen.state

    def test_balls_moved(self, world, posed):
        for ball in posed.balls:
            body_id = mujoco.mj_name2id(world.model, mujoco.mjtObj.mjOBJ_BODY, ball.name)
            np.testing.assert_allclose(world.data.xpos[body_id], ball.position, atol=1e-9)

    def test_camera_matches_projection(self, world, posed):
        """MuJoCo's camera frame equals the one the labels are projected with."""
        cam_id = world.camera_id
        np.testing.assert_allclose(world.data.cam_xpos[cam_id], posed.camera.position, atol=1e-9)
        xmat = world.data.cam_xmat[cam_id].reshape(3, 3)
        np.testing.assert_allclose(xmat, posed.camera.rotation, atol=1e-6)
        assert world.model.cam_fovy[cam_id] == pytest.approx(61.33)

        # A point straight ahead projects to the image center
        ahead = posed.camera.position + 2.0 * posed.camera.forward
        vx, vy, _ = project_point(posed.camera, ahead)
        assert (vx, vy) == pytest.approx((0.5, 0.5))

    def test_felt_material(self, world, posed):
        mat_id = world.felt_material_ids[posed.table.texture_index]
        assert world.model.geom_matid[world.felt_geom_id] == mat_id
        assert world.model.mat_shininess[mat_id] == pytest.approx(1.0 - posed.table.roughness)

    def test_cue_at_cue_ball(self, world, posed):
        np.testing.assert_allclose(
            world.data.xpos[world.cue_body_id], posed.registry.cue_ball.position, atol=1e-9
        )
        np.testing.assert_allclose(
            world.data.geom_xpos[world.cue_geom_id], posed.cue.stick_center, atol=1e-6
        )

    def test_lights_written(self, world, posed):
        for light in posed.lights:
            light_id = mujoco.mj_name2id(world.model, mujoco.mjtObj.mjOBJ_LIGHT, light.name)
            np.testing.assert_allclose(world.model.light_dir[light_id], light.direction, atol=1e-6)
            if light.kind == LightKind.SPOT:
                assert world.model.light_cutoff[light_id] == pytest.approx(light.spot_angle / 2)

    def test_visibility_toggle(self, world):
        world.set_entities_visible(False)
        assert world._scene_option.geomgroup[2] == 0
        world.set_entities_visible(True)
        assert world._scene_option.geomgroup[2] == 1

    def test_reset_dynamics(self, world):
        world.data.qvel[:] = 1.0
        world.reset_dynamics()
        assert np.all(world.data.qvel == 0.0)


class TestRender:
    @pytest.fixture(scope="class")
    def frame(self, world, cfg):
        gen = DatasetGenerator(cfg, world)
        gen.randomizer.randomize(gen.state, np.random.default_rng(0))
        world.apply(gen.state)
        try:
            pixels = world.render(gen.state)
        except Exception as e:
            pytest.skip(f"No offscreen GL context: {e}")
        return gen, pixels

    def test_shape(self, frame, cfg):
        _, pixels = frame
        assert pixels.shape == (cfg.render.image_height, cfg.render.image_width, 3)
        assert pixels.dtype == np.uint8

    def test_not_blank(self, frame):
        _, pixels = frame
        assert pixels.std() > 0

    def test_motion_blur_restores_positions(self, frame, world):
        gen, _ = frame
        before = world.data.qpos.copy()
        gen.state.ball_velocities = np.tile([1.0, 0.0, 0.0], (len(gen.state.balls), 1))
        pixels = world.render(gen.state)
        gen.state.ball_velocities = None
        world.reset_dynamics()
        assert pixels.shape[2] == 3
        np.testing.assert_allclose(world.data.qpos, before)
