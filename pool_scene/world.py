"""MuJoCo scene backend.

Builds an MJCF pool room from the config, compiles it, and implements the
SceneBackend protocol on top of the compiled model:

    build_world_xml(cfg) -> MJCF string
    PoolWorld.from_config(cfg) -> backend

Layout of the generated world (all top-level bodies, discovery order):

    table        felt bed, rails, legs (geom group 2)
    ball_0..N-1  free-joint spheres (geom group 2), ball_0 is the cue ball
    pocket_0..5  dark discs at the pocket mouths (geom group 2)
    cue          capsule stick, no collisions
    lights       spot_0, spot_1, sun
    camera       "capture", posed every frame

Geom group 2 holds everything that disappears on background frames; the
renderer's scene option toggles the group instead of touching the model.

Runtime writes follow the slot pattern: the model is compiled once and
every frame only rewrites arrays (qpos, body_pos/quat, cam_*, light_*,
geom_matid, mat_*), then mj_forward.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import TYPE_CHECKING

import mujoco
import numpy as np

from pool_scene import table as table_geom
from pool_scene.entities import LightKind, SceneState
from pool_scene.geometry import mat_to_quat
from pool_scene.postprocess import apply_post_processing, composite_background, load_skyboxes

if TYPE_CHECKING:
    from config import Config

log = logging.getLogger(__name__)

CAMERA_NAME = "capture"
CUE_BODY = "cue"
CUE_GEOM = "cue_stick"
FELT_GEOM = "table_felt"
ENTITY_GROUP = 2

CUE_RADIUS = 0.0065
CUE_HALF_LENGTH = 0.72
POCKET_RADIUS = 0.06

# Scene lights: (name, position, target, cutoff degrees)
DEFAULT_LIGHTS = [
    ("spot_0", (-0.8, 0.0, 2.4), (-0.8, 0.0, 0.0), 35.0),
    ("spot_1", (0.8, 0.0, 2.4), (0.8, 0.0, 0.0), 35.0),
    ("sun", (0.0, -2.0, 4.0), (0.0, 0.0, 0.0), 80.0),
]

LIGHT_GAIN = 0.3  # scene intensity -> MuJoCo diffuse
AMBIENT_GAIN = 0.15  # unshadowed share of a light -> MuJoCo ambient
HEADLIGHT_AMBIENT = 0.15
FELT_SPECULAR = 0.25  # specular at normal intensity 1.0
BACKGROUND_DEPTH_FRACTION = 0.999


def _fmt(values) -> str:
    return " ".join(f"{float(v):g}" for v in values)


def _light_kind(name: str) -> LightKind:
    return LightKind.SPOT if "spot" in name else LightKind.DIRECTIONAL


# ---------------------------------------------------------------------------
# MJCF generation
# ---------------------------------------------------------------------------


def build_world_xml(cfg: Config) -> str:
    """MJCF for the pool room described by *cfg*."""
    t = cfg.table
    b = cfg.ball
    r = cfg.render
    surface_z = t.height - b.radius

    root = ET.Element("mujoco", model="pool_room")
    ET.SubElement(root, "compiler", angle="radian")
    ET.SubElement(root, "option", timestep="0.002", gravity="0 0 -9.81")
    ET.SubElement(root, "statistic", extent="5", center=_fmt((0, 0, t.height)))

    visual = ET.SubElement(root, "visual")
    ET.SubElement(
        visual,
        "global",
        offwidth=str(max(640, r.image_width)),
        offheight=str(max(480, r.image_height)),
    )
    ambient = HEADLIGHT_AMBIENT * cfg.lighting.ambient_intensity
    ET.SubElement(
        visual,
        "headlight",
        ambient=_fmt((ambient,) * 3),
        diffuse="0.05 0.05 0.05",
        specular="0 0 0",
    )
    ET.SubElement(visual, "map", znear="0.002", zfar="10")
    ET.SubElement(visual, "quality", shadowsize="2048")

    _add_assets(root, cfg)

    worldbody = ET.SubElement(root, "worldbody")
    ET.SubElement(
        worldbody,
        "geom",
        name="floor",
        type="plane",
        size="6 6 0.1",
        material="floor",
    )

    table_body = ET.SubElement(worldbody, "body", name="table", pos="0 0 0")
    params = table_geom.Params(length=t.length, width=t.width, surface_z=surface_z)
    for prim in table_geom.generate(params):
        attrs = dict(
            name=prim.name,
            type=table_geom.GEOM_TYPE_NAMES[prim.geom_type],
            size=_fmt(prim.size),
            pos=_fmt(prim.pos),
            group=str(ENTITY_GROUP),
        )
        if prim.name == FELT_GEOM:
            attrs["material"] = "felt_0"
        else:
            attrs["rgba"] = _fmt(prim.rgba)
        ET.SubElement(table_body, "geom", **attrs)

    # Balls start in a row along X so the compiled model has no overlaps
    spacing = 2.5 * b.radius
    for i in range(b.count):
        x = (i - (b.count - 1) / 2) * spacing
        body = ET.SubElement(
            worldbody, "body", name=f"ball_{i}", pos=_fmt((x, 0.0, t.height))
        )
        ET.SubElement(body, "freejoint", name=f"ball_{i}_joint")
        ET.SubElement(
            body,
            "geom",
            name=f"ball_{i}",
            type="sphere",
            size=_fmt((b.radius,)),
            mass=f"{b.mass:g}",
            rgba=_fmt(table_geom.ball_color(i)),
            group=str(ENTITY_GROUP),
        )

    for i, pos in enumerate(table_geom.pocket_positions(t.length, t.width, t.height)):
        body = ET.SubElement(worldbody, "body", name=f"pocket_{i}", pos=_fmt(pos))
        # Flat disc on the felt plane
        ET.SubElement(
            body,
            "geom",
            name=f"pocket_{i}",
            type="cylinder",
            size=_fmt((POCKET_RADIUS, 0.001)),
            pos=_fmt((0.0, 0.0, -b.radius + 0.001)),
            rgba=_fmt(table_geom.POCKET_BLACK),
            contype="0",
            conaffinity="0",
            group=str(ENTITY_GROUP),
        )

    cue = ET.SubElement(worldbody, "body", name=CUE_BODY, pos=_fmt((0, 0, t.height)))
    # Capsule axis (local Z) turned onto the body's +X
    ET.SubElement(
        cue,
        "geom",
        name=CUE_GEOM,
        type="capsule",
        size=_fmt((CUE_RADIUS, CUE_HALF_LENGTH)),
        pos=_fmt((-1.0, 0.0, 0.0)),
        euler=_fmt((0.0, np.pi / 2, 0.0)),
        rgba=_fmt(table_geom.CUE_MAPLE),
        contype="0",
        conaffinity="0",
    )

    for name, pos, target, cutoff in DEFAULT_LIGHTS:
        direction = np.asarray(target, dtype=float) - np.asarray(pos, dtype=float)
        direction /= np.linalg.norm(direction)
        ET.SubElement(
            worldbody,
            "light",
            name=name,
            pos=_fmt(pos),
            dir=_fmt(direction),
            cutoff=f"{cutoff:g}",
            diffuse="0.5 0.5 0.5",
            castshadow="true",
        )

    ET.SubElement(
        worldbody,
        "camera",
        name=CAMERA_NAME,
        pos=_fmt((0.0, -2.0, 1.4)),
        fovy=f"{cfg.camera.fovy:g}",
    )

    return ET.tostring(root, encoding="unicode")


def _add_assets(root: ET.Element, cfg: Config) -> None:
    asset = ET.SubElement(root, "asset")
    ET.SubElement(
        asset,
        "texture",
        name="floor",
        type="2d",
        builtin="checker",
        rgb1="0.35 0.33 0.30",
        rgb2="0.28 0.26 0.24",
        width="512",
        height="512",
    )
    ET.SubElement(asset, "material", name="floor", texture="floor", texrepeat="12 12")

    count = max(1, cfg.render.table_textures)
    colors = table_geom.FELT_COLORS
    for i in range(count):
        base = np.asarray(colors[i % len(colors)])
        # Repeated colors get darker so every felt is distinct
        base = base * (1.0 - 0.12 * (i // len(colors)))
        ET.SubElement(
            asset,
            "texture",
            name=f"felt_{i}",
            type="2d",
            builtin="flat",
            rgb1=_fmt(base),
            rgb2=_fmt(base * 0.85),
            mark="random",
            markrgb=_fmt(np.clip(base * 1.15, 0.0, 1.0)),
            random="0.2",
            width="256",
            height="256",
        )
        ET.SubElement(
            asset,
            "material",
            name=f"felt_{i}",
            texture=f"felt_{i}",
            texrepeat="8 4",
            specular=f"{FELT_SPECULAR:g}",
            shininess="0.5",
        )


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class PoolWorld:
    """SceneBackend over a compiled MuJoCo pool room.

    The offscreen renderer is created on first render, so discovery and
    scene posing work without a GL context.
    """

    def __init__(self, model: mujoco.MjModel, data: mujoco.MjData, cfg: Config):
        self.model = model
        self.data = data
        self.cfg = cfg
        self.width = cfg.render.image_width
        self.height = cfg.render.image_height
        self.blur_substeps = cfg.render.blur_substeps
        self._renderer: mujoco.Renderer | None = None
        self._scene_option = mujoco.MjvOption()

        self.camera_id = self._require(mujoco.mjtObj.mjOBJ_CAMERA, CAMERA_NAME)
        self.cue_body_id = self._require(mujoco.mjtObj.mjOBJ_BODY, CUE_BODY)
        self.cue_geom_id = self._require(mujoco.mjtObj.mjOBJ_GEOM, CUE_GEOM)
        self.felt_geom_id = self._require(mujoco.mjtObj.mjOBJ_GEOM, FELT_GEOM)
        self.felt_material_ids = self._discover_felts()
        self._ball_slots = self._discover_balls()
        self._light_ids = {
            mujoco.mj_id2name(model, mujoco.mjtObj.mjOBJ_LIGHT, i): i
            for i in range(model.nlight)
        }

        self.skyboxes = load_skyboxes(
            cfg.render.skybox_dir,
            self.width,
            self.height,
            procedural_count=cfg.render.procedural_skyboxes,
        )
        mujoco.mj_forward(model, data)

    @classmethod
    def from_config(cls, cfg: Config) -> PoolWorld:
        xml = build_world_xml(cfg)
        model = mujoco.MjModel.from_xml_string(xml)
        data = mujoco.MjData(model)
        log.info(
            "Compiled pool world: %d bodies, %d geoms, %d lights",
            model.nbody,
            model.ngeom,
            model.nlight,
        )
        return cls(model, data, cfg)

    # -------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------

    def _require(self, obj_type, name: str) -> int:
        obj_id = mujoco.mj_name2id(self.model, obj_type, name)
        if obj_id < 0:
            raise ValueError(f"Pool world is missing {name!r}")
        return obj_id

    def _discover_felts(self) -> list[int]:
        ids = []
        i = 0
        while True:
            mat_id = mujoco.mj_name2id(self.model, mujoco.mjtObj.mjOBJ_MATERIAL, f"felt_{i}")
            if mat_id < 0:
                break
            ids.append(mat_id)
            i += 1
        return ids

    def _discover_balls(self) -> dict[str, tuple[int, int]]:
        """Ball body name -> (qpos address, dof address) of its free joint."""
        slots = {}
        for body_id in range(1, self.model.nbody):
            name = mujoco.mj_id2name(self.model, mujoco.mjtObj.mjOBJ_BODY, body_id)
            if not name or not name.startswith("ball_"):
                continue
            joint_id = self.model.body_jntadr[body_id]
            slots[name] = (
                int(self.model.jnt_qposadr[joint_id]),
                int(self.model.jnt_dofadr[joint_id]),
            )
        return slots

    @property
    def table_texture_count(self) -> int:
        return len(self.felt_material_ids)

    @property
    def skybox_count(self) -> int:
        return len(self.skyboxes)

    def enumerate_children(self) -> list[tuple[str, np.ndarray]]:
        """Top-level bodies in body-id order."""
        children = []
        for body_id in range(1, self.model.nbody):
            if self.model.body_parentid[body_id] != 0:
                continue
            name = mujoco.mj_id2name(self.model, mujoco.mjtObj.mjOBJ_BODY, body_id)
            children.append((name or "", self.data.xpos[body_id].copy()))
        return children

    def enumerate_lights(self) -> list[tuple[str, LightKind, np.ndarray]]:
        return [
            (name, _light_kind(name), self.model.light_pos[light_id].copy())
            for name, light_id in self._light_ids.items()
        ]

    # -------------------------------------------------------------------
    # Scene posing
    # -------------------------------------------------------------------

    def set_entities_visible(self, visible: bool) -> None:
        self._scene_option.geomgroup[ENTITY_GROUP] = 1 if visible else 0

    def apply(self, state: SceneState) -> None:
        """Write the frame state into the model, then run forward kinematics."""
        model, data = self.model, self.data

        tbl = state.table
        if tbl.texture_index is not None and self.felt_material_ids:
            mat_id = self.felt_material_ids[tbl.texture_index % len(self.felt_material_ids)]
            model.geom_matid[self.felt_geom_id] = mat_id
            # Smoothness drives the highlight size, bump strength its brightness
            model.mat_shininess[mat_id] = 1.0 - tbl.roughness
            model.mat_specular[mat_id] = FELT_SPECULAR * tbl.normal_intensity

        for ball in state.balls:
            slot = self._ball_slots.get(ball.name)
            if slot is None:
                continue
            qadr, _ = slot
            data.qpos[qadr : qadr + 3] = ball.position
            data.qpos[qadr + 3 : qadr + 7] = ball.quat
        data.qvel[:] = 0.0

        if state.cue is not None:
            model.body_pos[self.cue_body_id] = state.cue.pivot
            model.body_quat[self.cue_body_id] = mat_to_quat(state.cue.rotation)
            model.geom_pos[self.cue_geom_id] = [state.cue.offset, 0.0, 0.0]

        cam = state.camera
        model.cam_pos[self.camera_id] = cam.position
        model.cam_quat[self.camera_id] = mat_to_quat(cam.rotation)
        model.cam_fovy[self.camera_id] = cam.fovy

        for light in state.lights:
            light_id = self._light_ids.get(light.name)
            if light_id is None:
                continue
            color = np.asarray(light.color)
            model.light_dir[light_id] = light.direction
            model.light_diffuse[light_id] = np.clip(color * light.intensity * LIGHT_GAIN, 0.0, 1.0)
            model.light_ambient[light_id] = color * (1.0 - light.shadow_strength) * AMBIENT_GAIN
            model.light_castshadow[light_id] = 1
            if light.kind == LightKind.SPOT and light.spot_angle is not None:
                model.light_cutoff[light_id] = light.spot_angle / 2.0
            if light.range is not None:
                # Falls to roughly half brightness at the range limit
                model.light_attenuation[light_id] = [1.0, 0.0, 1.0 / light.range**2]

        mujoco.mj_forward(model, data)

    def reset_dynamics(self) -> None:
        self.data.qvel[:] = 0.0
        self.data.qacc[:] = 0.0
        mujoco.mj_forward(self.model, self.data)

    # -------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------

    def _get_renderer(self) -> mujoco.Renderer:
        if self._renderer is None:
            self._renderer = mujoco.Renderer(self.model, height=self.height, width=self.width)
        return self._renderer

    def _render_rgb(self) -> np.ndarray:
        renderer = self._get_renderer()
        renderer.update_scene(self.data, self.camera_id, scene_option=self._scene_option)
        return renderer.render().copy()

    def _background_mask(self) -> np.ndarray:
        renderer = self._get_renderer()
        renderer.update_scene(self.data, self.camera_id, scene_option=self._scene_option)
        renderer.enable_depth_rendering()
        try:
            depth = renderer.render().copy()
        finally:
            renderer.disable_depth_rendering()
        far = self.model.vis.map.zfar * self.model.stat.extent
        return depth >= far * BACKGROUND_DEPTH_FRACTION

    def _render_motion_blur(self, velocities: np.ndarray) -> np.ndarray:
        """Average of frames over a few physics steps, then restore poses."""
        qpos = self.data.qpos.copy()
        for ball_index, (_, dadr) in enumerate(self._ball_slots.values()):
            if ball_index < len(velocities):
                self.data.qvel[dadr : dadr + 3] = velocities[ball_index]

        acc = np.zeros((self.height, self.width, 3), dtype=np.float64)
        steps = max(1, self.blur_substeps)
        for _ in range(steps):
            mujoco.mj_step(self.model, self.data)
            acc += self._render_rgb()

        self.data.qpos[:] = qpos
        mujoco.mj_forward(self.model, self.data)
        return (acc / steps).round().astype(np.uint8)

    def render(self, state: SceneState) -> np.ndarray:
        if state.ball_velocities is not None:
            pixels = self._render_motion_blur(state.ball_velocities)
        else:
            pixels = self._render_rgb()

        if state.skybox_index is not None and self.skyboxes:
            background = self.skyboxes[state.skybox_index % len(self.skyboxes)]
            pixels = composite_background(pixels, background, self._background_mask())

        return apply_post_processing(pixels, state.post)

    def close(self) -> None:
        if self._renderer is not None:
            self._renderer.close()
            self._renderer = None
