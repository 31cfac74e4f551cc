"""
Centralized configuration for dataset generation.

Every range the randomizer draws from lives here, grouped by the part of
the scene it affects. Converts to a flat dict for logging and to/from YAML
so a run can be reproduced from its saved config.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Literal

import yaml

from pool_scene.errors import ConfigError


@dataclass
class DatasetConfig:
    """Dataset size, splits and output layout."""

    output_dir: str = "SyntheticPoolData"
    total_images: int = 20
    train_ratio: float = 0.7
    valid_ratio: float = 0.2  # test gets the remainder
    split_threshold: int = 100  # Below this, everything goes to "train"
    background_frame_period: int = 30  # Every Nth frame hides balls + table
    seed: int = 0
    jpeg_quality: int = 90
    resume: bool = False  # Keep existing files, skip finished indices
    log_every: int = 50  # Progress line every N frames


@dataclass
class TableConfig:
    """Table geometry and surface appearance."""

    width: float = 1.27  # Standard pool table width (Y axis)
    length: float = 2.54  # Standard pool table length (X axis)
    height: float = 0.805  # Ball-center height (table top + ball radius)
    min_roughness: float = 0.3
    max_roughness: float = 0.7
    min_normal_intensity: float = 0.8
    max_normal_intensity: float = 1.2


@dataclass
class BallConfig:
    """Ball placement."""

    radius: float = 0.028575  # Standard pool ball radius in meters
    count: int = 16  # Balls built into the MuJoCo world (ball_0 = cue ball)
    mass: float = 0.17  # kg
    max_attempts: int = 100
    on_exhaustion: Literal["keep", "raise"] = "keep"


@dataclass
class CueConfig:
    """Cue stick pose around the cue ball."""

    min_offset: float = -1.25  # Stick center along its own forward axis
    max_offset: float = -0.75
    min_yaw: float = -60.0  # degrees
    max_yaw: float = 60.0
    min_angle: float = -25.0  # Tilt from horizontal, degrees
    max_angle: float = -5.0


@dataclass
class CameraConfig:
    """Player-eye camera around the table."""

    min_player_height: float = 1.0
    max_player_height: float = 1.6
    min_distance: float = 0.0  # Radial distance from table center
    max_distance: float = 1.0
    min_look_angle: float = -15.0  # Pitch offset, positive looks down
    max_look_angle: float = 5.0
    fovy: float = 61.33  # Fixed, never randomized
    aspect: float = 1.0


@dataclass
class LightingConfig:
    """Per-light randomization ranges."""

    min_intensity: float = 1.0
    max_intensity: float = 3.0
    ambient_intensity: float = 1.0
    min_temperature: float = 3000.0  # Kelvin
    max_temperature: float = 5500.0
    min_shadow_strength: float = 0.6
    max_shadow_strength: float = 0.8
    shadow_bias: float = 0.02
    shadow_normal_bias: float = 0.2
    min_spot_range: float = 8.0
    max_spot_range: float = 12.0
    min_spot_angle: float = 40.0
    max_spot_angle: float = 80.0
    aim_radius: float = 5.0  # Lights aim at a floor point within this radius


@dataclass
class PostProcessConfig:
    """Color adjustment and film grain ranges."""

    min_exposure: float = 0.0  # EV stops
    max_exposure: float = 0.5
    min_contrast: float = -5.0  # percent
    max_contrast: float = 25.0
    min_hue_shift: float = -2.0  # degrees
    max_hue_shift: float = 2.0
    min_saturation: float = -5.0  # percent
    max_saturation: float = 5.0
    min_grain_intensity: float = 0.0
    max_grain_intensity: float = 0.6
    grain_types: int = 3  # Discrete grain variants (thin, medium, large)


@dataclass
class MotionConfig:
    """Random impulse event (off unless event_probability > 0)."""

    event_probability: float = 0.0
    min_force: float = 10.0  # Impulse magnitude, N*s
    max_force: float = 15.0


@dataclass
class RenderConfig:
    """Capture resolution and MuJoCo backend options."""

    image_width: int = 512
    image_height: int = 512
    table_textures: int = 4  # Felt materials built into the world
    skybox_dir: str | None = None  # Directory of background images
    procedural_skyboxes: int = 6  # Used when skybox_dir is unset or empty
    blur_substeps: int = 4  # Physics substeps averaged when an impulse fires


@dataclass
class Config:
    """Complete generation configuration."""

    dataset: DatasetConfig = field(default_factory=DatasetConfig)
    table: TableConfig = field(default_factory=TableConfig)
    ball: BallConfig = field(default_factory=BallConfig)
    cue: CueConfig = field(default_factory=CueConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    lighting: LightingConfig = field(default_factory=LightingConfig)
    post: PostProcessConfig = field(default_factory=PostProcessConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    render: RenderConfig = field(default_factory=RenderConfig)

    def _sections(self):
        return [(f.name, getattr(self, f.name)) for f in fields(self)]

    def to_flat_dict(self) -> dict:
        """
        Convert to a flat dict for logging.

        Prefixes each section's keys with section name.
        Example: table.width -> "table/width"
        """
        result = {}
        for section_name, section in self._sections():
            for key, value in asdict(section).items():
                result[f"{section_name}/{key}"] = value
        return result

    def to_dict(self) -> dict:
        return {name: asdict(section) for name, section in self._sections()}

    @classmethod
    def from_dict(cls, data: dict | None) -> Config:
        """Build a Config from a nested dict, unknown keys are an error."""
        cfg = cls()
        for section_name, values in (data or {}).items():
            if not hasattr(cfg, section_name):
                raise ConfigError(f"Unknown config section: {section_name!r}")
            section = getattr(cfg, section_name)
            known = {f.name for f in fields(section)}
            for key, value in (values or {}).items():
                if key not in known:
                    raise ConfigError(f"Unknown option: {section_name}.{key}")
                setattr(section, key, value)
        return cfg

    @classmethod
    def from_yaml(cls, path: str | Path) -> Config:
        with open(path) as f:
            return cls.from_dict(yaml.safe_load(f))

    def to_yaml(self, path: str | Path) -> None:
        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)

    def validate(self) -> Config:
        """Check values before any work starts. Returns self for chaining."""
        ds = self.dataset
        if ds.total_images < 0:
            raise ConfigError(f"total_images must be >= 0, got {ds.total_images}")
        for name in ("train_ratio", "valid_ratio"):
            ratio = getattr(ds, name)
            if not 0.0 <= ratio <= 1.0:
                raise ConfigError(f"{name} must be in [0, 1], got {ratio}")
        if ds.train_ratio + ds.valid_ratio > 1.0:
            raise ConfigError(
                f"train_ratio + valid_ratio must be <= 1, "
                f"got {ds.train_ratio + ds.valid_ratio:.3f}"
            )
        if ds.background_frame_period <= 0:
            raise ConfigError("background_frame_period must be positive")
        if not 1 <= ds.jpeg_quality <= 100:
            raise ConfigError(f"jpeg_quality must be in [1, 100], got {ds.jpeg_quality}")

        if self.table.length <= 0 or self.table.width <= 0:
            raise ConfigError("Table length and width must be positive")
        if self.ball.radius <= 0:
            raise ConfigError("Ball radius must be positive")
        if 2 * self.ball.radius > min(self.table.length, self.table.width):
            raise ConfigError("Ball does not fit on the table")
        if self.ball.max_attempts < 1:
            raise ConfigError("ball.max_attempts must be >= 1")
        if self.ball.on_exhaustion not in ("keep", "raise"):
            raise ConfigError(
                f"ball.on_exhaustion must be 'keep' or 'raise', "
                f"got {self.ball.on_exhaustion!r}"
            )
        if not 0.0 <= self.motion.event_probability <= 1.0:
            raise ConfigError("motion.event_probability must be in [0, 1]")
        if self.render.image_width <= 0 or self.render.image_height <= 0:
            raise ConfigError("Capture resolution must be positive")
        # MuJoCo takes the horizontal FOV from the viewport; labels from camera.aspect
        image_aspect = self.render.image_width / self.render.image_height
        if abs(image_aspect - self.camera.aspect) > 1e-6:
            raise ConfigError(
                f"camera.aspect ({self.camera.aspect:g}) does not match the capture "
                f"resolution {self.render.image_width}x{self.render.image_height}"
            )
        if self.post.grain_types < 1:
            raise ConfigError("post.grain_types must be >= 1")

        # Every min_x / max_x pair must be ordered
        for section_name, section in self._sections():
            values = asdict(section)
            for key, low in values.items():
                if not key.startswith("min_"):
                    continue
                high = values.get("max_" + key[4:])
                if high is not None and low > high:
                    raise ConfigError(
                        f"{section_name}.{key} ({low}) > "
                        f"{section_name}.max_{key[4:]} ({high})"
                    )
        return self

    @classmethod
    def for_smoketest(cls) -> Config:
        """Config for fast end-to-end validation. Runs in seconds."""
        return cls(
            dataset=DatasetConfig(
                output_dir="SyntheticPoolData-smoketest",
                total_images=4,
                log_every=1,
            ),
            ball=BallConfig(count=4),
            render=RenderConfig(
                image_width=64,
                image_height=64,
                table_textures=2,
                procedural_skyboxes=2,
                blur_substeps=2,
            ),
        )
