"""Domain-randomized synthetic dataset generation for pool-table detection.

Every frame randomizes table appearance, background, ball layout, cue
pose, camera viewpoint, lighting and post-processing, renders the scene
and writes one normalized YOLO label file next to the JPEG.

Usage:
    from config import Config
    from pool_scene import DatasetGenerator, PoolWorld

    cfg = Config().validate()
    backend = PoolWorld.from_config(cfg)       # or NullBackend.from_config(cfg)
    DatasetGenerator(cfg, backend).run()
"""

from pool_scene.backend import NullBackend, SceneBackend
from pool_scene.dataset import DatasetGenerator, plan_splits
from pool_scene.entities import EntityRegistry, SceneState, describe_state
from pool_scene.projection import Label, compute_labels
from pool_scene.randomizer import SceneRandomizer
from pool_scene.world import PoolWorld

__all__ = [
    "DatasetGenerator",
    "EntityRegistry",
    "Label",
    "NullBackend",
    "PoolWorld",
    "SceneBackend",
    "SceneRandomizer",
    "SceneState",
    "compute_labels",
    "describe_state",
    "plan_splits",
]
