"""Render randomized frames as a contact sheet with label boxes drawn.

Each cell is one seeded frame exactly as the generator would capture it,
with every label's box outlined (balls in their class color, pockets in
white) and a caption underneath.

Usage:
    python main.py preview                      # 8 random seeds
    python main.py preview --seeds 42 43 44     # specific seeds
    python main.py preview --out docs/preview   # custom output dir
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from pool_scene.backend import SceneBackend
from pool_scene.entities import EntityRegistry, LightState
from pool_scene.errors import ConfigError
from pool_scene.export import validate_frame
from pool_scene.projection import Label, compute_labels
from pool_scene.randomizer import SceneRandomizer
from pool_scene.table import ball_color

if TYPE_CHECKING:
    from config import Config

log = logging.getLogger(__name__)

LABEL_H = 28
BG_COLOR = (40, 42, 48)
LABEL_BG = (30, 32, 36)
LABEL_FG = (220, 220, 220)
POCKET_COLOR = (255, 255, 255)


def _try_load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    candidates = [
        "/System/Library/Fonts/Menlo.ttc",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    ]
    for path in candidates:
        if Path(path).exists():
            try:
                return ImageFont.truetype(path, size)
            except OSError:
                continue
    return ImageFont.load_default()


def _box_color(label: Label, pocket_class: int) -> tuple[int, int, int]:
    if label.class_id == pocket_class:
        return POCKET_COLOR
    r, g, b, _ = ball_color(label.class_id)
    return (int(r * 255), int(g * 255), int(b * 255))


def draw_labels(
    img: Image.Image, labels: list[Label], pocket_class: int
) -> Image.Image:
    """Outline every label box on a copy of *img*."""
    out = img.copy()
    draw = ImageDraw.Draw(out)
    w, h = out.size
    for label in labels:
        x0 = (label.x_center - label.width / 2) * w
        y0 = (label.y_center - label.height / 2) * h
        x1 = (label.x_center + label.width / 2) * w
        y1 = (label.y_center + label.height / 2) * h
        draw.rectangle([x0, y0, x1, y1], outline=_box_color(label, pocket_class))
    return out


def render_preview_grid(
    seeds: list[int],
    out_dir: Path,
    cfg: Config,
    backend: SceneBackend,
) -> Path:
    """Render one cell per seed into <out_dir>/preview.png. Returns the path."""
    if not seeds:
        raise ConfigError("Preview needs at least one seed")
    registry = EntityRegistry.from_children(backend.enumerate_children(), cfg.ball.radius)
    lights = [
        LightState(name=name, kind=kind, position=np.asarray(pos, dtype=float))
        for name, kind, pos in backend.enumerate_lights()
    ]
    randomizer = SceneRandomizer(
        cfg,
        texture_count=backend.table_texture_count,
        skybox_count=backend.skybox_count,
    )
    state = randomizer.initial_state(registry, lights)

    cell_w = cfg.render.image_width
    cell_h = cfg.render.image_height
    n = len(seeds)
    cols = min(4, n)
    rows = math.ceil(n / cols)
    cell_total_h = cell_h + LABEL_H

    grid = Image.new("RGB", (cols * cell_w, rows * cell_total_h), BG_COLOR)
    draw = ImageDraw.Draw(grid)
    font = _try_load_font(13)

    for idx, seed in enumerate(seeds):
        randomizer.randomize(state, np.random.default_rng(seed))
        backend.apply(state)
        try:
            pixels = validate_frame(backend.render(state), cell_w, cell_h)
        finally:
            backend.reset_dynamics()
        labels = compute_labels(state)

        cell = draw_labels(Image.fromarray(pixels), labels, registry.pocket_class_id)
        x = (idx % cols) * cell_w
        y = (idx // cols) * cell_total_h
        grid.paste(cell, (x, y))

        n_pockets = sum(1 for lb in labels if lb.class_id == registry.pocket_class_id)
        caption = f"seed {seed}  {len(labels) - n_pockets} balls  {n_pockets} pockets"
        label_y = y + cell_h
        draw.rectangle([x, label_y, x + cell_w, label_y + LABEL_H], fill=LABEL_BG)
        bbox = font.getbbox(caption)
        tx = x + (cell_w - (bbox[2] - bbox[0])) // 2
        ty = label_y + (LABEL_H - (bbox[3] - bbox[1])) // 2
        draw.text((tx, ty), caption, fill=LABEL_FG, font=font)

        log.info("  [%d/%d] %s", idx + 1, n, caption)

    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / "preview.png"
    grid.save(out_path)
    return out_path
