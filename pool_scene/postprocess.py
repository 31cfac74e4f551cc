"""Image-space effects applied to a rendered frame.

Rendering produces a plain RGB buffer; everything a camera post-processing
stack would do happens here on that buffer:

    skybox composite -> exposure -> contrast -> hue/saturation -> film grain

Color adjustments follow the usual volume-override conventions: exposure in
EV stops, contrast and saturation in percent, hue shift in degrees.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
from PIL import Image

from pool_scene.entities import ColorAdjustments, FilmGrain, PostProcessStack

log = logging.getLogger(__name__)

SKYBOX_SUFFIXES = (".jpg", ".jpeg", ".png", ".bmp")

# (zenith, horizon) color pairs for generated backgrounds
PROCEDURAL_SKY_COLORS = [
    ((0.25, 0.45, 0.80), (0.85, 0.88, 0.92)),  # clear day
    ((0.10, 0.10, 0.18), (0.45, 0.35, 0.30)),  # dim bar
    ((0.55, 0.55, 0.58), (0.80, 0.80, 0.78)),  # overcast
    ((0.35, 0.20, 0.35), (0.95, 0.60, 0.35)),  # sunset
    ((0.05, 0.05, 0.08), (0.15, 0.15, 0.20)),  # night
    ((0.70, 0.62, 0.50), (0.95, 0.90, 0.80)),  # warm interior
]

# Grain cell size in pixels per grain type (thin, medium, large)
GRAIN_SCALES = (1, 2, 4)
GRAIN_STRENGTH = 0.15


# ---------------------------------------------------------------------------
# Skyboxes
# ---------------------------------------------------------------------------


def procedural_skybox(index: int, width: int, height: int) -> np.ndarray:
    """Vertical zenith-to-horizon gradient, (H, W, 3) uint8."""
    zenith, horizon = PROCEDURAL_SKY_COLORS[index % len(PROCEDURAL_SKY_COLORS)]
    # Later cycles get a slight tint so every index is distinct
    tint = 1.0 - 0.08 * (index // len(PROCEDURAL_SKY_COLORS))
    t = np.linspace(0.0, 1.0, height)[:, None]
    column = (1.0 - t) * np.asarray(zenith) + t * np.asarray(horizon)
    column = np.clip(column * tint, 0.0, 1.0)
    img = np.repeat(column[:, None, :], width, axis=1)
    return (img * 255).astype(np.uint8)


def load_skyboxes(
    skybox_dir: str | Path | None,
    width: int,
    height: int,
    procedural_count: int = 0,
) -> list[np.ndarray]:
    """Background images resized to the capture resolution.

    Images are read from *skybox_dir* in sorted order. When the directory is
    unset or holds no images, *procedural_count* gradients are generated.
    """
    images: list[np.ndarray] = []
    if skybox_dir is not None:
        root = Path(skybox_dir)
        if not root.is_dir():
            log.warning("Skybox directory %s does not exist", root)
        else:
            for path in sorted(root.iterdir()):
                if path.suffix.lower() not in SKYBOX_SUFFIXES:
                    continue
                with Image.open(path) as img:
                    resized = img.convert("RGB").resize((width, height), Image.BILINEAR)
                    images.append(np.asarray(resized, dtype=np.uint8))
            log.info("Loaded %d skybox images from %s", len(images), root)

    if not images:
        images = [procedural_skybox(i, width, height) for i in range(procedural_count)]
    return images


def composite_background(
    pixels: np.ndarray, background: np.ndarray, mask: np.ndarray
) -> np.ndarray:
    """Replace pixels where *mask* is True with the background."""
    out = pixels.copy()
    out[mask] = background[mask]
    return out


# ---------------------------------------------------------------------------
# Color adjustments
# ---------------------------------------------------------------------------


def _apply_hue_saturation(img: np.ndarray, hue_shift: float, saturation: float) -> np.ndarray:
    """Hue rotation (degrees) and saturation scaling (percent) via HSV."""
    if hue_shift == 0.0 and saturation == 0.0:
        return img
    hsv = np.asarray(Image.fromarray(img).convert("HSV"), dtype=np.float64)
    hsv[..., 0] = (hsv[..., 0] + hue_shift / 360.0 * 255.0) % 255.0
    hsv[..., 1] = np.clip(hsv[..., 1] * (1.0 + saturation / 100.0), 0.0, 255.0)
    hsv = np.ascontiguousarray(np.round(hsv).astype(np.uint8))
    h, w = hsv.shape[:2]
    shifted = Image.frombytes("HSV", (w, h), hsv.tobytes())
    return np.asarray(shifted.convert("RGB"), dtype=np.uint8)


def apply_color_adjustments(pixels: np.ndarray, color: ColorAdjustments) -> np.ndarray:
    img = pixels.astype(np.float64) / 255.0
    img = img * (2.0 ** color.exposure)
    img = (img - 0.5) * (1.0 + color.contrast / 100.0) + 0.5
    img = (np.clip(img, 0.0, 1.0) * 255.0).round().astype(np.uint8)
    return _apply_hue_saturation(img, color.hue_shift, color.saturation)


def apply_film_grain(pixels: np.ndarray, grain: FilmGrain) -> np.ndarray:
    """Monochrome noise, coarser for higher grain types. Seeded per frame."""
    if grain.intensity <= 0.0:
        return pixels
    h, w = pixels.shape[:2]
    scale = GRAIN_SCALES[grain.grain_type % len(GRAIN_SCALES)]
    rng = np.random.default_rng(grain.seed)
    noise = rng.normal(0.0, 1.0, size=(-(-h // scale), -(-w // scale)))
    noise = np.repeat(np.repeat(noise, scale, axis=0), scale, axis=1)[:h, :w]
    img = pixels.astype(np.float64) / 255.0
    img = img + noise[..., None] * grain.intensity * GRAIN_STRENGTH
    return (np.clip(img, 0.0, 1.0) * 255.0).round().astype(np.uint8)


def apply_post_processing(pixels: np.ndarray, post: PostProcessStack) -> np.ndarray:
    """Run every effect present in *post*. Shape and dtype are preserved."""
    out = pixels
    color = post.get("color_adjustments")
    if color is not None:
        out = apply_color_adjustments(out, color)
    grain = post.get("film_grain")
    if grain is not None:
        out = apply_film_grain(out, grain)
    return out
