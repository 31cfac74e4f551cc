"""Capture/export adapter: frame buffers and labels onto disk.

Output layout relative to the dataset root:

    data.yaml
    <split>/images/image_<index>.jpg
    <split>/labels/image_<index>.txt

An empty label file means the frame has no detections.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import yaml
from PIL import Image

from pool_scene.errors import CaptureError
from pool_scene.projection import Label

DEFAULT_JPEG_QUALITY = 90


def image_path(root: Path, split: str, index: int) -> Path:
    return root / split / "images" / f"image_{index}.jpg"


def label_path(root: Path, split: str, index: int) -> Path:
    return root / split / "labels" / f"image_{index}.txt"


def validate_frame(pixels, width: int, height: int) -> np.ndarray:
    """Check a rendered buffer is (height, width, 3) uint8."""
    if pixels is None:
        raise CaptureError("Renderer returned no pixel buffer")
    pixels = np.asarray(pixels)
    if pixels.shape != (height, width, 3):
        raise CaptureError(
            f"Frame has shape {pixels.shape}, expected {(height, width, 3)}"
        )
    if pixels.dtype != np.uint8:
        raise CaptureError(f"Frame has dtype {pixels.dtype}, expected uint8")
    return pixels


def write_image(path: Path, pixels: np.ndarray, quality: int = DEFAULT_JPEG_QUALITY) -> None:
    Image.fromarray(pixels).save(path, format="JPEG", quality=quality)


def write_labels(path: Path, labels: list[Label]) -> None:
    """One line per label; an empty file for a frame without detections."""
    text = "\n".join(label.to_line() for label in labels)
    path.write_text(text + "\n" if text else "", encoding="utf-8")


def read_labels(path: Path) -> list[Label]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [Label.from_line(line) for line in lines if line.strip()]


def write_dataset_yaml(root: Path, splits: list[str], class_names: list[str]) -> Path:
    """Detector training descriptor listing split image dirs and classes."""
    descriptor = {"path": str(root.resolve())}
    for split in splits:
        descriptor["val" if split == "valid" else split] = f"{split}/images"
    descriptor["nc"] = len(class_names)
    descriptor["names"] = list(class_names)

    out = root / "data.yaml"
    with open(out, "w") as f:
        yaml.safe_dump(descriptor, f, sort_keys=False)
    return out
