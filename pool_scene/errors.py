"""Exception types raised by the dataset generator."""

from __future__ import annotations


class PoolSynthError(Exception):
    """Base class for all generator errors."""


class ConfigError(PoolSynthError, ValueError):
    """A configuration value is out of range or inconsistent."""


class PlacementExhaustedError(PoolSynthError):
    """Rejection sampling ran out of attempts for one ball."""

    def __init__(self, index: int, attempts: int):
        super().__init__(
            f"Could not place ball {index} without overlap after {attempts} attempts"
        )
        self.index = index
        self.attempts = attempts


class CaptureError(PoolSynthError):
    """The backend returned no usable pixel buffer."""


class OutputDirectoryError(PoolSynthError):
    """The output tree could not be removed or created."""


class GenerationError(PoolSynthError):
    """A frame failed; carries the split and index so the run can resume."""

    def __init__(self, split: str, index: int, message: str = ""):
        detail = f": {message}" if message else ""
        super().__init__(
            f"Generation failed at {split}/image_{index}{detail} "
            f"(rerun with --resume to continue from here)"
        )
        self.split = split
        self.index = index


class GenerationCancelled(PoolSynthError):
    """Generation was stopped between frames."""

    def __init__(self, split: str, index: int):
        super().__init__(f"Generation cancelled before {split}/image_{index}")
        self.split = split
        self.index = index
