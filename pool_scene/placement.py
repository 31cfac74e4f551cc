"""Ball placement by rejection sampling.

Balls are placed one at a time, in list order. Each candidate is a uniform
point on the table inset by the ball radius; it is accepted when it is at
least two radii from every ball already accepted in this frame. Earlier
balls are never moved again, so later balls are the ones that retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from pool_scene.entities import Ball, random_ball_quat
from pool_scene.errors import PlacementExhaustedError

log = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 100


@dataclass
class PlacementResult:
    """Outcome of one placement pass.

    Attributes:
        positions: (N, 3) ball centers after the pass. Rows of exhausted
            balls hold their previous position.
        quats: (N, 4) ball orientations, same convention.
        attempts: Candidates drawn per ball.
        exhausted: Indices of balls that hit the attempt cap.
    """

    positions: np.ndarray
    quats: np.ndarray
    attempts: list[int] = field(default_factory=list)
    exhausted: list[int] = field(default_factory=list)

    @property
    def placed(self) -> list[int]:
        return [i for i in range(len(self.positions)) if i not in self.exhausted]


def table_bounds(length: float, width: float, radius: float) -> tuple[float, float]:
    """Half-extents (x, y) a ball center may occupy."""
    return (length / 2.0 - radius, width / 2.0 - radius)


def place_balls(
    rng: np.random.Generator,
    n: int,
    radius: float,
    length: float,
    width: float,
    height: float,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    previous: np.ndarray | None = None,
    previous_quats: np.ndarray | None = None,
    on_exhaustion: str = "keep",
) -> PlacementResult:
    """Place n equal discs without overlap inside the inset table rectangle.

    Args:
        rng: Random generator.
        n: Number of balls.
        radius: Ball radius (same for all).
        length, width: Table extents along X and Y.
        height: Z of every ball center.
        max_attempts: Candidates drawn per ball before giving up.
        previous: (N, 3) positions to keep for balls that cannot be placed.
            Defaults to the table center.
        previous_quats: (N, 4) orientations kept the same way.
        on_exhaustion: "keep" leaves an unplaceable ball at its previous
            position (it may overlap) and logs a warning; "raise" raises
            PlacementExhaustedError.
    """
    hx, hy = table_bounds(length, width, radius)
    min_dist = 2.0 * radius

    if previous is None:
        previous = np.tile([0.0, 0.0, height], (n, 1))
    if previous_quats is None:
        previous_quats = np.tile([1.0, 0.0, 0.0, 0.0], (n, 1))
    positions = np.array(previous, dtype=float, copy=True)
    quats = np.array(previous_quats, dtype=float, copy=True)

    accepted: list[np.ndarray] = []
    result = PlacementResult(positions=positions, quats=quats)

    for i in range(n):
        candidate = None
        attempts = 0
        while attempts < max_attempts:
            attempts += 1
            xy = np.array([rng.uniform(-hx, hx), rng.uniform(-hy, hy)])
            if all(np.hypot(*(xy - other)) >= min_dist for other in accepted):
                candidate = xy
                break
        result.attempts.append(attempts)

        if candidate is None:
            if on_exhaustion == "raise":
                raise PlacementExhaustedError(i, attempts)
            log.warning(
                "Ball %d not placed after %d attempts; keeping previous position",
                i,
                attempts,
            )
            result.exhausted.append(i)
            continue

        accepted.append(candidate)
        positions[i] = [candidate[0], candidate[1], height]
        quats[i] = random_ball_quat(rng)

    return result


def apply_placement(balls: list[Ball], result: PlacementResult) -> None:
    """Write a placement result back onto the ball records."""
    for ball in balls:
        ball.position = result.positions[ball.index].copy()
        ball.quat = result.quats[ball.index].copy()
