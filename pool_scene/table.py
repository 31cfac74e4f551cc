"""Pool table geometry built from primitives.

The table is a pure function: frozen Params -> primitives. Primitives map
directly to MuJoCo geom types; world.py turns them into MJCF.

Coordinate convention:
    - Z-up, table centered on the origin, length along X, width along Y
    - The felt surface sits one ball radius below the ball-center height

Size convention (matches MuJoCo):
    - BOX: (half_x, half_y, half_z)
    - CYLINDER: (radius, half_height, 0)  -- aligned along Z axis
    - SPHERE: (radius, 0, 0)
    - CAPSULE: (radius, half_height, 0)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from functools import lru_cache

import mujoco


class GeomType(IntEnum):
    """MuJoCo geom types for primitive shapes."""

    BOX = mujoco.mjtGeom.mjGEOM_BOX
    CYLINDER = mujoco.mjtGeom.mjGEOM_CYLINDER
    SPHERE = mujoco.mjtGeom.mjGEOM_SPHERE
    CAPSULE = mujoco.mjtGeom.mjGEOM_CAPSULE


GEOM_TYPE_NAMES = {
    GeomType.BOX: "box",
    GeomType.CYLINDER: "cylinder",
    GeomType.SPHERE: "sphere",
    GeomType.CAPSULE: "capsule",
}


@dataclass(frozen=True)
class Prim:
    """A single named primitive positioned relative to the table origin.

    Attributes:
        name: Geom name in the compiled model
        geom_type: Shape type (box, cylinder, sphere, etc.)
        size: Size parameters, meaning depends on geom_type (see module doc)
        pos: Position (x, y, z)
        rgba: Color and opacity (r, g, b, a), values in [0, 1]
    """

    name: str
    geom_type: GeomType
    size: tuple[float, float, float]
    pos: tuple[float, float, float]
    rgba: tuple[float, float, float, float]


# ---------------------------------------------------------------------------
# Colors
# ---------------------------------------------------------------------------

WOOD_DARK = (0.45, 0.30, 0.15, 1.0)
WOOD_MEDIUM = (0.60, 0.45, 0.30, 1.0)
CUSHION_GREEN = (0.10, 0.35, 0.18, 1.0)
POCKET_BLACK = (0.02, 0.02, 0.02, 1.0)
CUE_MAPLE = (0.85, 0.72, 0.50, 1.0)

# Felt colors the table texture is drawn from (cycled when more are requested)
FELT_COLORS = [
    (0.10, 0.45, 0.20),  # tournament green
    (0.12, 0.28, 0.55),  # blue
    (0.50, 0.10, 0.12),  # burgundy
    (0.35, 0.35, 0.38),  # steel gray
    (0.30, 0.15, 0.40),  # purple
    (0.55, 0.45, 0.30),  # camel
]

# Ball 0 is the cue ball; 9-15 reuse the 1-7 colors (stripes)
BALL_COLORS = [
    (0.95, 0.95, 0.90, 1.0),
    (0.95, 0.80, 0.10, 1.0),
    (0.10, 0.25, 0.70, 1.0),
    (0.80, 0.10, 0.10, 1.0),
    (0.35, 0.15, 0.50, 1.0),
    (0.95, 0.45, 0.10, 1.0),
    (0.10, 0.50, 0.25, 1.0),
    (0.50, 0.10, 0.10, 1.0),
    (0.05, 0.05, 0.05, 1.0),
]


def ball_color(index: int) -> tuple[float, float, float, float]:
    if index < len(BALL_COLORS):
        return BALL_COLORS[index]
    return BALL_COLORS[1 + (index - 1) % 8]


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Params:
    length: float = 2.54  # playing surface, X
    width: float = 1.27  # playing surface, Y
    surface_z: float = 0.776  # felt top
    bed_thickness: float = 0.05
    rail_width: float = 0.10
    rail_height: float = 0.04  # cushion height above the felt
    leg_width: float = 0.12
    rail_color: tuple[float, float, float, float] = WOOD_DARK
    leg_color: tuple[float, float, float, float] = WOOD_MEDIUM


@lru_cache(maxsize=16)
def generate(params: Params = Params()) -> tuple[Prim, ...]:
    """Felt bed + 4 rails + 4 legs (9 prims). The bed is named "table_felt"."""
    hl = params.length / 2
    hw = params.width / 2
    hb = params.bed_thickness / 2
    rw = params.rail_width / 2
    rh = params.rail_height / 2
    top = params.surface_z

    felt = Prim(
        "table_felt",
        GeomType.BOX,
        (hl, hw, hb),
        (0.0, 0.0, top - hb),
        (1.0, 1.0, 1.0, 1.0),
    )

    rail_z = top + rh
    outer_x = hl + rw
    outer_y = hw + rw
    rails = (
        Prim("table_rail_n", GeomType.BOX, (hl + 2 * rw, rw, rh), (0.0, outer_y, rail_z), params.rail_color),
        Prim("table_rail_s", GeomType.BOX, (hl + 2 * rw, rw, rh), (0.0, -outer_y, rail_z), params.rail_color),
        Prim("table_rail_e", GeomType.BOX, (rw, hw, rh), (outer_x, 0.0, rail_z), params.rail_color),
        Prim("table_rail_w", GeomType.BOX, (rw, hw, rh), (-outer_x, 0.0, rail_z), params.rail_color),
    )

    leg_half = (top - params.bed_thickness) / 2
    hlw = params.leg_width / 2
    lx = hl - hlw
    ly = hw - hlw
    legs = tuple(
        Prim(
            f"table_leg_{i}",
            GeomType.BOX,
            (hlw, hlw, leg_half),
            (sx * lx, sy * ly, leg_half),
            params.leg_color,
        )
        for i, (sx, sy) in enumerate([(-1, -1), (1, -1), (-1, 1), (1, 1)])
    )

    return (felt, *rails, *legs)


def pocket_positions(
    length: float, width: float, height: float
) -> list[tuple[float, float, float]]:
    """Four corner pockets then the two side pockets, at ball-center height."""
    hl = length / 2
    hw = width / 2
    return [
        (-hl, -hw, height),
        (hl, -hw, height),
        (-hl, hw, height),
        (hl, hw, height),
        (0.0, -hw, height),
        (0.0, hw, height),
    ]
