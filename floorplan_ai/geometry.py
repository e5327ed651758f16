import math
from typing import Dict, Tuple

from floorplan_ai.config import CANONICAL_SCALE

# (ymin, xmin, ymax, xmax) in canonical units
Box = Tuple[int, int, int, int]
# (y, x) in canonical units
Point = Tuple[float, float]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, lower: float = 0, upper: float = CANONICAL_SCALE) -> float:
    return max(lower, min(upper, value))


def center_to_corners(x: float, y: float, width: float, height: float) -> Tuple[float, float, float, float]:
    """Convert a center/size box to (ymin, xmin, ymax, xmax) in the same units."""
    half_w = width / 2
    half_h = height / 2
    return (y - half_h, x - half_w, y + half_h, x + half_w)


def to_canonical(value: float, dimension: float) -> int:
    return round_half_up(value / dimension * CANONICAL_SCALE)


def clamp_box(ymin: float, xmin: float, ymax: float, xmax: float) -> Box:
    """Order and clamp the corners into the canonical square."""
    top, bottom = sorted((ymin, ymax))
    left, right = sorted((xmin, xmax))
    return (
        int(clamp(round_half_up(top))),
        int(clamp(round_half_up(left))),
        int(clamp(round_half_up(bottom))),
        int(clamp(round_half_up(right))),
    )


def bounding_box(start: Point, end: Point) -> Box:
    """Minimal box spanning two (y, x) drag corners, clamped."""
    return clamp_box(start[0], start[1], end[0], end[1])


def box_size(box: Box) -> Tuple[int, int]:
    ymin, xmin, ymax, xmax = box
    return (ymax - ymin, xmax - xmin)


def box_contains(box: Box, point: Point) -> bool:
    ymin, xmin, ymax, xmax = box
    y, x = point
    return ymin <= y <= ymax and xmin <= x <= xmax


def pointer_to_canonical(px: float, py: float, rendered_width: float, rendered_height: float) -> Point:
    """
    Map a pointer position relative to the rendered image to a canonical (y, x)
    point. A zero-sized render maps everything to the origin.
    """
    if rendered_width <= 0 or rendered_height <= 0:
        return (0, 0)
    x = clamp(round_half_up(px / rendered_width * CANONICAL_SCALE))
    y = clamp(round_half_up(py / rendered_height * CANONICAL_SCALE))
    return (y, x)


def box_to_style(box: Box) -> Dict[str, str]:
    """Percentage placement of a canonical box over the rendered image."""
    ymin, xmin, ymax, xmax = box
    unit = CANONICAL_SCALE / 100
    return {
        "top": f"{ymin / unit:g}%",
        "left": f"{xmin / unit:g}%",
        "height": f"{(ymax - ymin) / unit:g}%",
        "width": f"{(xmax - xmin) / unit:g}%",
    }


def box_to_pixels(box: Box, width: int, height: int) -> Tuple[int, int, int, int]:
    """Canonical box to pixel corners (x1, y1, x2, y2) for drawing."""
    ymin, xmin, ymax, xmax = box
    return (
        round_half_up(xmin / CANONICAL_SCALE * width),
        round_half_up(ymin / CANONICAL_SCALE * height),
        round_half_up(xmax / CANONICAL_SCALE * width),
        round_half_up(ymax / CANONICAL_SCALE * height),
    )
