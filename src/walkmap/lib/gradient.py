"""Value-to-color mapping for map overlays.

A sample is normalized against a display range and placed on a three-stop
gradient (bottom, mid, top). Colors are triples of channel fractions in
[0, 1] and are encoded as ``#rrggbb`` strings for Leaflet path styles.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

Color = tuple[float, float, float]

NO_DATA_COLOR = "#000000"


@dataclass(frozen=True)
class Gradient:
    """Three anchor colors defining a two-segment linear gradient."""

    name: str
    bottom: Color
    mid: Color
    top: Color


GREEN_WHITE_RED = Gradient(
    name="green-white-red",
    bottom=(0.0, 1.0, 0.0),
    mid=(1.0, 1.0, 1.0),
    top=(1.0, 0.0, 0.0),
)
BLUE_WHITE_RED = Gradient(
    name="blue-white-red",
    bottom=(0.0, 0.0, 1.0),
    mid=(1.0, 1.0, 1.0),
    top=(1.0, 0.0, 0.0),
)
BROWN_TAN_WHITE = Gradient(
    name="brown-tan-white",
    bottom=(0.4, 0.2, 0.0),
    mid=(0.7, 0.6, 0.5),
    top=(1.0, 1.0, 1.0),
)

GRADIENTS: dict[str, Gradient] = {
    g.name: g for g in (GREEN_WHITE_RED, BLUE_WHITE_RED, BROWN_TAN_WHITE)
}


def _lerp(start: Color, end: Color, weight: float) -> Color:
    return (
        start[0] + weight * (end[0] - start[0]),
        start[1] + weight * (end[1] - start[1]),
        start[2] + weight * (end[2] - start[2]),
    )


def mix_color(
    value: float | None,
    min_val: float,
    max_val: float,
    gradient: Gradient = GREEN_WHITE_RED,
) -> Color | None:
    """Map a sample onto a gradient.

    Values below ``min_val`` get the bottom color and values at or above
    ``max_val`` get the top color. In between, the lower half of the range
    blends bottom to mid and the upper half (starting exactly at the
    midpoint) blends mid to top.

    When ``min_val == max_val`` there is nothing to normalize against:
    values below the bound get the bottom color, everything else the top
    color.

    Args:
        value: Sample value; None (or a non-finite number) means no data.
        min_val: Lower bound of the display range.
        max_val: Upper bound of the display range.
        gradient: Gradient to place the value on.

    Returns:
        Color triple, or None when there is no data.
    """
    if value is None or not math.isfinite(value):
        return None

    span = max_val - min_val
    if span == 0:
        return gradient.bottom if value < min_val else gradient.top

    factor = (value - min_val) / span
    if factor < 0.0:
        return gradient.bottom
    if factor < 0.5:
        return _lerp(gradient.bottom, gradient.mid, 2 * factor)
    if factor < 1.0:
        return _lerp(gradient.mid, gradient.top, 2 * (factor - 0.5))
    return gradient.top


def hex_byte(value: int) -> str:
    """Render an integer in [0, 255] as two lowercase hex digits."""
    return f"{value:02x}"


def _round_half_up(value: float) -> int:
    # round() would bank 127.5 down to 127
    return math.floor(value + 0.5)


def hex_color(color: Color | None) -> str:
    """Encode a color triple as ``#rrggbb``.

    Args:
        color: Channel fractions in [0, 1], or None for no data.

    Returns:
        Seven-character color string; ``#000000`` when color is None.
    """
    if color is None:
        return NO_DATA_COLOR
    return "#" + "".join(hex_byte(_round_half_up(channel * 255)) for channel in color)
