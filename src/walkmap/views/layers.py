"""Overlay construction for the walk map.

Builds the set of togglable Leaflet layers for one dataset: the plain
track, plus one gradient-colored copy of the point collection per sampled
attribute. Optional attributes (heart rate, cadence, temperature) only get
an overlay when at least one point carries them.
"""

from __future__ import annotations

import html
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from walkmap.config import OSM_ATTRIBUTION, OSM_TILE_URL
from walkmap.lib.gradient import (
    BLUE_WHITE_RED,
    BROWN_TAN_WHITE,
    GREEN_WHITE_RED,
    Gradient,
    hex_color,
    mix_color,
)
from walkmap.models.dataset import Attribute, Dataset, PointRecord

logger = logging.getLogger("walkmap.layers")

TRACK_OVERLAY = "track"


@dataclass(frozen=True)
class LayerSpec:
    """How to turn one point attribute into an overlay."""

    name: str
    attribute: Attribute
    gradient: Gradient
    fallback_range: tuple[float, float]
    weight: int
    optional: bool = False
    visible: bool = False


# Declaration order is the order of the layer control (after the track).
LAYER_SPECS: tuple[LayerSpec, ...] = (
    LayerSpec("heart rate", Attribute.HEART_RATE, GREEN_WHITE_RED, (80, 160), 8,
              optional=True, visible=True),
    LayerSpec("elevation", Attribute.ELEVATION, BROWN_TAN_WHITE, (300, 400), 4),
    LayerSpec("speed", Attribute.SPEED, GREEN_WHITE_RED, (0, 10), 4),
    LayerSpec("cadence", Attribute.CADENCE, GREEN_WHITE_RED, (0, 120), 4, optional=True),
    LayerSpec("temperature", Attribute.TEMPERATURE, BLUE_WHITE_RED, (-10, 45), 4, optional=True),
)


@dataclass(frozen=True)
class BaseLayer:
    """A background tile layer."""

    name: str
    tile_url: str = OSM_TILE_URL
    attribution: str = OSM_ATTRIBUTION


OSM_LAYER = BaseLayer("OSM")


@dataclass(frozen=True)
class Overlay:
    """A named GeoJSON layer.

    Each feature may carry a precomputed Leaflet path ``style`` and a
    ``popup`` HTML fragment next to its properties.
    """

    name: str
    features: tuple[dict[str, Any], ...] = ()

    def to_geojson(self) -> dict[str, Any]:
        return {"type": "FeatureCollection", "features": list(self.features)}


@dataclass(frozen=True)
class LayerSet:
    """Everything the map canvas needs for one dataset."""

    base_layers: dict[str, BaseLayer]
    overlays: dict[str, Overlay]
    default_visible: list[BaseLayer | Overlay] = field(default_factory=list)


def have_layer(
    points: Sequence[PointRecord] | None,
    selector: Callable[[PointRecord], Any],
) -> bool:
    """Check whether any point has a value for the selected attribute."""
    if points is None:
        return False
    return any(selector(record) is not None for record in points)


def _plain_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return html.escape(str(value))


_POPUP_LINES: tuple[tuple[Attribute, Callable[[Any], str]], ...] = (
    (Attribute.SPEED, lambda v: f"{v:.1f} km/h"),
    (Attribute.HEART_RATE, lambda v: f"{_plain_number(v)} BPM"),
    (Attribute.ELEVATION, lambda v: f"{v:.1f} m ASL"),
    (Attribute.RUNNING_DISTANCE, lambda v: f"{v / 1000:.3f} km distance from beginning"),
    (Attribute.CADENCE, lambda v: f"{_plain_number(v)} RPM cadence"),
    (Attribute.TEMPERATURE, lambda v: f"{_plain_number(v)} °C"),
    (Attribute.TIMESTAMP, lambda v: html.escape(str(v))),
)


def compose_popup(properties: Mapping[str, Any] | None) -> str | None:
    """Build the popup HTML for one point.

    Returns:
        One ``<p>`` per present attribute, or None when there is nothing
        to show.
    """
    if not properties:
        return None
    fragments = [
        f"<p>{describe(properties[attribute.value])}</p>"
        for attribute, describe in _POPUP_LINES
        if properties.get(attribute.value) is not None
    ]
    if not fragments:
        return None
    return "".join(fragments)


def _as_features(geojson: Mapping[str, Any] | None) -> list[dict[str, Any]]:
    if geojson is None:
        return []
    kind = geojson.get("type")
    if kind == "FeatureCollection":
        return [dict(feature) for feature in geojson.get("features", [])]
    if kind == "Feature":
        return [dict(geojson)]
    return [{"type": "Feature", "properties": {}, "geometry": dict(geojson)}]


def build_track_overlay(dataset: Dataset) -> Overlay:
    return Overlay(TRACK_OVERLAY, tuple(_as_features(dataset.track)))


def build_point_overlay(dataset: Dataset, spec: LayerSpec) -> Overlay:
    """Color every point by one attribute and attach its popup."""
    min_val, max_val = dataset.range_for(spec.attribute, spec.fallback_range)
    features = []
    for record in dataset.points or ():
        feature = record.to_feature()
        if record.properties is not None:
            color = mix_color(record.get(spec.attribute), min_val, max_val, spec.gradient)
            feature["style"] = {"color": hex_color(color), "opacity": 1, "weight": spec.weight}
        if record.has_properties:
            popup = compose_popup(record.properties)
            if popup is not None:
                feature["popup"] = popup
        features.append(feature)
    return Overlay(spec.name, tuple(features))


def build_layers(
    dataset: Dataset,
    base_layers: Iterable[BaseLayer] = (OSM_LAYER,),
    specs: Sequence[LayerSpec] = LAYER_SPECS,
) -> LayerSet:
    """Build all overlays for a dataset.

    Args:
        dataset: Parsed walk dataset.
        base_layers: Background layers; the first one is shown on load.
        specs: Per-attribute overlay specifications, in display order.

    Returns:
        Layer set with overlays keyed by name (track first) and the
        subset that is visible when the map opens.
    """
    bases = {layer.name: layer for layer in base_layers}
    track = build_track_overlay(dataset)
    overlays: dict[str, Overlay] = {track.name: track}
    default_visible: list[BaseLayer | Overlay] = [*list(bases.values())[:1], track]

    for spec in specs:
        if spec.optional and not have_layer(
            dataset.points, lambda record, a=spec.attribute: record.get(a)
        ):
            logger.debug("No %s samples, skipping overlay", spec.name)
            continue
        overlay = build_point_overlay(dataset, spec)
        overlays[overlay.name] = overlay
        if spec.visible:
            default_visible.append(overlay)

    logger.debug("Built overlays: %s", ", ".join(overlays))
    return LayerSet(base_layers=bases, overlays=overlays, default_visible=default_visible)
