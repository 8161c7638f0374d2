"""Walk dataset model.

A dataset is the JSON document describing one walk: map center and zoom,
the track geometry, the sampled points along it and optional display
ranges for each sampled attribute. Every field may be missing.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any


class Attribute(str, Enum):
    """Optional per-point attributes, keyed by their JSON property name."""

    SPEED = "speed"
    HEART_RATE = "heart_rate"
    ELEVATION = "elevation"
    RUNNING_DISTANCE = "running_distance"
    CADENCE = "cadence"
    TEMPERATURE = "temperature"
    TIMESTAMP = "timestamp"

    @property
    def range_key(self) -> str:
        """Dataset key holding this attribute's display range."""
        return f"{self.value}_range"


RANGED_ATTRIBUTES = (
    Attribute.ELEVATION,
    Attribute.HEART_RATE,
    Attribute.SPEED,
    Attribute.CADENCE,
    Attribute.TEMPERATURE,
)


@dataclass(frozen=True)
class PointRecord:
    """One sampled segment of the walk.

    Wraps a GeoJSON feature. ``properties`` is None when the feature
    carried ``"properties": null``.
    """

    geometry: Mapping[str, Any] | None
    properties: Mapping[str, Any] | None = None

    @classmethod
    def from_feature(cls, feature: Mapping[str, Any]) -> PointRecord:
        props = feature.get("properties")
        return cls(
            geometry=feature.get("geometry"),
            properties=MappingProxyType(dict(props)) if props is not None else None,
        )

    @property
    def has_properties(self) -> bool:
        return bool(self.properties)

    def get(self, attribute: Attribute) -> Any:
        """Return the attribute's value, or None if the record lacks it."""
        if self.properties is None:
            return None
        return self.properties.get(attribute.value)

    def to_feature(self) -> dict[str, Any]:
        return {
            "type": "Feature",
            "properties": dict(self.properties) if self.properties is not None else None,
            "geometry": dict(self.geometry) if self.geometry is not None else None,
        }


@dataclass(frozen=True)
class Dataset:
    """A parsed walk dataset."""

    center: tuple[float, float] | None = None
    zoom: int | None = None
    track: Mapping[str, Any] | None = None
    points: tuple[PointRecord, ...] | None = None
    ranges: Mapping[Attribute, tuple[float, float]] = field(default_factory=dict)

    @classmethod
    def from_json(cls, text: str | bytes) -> Dataset:
        """Parse a dataset document.

        Raises:
            json.JSONDecodeError: If the document is not valid JSON.
        """
        return cls.from_dict(json.loads(text))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Dataset:
        center = data.get("center")
        points_collection = data.get("points")
        points = None
        if points_collection is not None:
            points = tuple(
                PointRecord.from_feature(feature)
                for feature in points_collection.get("features", [])
            )

        ranges: dict[Attribute, tuple[float, float]] = {}
        for attribute in RANGED_ATTRIBUTES:
            value = data.get(attribute.range_key)
            if value is not None:
                ranges[attribute] = (value[0], value[1])

        return cls(
            center=(center[0], center[1]) if center is not None else None,
            zoom=data.get("zoom"),
            track=data.get("track"),
            points=points,
            ranges=MappingProxyType(ranges),
        )

    def range_for(
        self, attribute: Attribute, fallback: tuple[float, float]
    ) -> tuple[float, float]:
        """Display range for an attribute, falling back when the dataset has none."""
        return self.ranges.get(attribute, fallback)

