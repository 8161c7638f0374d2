"""Convert FIT activity files into walk map datasets.

Each positioned ``record`` message becomes a sample. The walk is split into
separate lines wherever positions drop out or the timer is stopped, and
every pair of consecutive samples in a line becomes one point feature
carrying averaged sensor values and the running distance.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import fitparse

from walkmap.lib.errors import ConversionError
from walkmap.lib.geodesy import semicircles_to_degrees, vincenty_distance
from walkmap.models.dataset import Attribute

logger = logging.getLogger("walkmap.convert")

DEFAULT_ZOOM = 12
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Used when no sample carries the attribute
FALLBACK_RANGES: dict[Attribute, tuple[float, float]] = {
    Attribute.HEART_RATE: (80.0, 160.0),
    Attribute.SPEED: (0.0, 10.0),
    Attribute.CADENCE: (0.0, 120.0),
    Attribute.TEMPERATURE: (-10.0, 45.0),
}


@dataclass(frozen=True)
class Sample:
    """One positioned FIT record."""

    latitude: float
    longitude: float
    elevation: float | None = None
    heart_rate: int | None = None
    speed: float | None = None
    cadence: int | None = None
    temperature: int | None = None
    timestamp: datetime | None = None

    def lonlat(self) -> list[float]:
        return [self.longitude, self.latitude]


def _is_timer_stop(values: dict[str, Any]) -> bool:
    return values.get("event") == "timer" and values.get("event_type") == "stop_all"


def _local_time(value: Any) -> datetime | None:
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        # FIT timestamps are UTC
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone()


def sample_from_values(values: dict[str, Any]) -> Sample | None:
    """Build a sample from a record's values; None if it has no position."""
    lat = values.get("position_lat")
    lon = values.get("position_long")
    if lat is None or lon is None:
        return None

    speed_m_per_s = values.get("enhanced_speed")
    return Sample(
        latitude=semicircles_to_degrees(lat),
        longitude=semicircles_to_degrees(lon),
        elevation=values.get("enhanced_altitude"),
        heart_rate=values.get("heart_rate"),
        speed=speed_m_per_s * 3.6 if speed_m_per_s is not None else None,
        cadence=values.get("cadence"),
        temperature=values.get("temperature"),
        timestamp=_local_time(values.get("timestamp")),
    )


def _log_message(message: Any) -> None:
    logger.debug("%s", message.name)
    for fit_field in message.fields:
        logger.debug("  %s = %r %s", fit_field.name, fit_field.value, fit_field.units or "")


def split_lines(
    messages: Iterable[Any],
    log_events: bool = False,
    log_records: bool = True,
) -> list[list[Sample]]:
    """Group positioned records into continuous lines.

    Args:
        messages: FIT data messages in file order.
        log_events: Log every message at DEBUG level.
        log_records: With log_events, include record messages too.

    Returns:
        Non-empty lists of samples.
    """
    lines: list[list[Sample]] = []
    line: list[Sample] = []

    for message in messages:
        if log_events and (log_records or message.name != "record"):
            _log_message(message)

        values = message.get_values()
        if message.name == "event" and _is_timer_stop(values):
            if line:
                lines.append(line)
            line = []
            continue
        if message.name != "record":
            continue

        sample = sample_from_values(values)
        if sample is None:
            # position recording paused, e.g. indoors
            if line:
                lines.append(line)
                line = []
            continue
        line.append(sample)

    if line:
        lines.append(line)
    return lines


def _average(
    first: Any,
    second: Any,
    combine: Callable[[Any, Any], Any],
) -> Any:
    if first is None:
        return second
    if second is None:
        return first
    return combine(first, second)


def _float_mean(a: float, b: float) -> float:
    return (a + b) / 2


def _int_mean(a: int, b: int) -> int:
    # truncate toward zero
    return int((a + b) / 2)


def _time_mean(a: datetime, b: datetime) -> datetime:
    midpoint = (int(a.timestamp()) + int(b.timestamp())) // 2
    return datetime.fromtimestamp(midpoint, tz=timezone.utc).astimezone()


def lines_to_track(lines: list[list[Sample]]) -> dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {},
                "geometry": {
                    "type": "LineString",
                    "coordinates": [sample.lonlat() for sample in line],
                },
            }
            for line in lines
        ],
    }


def lines_to_points(lines: list[list[Sample]]) -> dict[str, Any]:
    """One feature per pair of consecutive samples, with averaged values."""
    features = []
    running_distance_m = 0.0
    for line in lines:
        for first, second in zip(line, line[1:]):
            running_distance_m += vincenty_distance(
                first.latitude, first.longitude, second.latitude, second.longitude
            )

            averaged = {
                Attribute.SPEED: _average(first.speed, second.speed, _float_mean),
                Attribute.ELEVATION: _average(first.elevation, second.elevation, _float_mean),
                Attribute.HEART_RATE: _average(first.heart_rate, second.heart_rate, _int_mean),
                Attribute.CADENCE: _average(first.cadence, second.cadence, _int_mean),
                Attribute.TEMPERATURE: _average(first.temperature, second.temperature, _int_mean),
            }
            properties: dict[str, Any] = {Attribute.RUNNING_DISTANCE.value: running_distance_m}
            for attribute, value in averaged.items():
                if value is not None:
                    properties[attribute.value] = value
            timestamp = _average(first.timestamp, second.timestamp, _time_mean)
            if timestamp is not None:
                properties[Attribute.TIMESTAMP.value] = timestamp.strftime(TIMESTAMP_FORMAT)

            features.append({
                "type": "Feature",
                "properties": properties,
                "geometry": {
                    "type": "LineString",
                    "coordinates": [first.lonlat(), second.lonlat()],
                },
            })

    return {"type": "FeatureCollection", "features": features}


def _extrema(
    lines: list[list[Sample]], value: Callable[[Sample], float | None]
) -> tuple[float, float] | None:
    values = [v for line in lines for sample in line if (v := value(sample)) is not None]
    if not values:
        return None
    return (float(min(values)), float(max(values)))


def build_dataset(lines: list[list[Sample]]) -> dict[str, Any]:
    """Assemble the map dataset document for a set of lines.

    Raises:
        ConversionError: If there are no positioned samples.
    """
    lat_range = _extrema(lines, lambda s: s.latitude)
    lon_range = _extrema(lines, lambda s: s.longitude)
    if lat_range is None or lon_range is None:
        raise ConversionError("No positioned records found")

    # assumes the walk does not cross the antimeridian
    dataset: dict[str, Any] = {
        "center": [sum(lat_range) / 2, sum(lon_range) / 2],
        "zoom": DEFAULT_ZOOM,
        "track": lines_to_track(lines),
        "points": lines_to_points(lines),
    }

    elevation_range = _extrema(lines, lambda s: s.elevation)
    if elevation_range is not None:
        dataset[Attribute.ELEVATION.range_key] = list(elevation_range)

    selectors: dict[Attribute, Callable[[Sample], float | None]] = {
        Attribute.HEART_RATE: lambda s: s.heart_rate,
        Attribute.SPEED: lambda s: s.speed,
        Attribute.CADENCE: lambda s: s.cadence,
        Attribute.TEMPERATURE: lambda s: s.temperature,
    }
    for attribute, selector in selectors.items():
        found = _extrema(lines, selector)
        dataset[attribute.range_key] = list(found or FALLBACK_RANGES[attribute])

    return dataset


def convert_fit_file(
    path: Path,
    log_events: bool = False,
    log_records: bool = True,
) -> dict[str, Any]:
    """Read a FIT file and return its map dataset.

    Args:
        path: FIT activity file.
        log_events: Log every FIT message at DEBUG level.
        log_records: With log_events, include record messages too.

    Returns:
        Dataset document, ready for ``json.dump``.

    Raises:
        ConversionError: If the file cannot be parsed or has no positions.
    """
    logger.info("Converting %s", path)
    try:
        with fitparse.FitFile(str(path)) as fitfile:
            lines = split_lines(fitfile.get_messages(), log_events, log_records)
    except fitparse.FitParseError as e:
        raise ConversionError(f"Cannot parse {path}: {e}") from e

    logger.debug("%s: %d line(s), %d sample(s)", path, len(lines), sum(map(len, lines)))
    return build_dataset(lines)
