"""Shared fixtures for walkmap tests."""

from __future__ import annotations

import json
import logging
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner


def _segment(lon: float, lat: float, **properties: Any) -> dict[str, Any]:
    return {
        "type": "Feature",
        "properties": properties,
        "geometry": {
            "type": "LineString",
            "coordinates": [[lon, lat], [lon + 0.001, lat + 0.001]],
        },
    }


@pytest.fixture
def sample_dataset() -> dict[str, Any]:
    """A small walk with every attribute present on at least one point."""
    return {
        "center": [48.2, 16.37],
        "zoom": 14,
        "track": {
            "type": "FeatureCollection",
            "features": [
                {
                    "type": "Feature",
                    "properties": {},
                    "geometry": {
                        "type": "LineString",
                        "coordinates": [[16.37, 48.2], [16.371, 48.201], [16.372, 48.202]],
                    },
                }
            ],
        },
        "points": {
            "type": "FeatureCollection",
            "features": [
                _segment(
                    16.37, 48.2,
                    speed=4.2, heart_rate=95, elevation=320.0, running_distance=133.0,
                    cadence=55, temperature=18, timestamp="2024-05-01 10:00:00",
                ),
                _segment(
                    16.371, 48.201,
                    speed=5.5, heart_rate=130, elevation=350.0, running_distance=266.0,
                ),
            ],
        },
        "elevation_range": [300.0, 400.0],
        "heart_rate_range": [80, 160],
        "speed_range": [0.0, 10.0],
    }


@pytest.fixture
def plain_dataset() -> dict[str, Any]:
    """A walk recorded without heart rate, cadence or temperature."""
    return {
        "center": [47.0, 15.0],
        "zoom": 13,
        "points": {
            "type": "FeatureCollection",
            "features": [
                _segment(15.0, 47.0, speed=3.0, elevation=310.0, running_distance=100.0),
                _segment(15.001, 47.001, speed=3.5, elevation=315.0, running_distance=200.0),
            ],
        },
    }


@pytest.fixture
def temp_data_dir(tmp_path: Path) -> Path:
    """Data directory with an empty maps folder."""
    data_dir = tmp_path / "data"
    (data_dir / "maps").mkdir(parents=True)
    return data_dir


@pytest.fixture
def maps_dir(temp_data_dir: Path, sample_dataset: dict[str, Any]) -> Path:
    """Maps folder holding ``morning walk.json``."""
    maps = temp_data_dir / "maps"
    (maps / "morning walk.json").write_text(json.dumps(sample_dataset), encoding="utf-8")
    return maps


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def cli_env(temp_data_dir: Path) -> dict[str, str]:
    """Environment pointing the CLI at the temporary data directory."""
    return {
        "WALKMAP_DATA_DIR": str(temp_data_dir),
        "WALKMAP_CONFIG": str(temp_data_dir / "no-such-config.toml"),
    }


@pytest.fixture(autouse=True)
def _reset_walkmap_logger() -> Generator[None, None, None]:
    """Drop handlers the CLI attaches to streams that die with each invocation."""
    yield
    logger = logging.getLogger("walkmap")
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
