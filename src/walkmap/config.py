"""Configuration management for walkmap.

Handles loading configuration from TOML files and environment variables
with proper precedence.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


DEFAULT_CONFIG_PATH = Path.home() / ".config" / "walkmap" / "config.toml"
LOCAL_CONFIG_NAME = ".walkmap.toml"
DEFAULT_DATA_DIR = Path("./data")

OSM_TILE_URL = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
OSM_ATTRIBUTION = (
    '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a> contributors'
)


@dataclass
class DataConfig:
    """Data storage configuration."""

    directory: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)

    @property
    def maps_dir(self) -> Path:
        """Directory holding the ``<name>.json`` map datasets."""
        return self.directory / "maps"


@dataclass
class ServerConfig:
    """Local map server configuration."""

    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class FetchConfig:
    """Dataset download configuration."""

    timeout: float = 10.0


@dataclass
class MapConfig:
    """Map canvas configuration."""

    tile_url: str = OSM_TILE_URL
    attribution: str = OSM_ATTRIBUTION
    default_zoom: int = 2


@dataclass
class Config:
    """Main configuration container."""

    data: DataConfig = field(default_factory=DataConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    map: MapConfig = field(default_factory=MapConfig)
    config_path: Path | None = None


def _get_env_value(key: str, default: str = "") -> str:
    """Get environment variable value."""
    return os.environ.get(key, default)


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file and environment variables.

    Configuration is loaded with the following precedence (highest to lowest):
    1. Environment variables
    2. Configuration file
    3. Default values

    The configuration file is, in order: the explicit ``config_path``, the
    path in ``WALKMAP_CONFIG``, ``./.walkmap.toml`` if it exists, and the
    user-level default.

    Args:
        config_path: Path to configuration file. If None, it is discovered.

    Returns:
        Populated Config object.
    """
    config = Config()

    if config_path is None:
        env_config = _get_env_value("WALKMAP_CONFIG")
        if env_config:
            config_path = Path(env_config)
        elif Path(LOCAL_CONFIG_NAME).exists():
            config_path = Path(LOCAL_CONFIG_NAME)
        else:
            config_path = DEFAULT_CONFIG_PATH

    config.config_path = config_path

    if config_path.exists():
        config = _load_from_file(config_path, config)

    return _apply_env_overrides(config)


def _load_from_file(path: Path, config: Config) -> Config:
    """Load configuration from TOML file.

    Args:
        path: Path to TOML file.
        config: Existing config to update.

    Returns:
        Updated Config object.
    """
    with open(path, "rb") as f:
        data = tomllib.load(f)

    if "data" in data:
        data_section = data["data"]
        if "directory" in data_section:
            config.data.directory = Path(data_section["directory"])

    if "server" in data:
        server = data["server"]
        config.server.host = server.get("host", config.server.host)
        config.server.port = int(server.get("port", config.server.port))

    if "fetch" in data:
        config.fetch.timeout = float(data["fetch"].get("timeout", config.fetch.timeout))

    if "map" in data:
        map_section = data["map"]
        config.map.tile_url = map_section.get("tile_url", config.map.tile_url)
        config.map.attribution = map_section.get("attribution", config.map.attribution)
        config.map.default_zoom = int(map_section.get("default_zoom", config.map.default_zoom))

    return config


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to configuration.

    Args:
        config: Config to update.

    Returns:
        Updated Config object.
    """
    if data_dir := _get_env_value("WALKMAP_DATA_DIR"):
        config.data.directory = Path(data_dir)
    if host := _get_env_value("WALKMAP_HOST"):
        config.server.host = host
    if port := _get_env_value("WALKMAP_PORT"):
        config.server.port = int(port)

    return config


def ensure_maps_dir(config: Config) -> Path:
    """Ensure the maps directory exists and return its path.

    Args:
        config: Configuration with data directory setting.

    Returns:
        Path to the maps directory.
    """
    maps_dir = config.data.maps_dir.resolve()
    maps_dir.mkdir(parents=True, exist_ok=True)
    return maps_dir
