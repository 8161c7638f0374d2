"""Command-line interface for walkmap.

Provides CLI commands for rendering walk maps, serving them locally and
converting FIT activity files into map datasets.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import click

from walkmap import __version__
from walkmap.config import DEFAULT_CONFIG_PATH, load_config
from walkmap.lib.logging import setup_logging

if TYPE_CHECKING:
    from walkmap.config import Config
    from walkmap.views.layers import BaseLayer


class JSONOutput:
    """Helper for JSON output formatting."""

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self._data: dict[str, Any] = {}

    def set(self, key: str, value: Any) -> None:
        """Set a value in the output."""
        self._data[key] = value

    def update(self, data: dict[str, Any]) -> None:
        """Update with multiple values."""
        self._data.update(data)

    def output(self) -> None:
        """Print JSON output if enabled."""
        if self.enabled:
            click.echo(json.dumps(self._data, indent=2, default=str))


class Context:
    """CLI context holding shared configuration and state."""

    def __init__(self) -> None:
        self.config: Config | None = None
        self.verbose: int = 0
        self.quiet: bool = False
        self.json_output: bool = False
        self.output: JSONOutput = JSONOutput()

    def log(self, message: str) -> None:
        """Print a message unless quiet or producing JSON."""
        if self.json_output or self.quiet:
            return
        click.echo(message, err=True)

    def error(self, message: str) -> None:
        """Log an error message."""
        if self.json_output:
            self.output.set("error", message)
            self.output.set("status", "error")
        else:
            click.echo(f"Error: {message}", err=True)

    def fail(self, message: str, exit_code: int = 1) -> None:
        """Report an error and exit."""
        self.error(message)
        if self.json_output:
            self.output.output()
        sys.exit(exit_code)

pass_context = click.make_pass_decorator(Context, ensure=True)


def base_layers(config: Config) -> tuple[BaseLayer, ...]:
    """Background layers from the map configuration."""
    from walkmap.views.layers import BaseLayer

    return (BaseLayer("OSM", config.map.tile_url, config.map.attribution),)


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help=f"Configuration file path (default: {DEFAULT_CONFIG_PATH})",
)
@click.option(
    "--data-dir",
    "-d",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Data directory path; maps are read from <data-dir>/maps (default: ./data)",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (can be repeated: -v, -vv)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress non-error output",
)
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output in JSON format",
)
@click.option(
    "--log-file",
    is_flag=True,
    help="Also write a debug log to <data-dir>/logs",
)
@click.version_option(version=__version__, prog_name="walkmap")
@pass_context
def main(
    ctx: Context,
    config_path: Path | None,
    data_dir: Path | None,
    verbose: int,
    quiet: bool,
    json_output: bool,
    log_file: bool,
) -> None:
    """Walk map CLI.

    Render a recorded walk on an interactive map with elevation, heart
    rate, speed, cadence and temperature overlays.
    """
    ctx.verbose = verbose
    ctx.quiet = quiet
    ctx.json_output = json_output
    ctx.output = JSONOutput(json_output)

    ctx.config = load_config(config_path)

    if data_dir is not None:
        ctx.config.data.directory = data_dir

    setup_logging(
        ctx.config,
        console_level=logging.DEBUG if verbose else logging.INFO,
        quiet=quiet or json_output,
        log_to_file=log_file,
    )


@main.command()
@click.option(
    "--url",
    help="Page URL including ?map=<name>; the dataset is fetched over HTTP",
)
@click.option(
    "--dataset",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Local dataset JSON file to render instead of fetching one",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Output HTML file (default: stdout)",
)
@pass_context
def render(
    ctx: Context,
    url: str | None,
    dataset: Path | None,
    output: Path | None,
) -> None:
    """Render a walk map page as standalone HTML."""
    from walkmap.lib.errors import WalkmapError
    from walkmap.views.map import HttpFetcher, render_map_page

    config = ctx.config
    if config is None:
        ctx.fail("Configuration not loaded")
        return

    if (url is None) == (dataset is None):
        ctx.fail("Exactly one of --url or --dataset is required", exit_code=2)
        return

    if dataset is not None:
        page_url = f"http://localhost/index.html?map={quote(dataset.stem)}"
        fetcher: Any = lambda _url: dataset.read_text(encoding="utf-8")  # noqa: E731
    else:
        page_url = url
        fetcher = HttpFetcher(timeout=config.fetch.timeout)

    try:
        html = render_map_page(
            page_url,
            fetcher,
            base_layers=base_layers(config),
            default_zoom=config.map.default_zoom,
        )
    except json.JSONDecodeError as e:
        ctx.fail(f"Malformed map dataset: {e}")
        return
    except WalkmapError as e:
        ctx.fail(str(e))
        return

    if output:
        output.write_text(html, encoding="utf-8")
        ctx.log(f"Map saved to {output}")
        if ctx.json_output:
            ctx.output.update({"status": "success", "output": str(output)})
            ctx.output.output()
    else:
        click.echo(html)


@main.command()
@click.option(
    "--port",
    type=int,
    default=None,
    help="Server port (default: from config, 8080)",
)
@click.option(
    "--host",
    default=None,
    help="Server host (default: from config, 127.0.0.1)",
)
@click.option(
    "--open",
    "open_map",
    help="Open this map in a web browser",
)
@pass_context
def serve(ctx: Context, port: int | None, host: str | None, open_map: str | None) -> None:
    """Serve walk maps from the data directory."""
    from walkmap.config import ensure_maps_dir
    from walkmap.views.map import serve_maps

    config = ctx.config
    if config is None:
        ctx.fail("Configuration not loaded")
        return

    try:
        serve_maps(
            maps_dir=ensure_maps_dir(config),
            host=host or config.server.host,
            port=port or config.server.port,
            base_layers=base_layers(config),
            default_zoom=config.map.default_zoom,
            open_map=open_map,
        )
    except OSError as e:
        ctx.fail(f"Server failed: {e}")


@main.command()
@click.argument(
    "fit_files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    help="Write <name>.json files here instead of printing to stdout",
)
@click.option(
    "--to-maps",
    is_flag=True,
    help="Write datasets into the data directory's maps folder",
)
@click.option(
    "--events",
    is_flag=True,
    help="Log every FIT message (shown with -v)",
)
@click.option(
    "--no-records",
    is_flag=True,
    help="With --events, leave out record messages",
)
@pass_context
def convert(
    ctx: Context,
    fit_files: tuple[Path, ...],
    output_dir: Path | None,
    to_maps: bool,
    events: bool,
    no_records: bool,
) -> None:
    """Convert FIT activity files into map datasets."""
    from walkmap.config import ensure_maps_dir
    from walkmap.lib.errors import ConversionError
    from walkmap.services.fit_convert import convert_fit_file

    config = ctx.config
    if config is None:
        ctx.fail("Configuration not loaded")
        return

    if to_maps:
        output_dir = ensure_maps_dir(config)

    written: list[str] = []
    for fit_file in fit_files:
        try:
            dataset = convert_fit_file(fit_file, log_events=events, log_records=not no_records)
        except (ConversionError, OSError) as e:
            ctx.fail(str(e))
            return

        if output_dir is None:
            click.echo(json.dumps(dataset, indent=2))
            continue

        output_dir.mkdir(parents=True, exist_ok=True)
        target = output_dir / f"{fit_file.stem}.json"
        target.write_text(json.dumps(dataset, indent=2), encoding="utf-8")
        written.append(str(target))
        ctx.log(f"Wrote {target}")

    if ctx.json_output and output_dir is not None:
        ctx.output.update({"status": "success", "written": written})
        ctx.output.output()


if __name__ == "__main__":
    main()
