"""Map page rendering for walkmap.

Resolves which walk a page asks for, fetches its dataset, builds the
overlays and hands them to a map canvas. The bundled canvas renders a
standalone Leaflet.js HTML page; the bundled server renders such pages on
request from a local maps directory.
"""

from __future__ import annotations

import html
import http.server
import json
import logging
import socketserver
import webbrowser
from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import parse_qs, quote, unquote, urlsplit

import requests

from walkmap.lib.errors import FetchError, WalkmapError
from walkmap.models.dataset import Dataset
from walkmap.views.layers import OSM_LAYER, BaseLayer, LayerSet, Overlay, build_layers

logger = logging.getLogger("walkmap.map")

MAP_CONTAINER_ID = "the-map"
MISSING_MAP_MESSAGE = "You must specify a map to load."
DEFAULT_CENTER = (0.0, 0.0)
DEFAULT_ZOOM = 2

# Characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "!'()*-._~"

Fetcher = Callable[[str], str]


class MapCanvas(Protocol):
    """Something that can display layers on a map."""

    def initialize(
        self,
        center: Sequence[float] | None,
        zoom: int | None,
        layers: Sequence[BaseLayer | Overlay],
    ) -> None: ...

    def add_layer_control(
        self,
        base_layers: Mapping[str, BaseLayer],
        overlays: Mapping[str, Overlay],
    ) -> None: ...

    def show_error(self, message: str) -> None: ...


class SessionState(Enum):
    AWAITING_DATASET = "awaiting_dataset"
    RENDERED = "rendered"
    ERROR_DISPLAYED = "error_displayed"


def resolve_map_name(page_url: str) -> str | None:
    """Return the ``map`` query parameter of a page URL, or None if unset or empty."""
    query = parse_qs(urlsplit(page_url).query, keep_blank_values=True)
    values = query.get("map")
    if not values or not values[0]:
        return None
    return values[0]


def map_url(page_url: str, map_name: str) -> str:
    """Dataset URL for a map, relative to the page that shows it.

    The last path segment of the page is replaced by
    ``maps/<encoded name>.json``.
    """
    parts = urlsplit(page_url)
    pieces = parts.path.split("/")
    if len(pieces) > 1:
        pieces.pop()
    pieces.append("maps")
    pieces.append(quote(map_name, safe=_URI_COMPONENT_SAFE))
    return f"{parts.scheme}://{parts.netloc}{'/'.join(pieces)}.json"


class HttpFetcher:
    """Download map datasets over HTTP."""

    def __init__(self, timeout: float = 10.0, session: requests.Session | None = None) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()

    def __call__(self, url: str) -> str:
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(url, str(e)) from e
        return response.content.decode("utf-8")


class DirectoryFetcher:
    """Resolve dataset URLs against a local maps directory."""

    def __init__(self, maps_dir: Path) -> None:
        self.maps_dir = maps_dir

    @staticmethod
    def dataset_filename(url: str) -> str | None:
        """File name of a '.../maps/<name>.json' URL, or None for any other URL."""
        path = unquote(urlsplit(url).path)
        if "/maps/" not in path:
            return None
        filename = path.rsplit("/maps/", 1)[1]
        if not filename.endswith(".json") or "/" in filename or filename.startswith("."):
            return None
        return filename

    def path_for(self, url: str) -> Path:
        filename = self.dataset_filename(url)
        if filename is None:
            raise FetchError(url, "not a map dataset URL")
        return self.maps_dir / filename

    def __call__(self, url: str) -> str:
        path = self.path_for(url)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise FetchError(url, "no such map") from e


class MapSession:
    """Load one map into a canvas.

    ``load()`` goes from AWAITING_DATASET to RENDERED, or to
    ERROR_DISPLAYED when the page names no map. Fetch failures and
    malformed datasets propagate to the caller.
    """

    def __init__(
        self,
        page_url: str,
        fetcher: Fetcher,
        canvas: MapCanvas,
        base_layers: Sequence[BaseLayer] = (OSM_LAYER,),
    ) -> None:
        self.page_url = page_url
        self.fetcher = fetcher
        self.canvas = canvas
        self.base_layers = base_layers
        self.state = SessionState.AWAITING_DATASET
        self.dataset: Dataset | None = None
        self.layers: LayerSet | None = None

    def load(self) -> SessionState:
        map_name = resolve_map_name(self.page_url)
        if map_name is None:
            logger.warning("No map specified in %s", self.page_url)
            self.canvas.show_error(MISSING_MAP_MESSAGE)
            self.state = SessionState.ERROR_DISPLAYED
            return self.state

        url = map_url(self.page_url, map_name)
        logger.info("Loading map %s from %s", map_name, url)
        self.dataset = Dataset.from_json(self.fetcher(url))

        self.layers = build_layers(self.dataset, self.base_layers)
        self.canvas.initialize(self.dataset.center, self.dataset.zoom, self.layers.default_visible)
        self.canvas.add_layer_control(self.layers.base_layers, self.layers.overlays)
        self.state = SessionState.RENDERED
        return self.state


def _script_json(data: Any) -> str:
    # keep "</script>" inside strings from closing the script element
    return json.dumps(data, ensure_ascii=False).replace("</", "<\\/")


class LeafletCanvas:
    """Map canvas that renders a standalone Leaflet HTML page."""

    def __init__(
        self,
        title: str = "Walk",
        default_center: Sequence[float] = DEFAULT_CENTER,
        default_zoom: int = DEFAULT_ZOOM,
    ) -> None:
        self.title = title
        self.default_center = default_center
        self.default_zoom = default_zoom
        self.center: Sequence[float] | None = None
        self.zoom: int | None = None
        self.initial_layers: list[BaseLayer | Overlay] = []
        self.base_layers: dict[str, BaseLayer] = {}
        self.overlays: dict[str, Overlay] = {}
        self.error: str | None = None
        self.initialized = False

    def initialize(
        self,
        center: Sequence[float] | None,
        zoom: int | None,
        layers: Sequence[BaseLayer | Overlay],
    ) -> None:
        self.center = center if center is not None else self.default_center
        self.zoom = zoom if zoom is not None else self.default_zoom
        self.initial_layers = list(layers)
        self.initialized = True

    def add_layer_control(
        self,
        base_layers: Mapping[str, BaseLayer],
        overlays: Mapping[str, Overlay],
    ) -> None:
        self.base_layers = dict(base_layers)
        self.overlays = dict(overlays)

    def show_error(self, message: str) -> None:
        self.error = message

    def _is_initial(self, layer: BaseLayer | Overlay) -> bool:
        return any(layer is initial for initial in self.initial_layers)

    def render(self) -> str:
        """Return the page as HTML."""
        if self.error is not None:
            return self._render_page(html.escape(self.error), script="")
        if not self.initialized:
            raise WalkmapError("Map canvas was never initialized")

        base_specs = [
            {
                "name": name,
                "url": layer.tile_url,
                "attribution": layer.attribution,
                "visible": self._is_initial(layer),
            }
            for name, layer in self.base_layers.items()
        ]
        overlay_specs = [
            {
                "name": name,
                "data": overlay.to_geojson(),
                "visible": self._is_initial(overlay),
            }
            for name, overlay in self.overlays.items()
        ]
        view = {"center": list(self.center or self.default_center), "zoom": self.zoom}

        script = f"""
    <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
    <script>
        var baseSpecs = {_script_json(base_specs)};
        var overlaySpecs = {_script_json(overlay_specs)};
        var view = {_script_json(view)};

        var baseMaps = {{}};
        var overlayMaps = {{}};
        var initialLayers = [];

        baseSpecs.forEach(function (spec) {{
            var layer = L.tileLayer(spec.url, {{
                attribution: spec.attribution,
                maxZoom: 19,
            }});
            baseMaps[spec.name] = layer;
            if (spec.visible) {{
                initialLayers.push(layer);
            }}
        }});

        overlaySpecs.forEach(function (spec) {{
            var layer = L.geoJSON(spec.data, {{
                style: function (feature) {{
                    return feature.style || {{}};
                }},
                onEachFeature: function (feature, featureLayer) {{
                    if (feature.popup) {{
                        featureLayer.bindPopup(feature.popup);
                    }}
                }},
            }});
            overlayMaps[spec.name] = layer;
            if (spec.visible) {{
                initialLayers.push(layer);
            }}
        }});

        var theMap = L.map("{MAP_CONTAINER_ID}", {{
            center: view.center,
            zoom: view.zoom,
            layers: initialLayers,
        }});
        L.control.layers(baseMaps, overlayMaps).addTo(theMap);
    </script>"""
        return self._render_page("", script=script)

    def _render_page(self, container_text: str, script: str) -> str:
        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(self.title)}</title>
    <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css">
    <style>
        body {{ margin: 0; padding: 0; }}
        #{MAP_CONTAINER_ID} {{ position: absolute; top: 0; bottom: 0; width: 100%; }}
    </style>
</head>
<body>
    <div id="{MAP_CONTAINER_ID}">{container_text}</div>{script}
</body>
</html>
"""


def render_map_page(
    page_url: str,
    fetcher: Fetcher,
    base_layers: Sequence[BaseLayer] = (OSM_LAYER,),
    default_zoom: int = DEFAULT_ZOOM,
) -> str:
    """Render the HTML page a browser would show for ``page_url``.

    Args:
        page_url: URL of the page, including its ``map`` query parameter.
        fetcher: Callable returning the dataset document for a URL.
        base_layers: Background tile layers.
        default_zoom: Zoom used when the dataset has none.

    Returns:
        HTML content as string.

    Raises:
        FetchError: If the dataset cannot be retrieved.
        json.JSONDecodeError: If the dataset is not valid JSON.
    """
    title = resolve_map_name(page_url) or "Walk"
    canvas = LeafletCanvas(title=title, default_zoom=default_zoom)
    MapSession(page_url, fetcher, canvas, base_layers).load()
    return canvas.render()


class MapRequestHandler(http.server.BaseHTTPRequestHandler):
    """HTTP request handler serving map pages and their datasets."""

    maps_dir: Path  # Set by serve_maps()
    base_layers: Sequence[BaseLayer] = (OSM_LAYER,)
    default_zoom: int = DEFAULT_ZOOM

    def do_GET(self) -> None:
        """Handle GET requests."""
        fetcher = DirectoryFetcher(self.maps_dir)

        if fetcher.dataset_filename(self.path) is not None:
            self._serve_dataset(fetcher)
        else:
            self._serve_page(fetcher)

    def _page_url(self) -> str:
        host = self.headers.get("Host") or "{}:{}".format(*self.server.server_address[:2])
        return f"http://{host}{self.path}"

    def _serve_dataset(self, fetcher: DirectoryFetcher) -> None:
        try:
            path = fetcher.path_for(self._page_url())
        except FetchError:
            self.send_error(404, "Not Found")
            return
        if not path.is_file():
            self.send_error(404, "Map not found")
            return
        self._send(path.read_bytes(), "application/json")

    def _serve_page(self, fetcher: DirectoryFetcher) -> None:
        try:
            content = render_map_page(
                self._page_url(), fetcher, self.base_layers, self.default_zoom
            )
        except FetchError as e:
            logger.warning("%s", e)
            self.send_error(404, "Map not found")
            return
        except json.JSONDecodeError as e:
            logger.error("Malformed map dataset: %s", e)
            self.send_error(500, "Malformed map dataset")
            return
        self._send(content.encode("utf-8"), "text/html; charset=utf-8")

    def _send(self, body: bytes, content_type: str) -> None:
        self.send_response(200)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: object) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


def serve_maps(
    maps_dir: Path,
    host: str = "127.0.0.1",
    port: int = 8080,
    base_layers: Sequence[BaseLayer] = (OSM_LAYER,),
    default_zoom: int = DEFAULT_ZOOM,
    open_map: str | None = None,
) -> None:
    """Start the map server.

    Args:
        maps_dir: Directory holding ``<name>.json`` datasets.
        host: Server host.
        port: Server port.
        base_layers: Background tile layers for rendered pages.
        default_zoom: Zoom used when a dataset has none.
        open_map: Open this map in a web browser once the server is up.
    """
    MapRequestHandler.maps_dir = maps_dir
    MapRequestHandler.base_layers = base_layers
    MapRequestHandler.default_zoom = default_zoom

    # Allow port reuse to avoid "Address already in use" errors
    socketserver.TCPServer.allow_reuse_address = True

    with socketserver.TCPServer((host, port), MapRequestHandler) as httpd:
        url = f"http://{host}:{port}/index.html"
        logger.info("Serving maps from %s at %s?map=<name>", maps_dir, url)
        logger.info("Press Ctrl+C to stop")

        if open_map:
            webbrowser.open(f"{url}?map={quote(open_map, safe=_URI_COMPONENT_SAFE)}")

        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info("Server stopped")
