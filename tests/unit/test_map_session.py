"""Unit tests for map session loading and page rendering."""

from __future__ import annotations

import json
import socketserver
import threading
from collections.abc import Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest
import requests
import responses

from walkmap.lib.errors import FetchError, WalkmapError
from walkmap.views.layers import BaseLayer, Overlay
from walkmap.views.map import (
    MISSING_MAP_MESSAGE,
    DirectoryFetcher,
    HttpFetcher,
    LeafletCanvas,
    MapRequestHandler,
    MapSession,
    SessionState,
    map_url,
    render_map_page,
    resolve_map_name,
)


class RecordingCanvas:
    """Canvas that remembers what it was asked to do."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.center: Sequence[float] | None = None
        self.zoom: int | None = None
        self.layers: list[BaseLayer | Overlay] = []
        self.base_layers: dict[str, BaseLayer] = {}
        self.overlays: dict[str, Overlay] = {}
        self.error: str | None = None

    def initialize(self, center: Any, zoom: Any, layers: Sequence[BaseLayer | Overlay]) -> None:
        self.calls.append("initialize")
        self.center, self.zoom, self.layers = center, zoom, list(layers)

    def add_layer_control(
        self, base_layers: Mapping[str, BaseLayer], overlays: Mapping[str, Overlay]
    ) -> None:
        self.calls.append("add_layer_control")
        self.base_layers, self.overlays = dict(base_layers), dict(overlays)

    def show_error(self, message: str) -> None:
        self.calls.append("show_error")
        self.error = message


def _unexpected_fetch(url: str) -> str:
    raise AssertionError(f"unexpected fetch of {url}")


class TestResolveMapName:
    """Tests for resolve_map_name."""

    def test_present(self) -> None:
        assert resolve_map_name("http://example.com/walks/index.html?map=alps") == "alps"

    def test_decoded(self) -> None:
        assert resolve_map_name("http://example.com/?map=morning%20walk") == "morning walk"

    @pytest.mark.parametrize(
        "url",
        ["http://example.com/index.html", "http://example.com/?map=", "http://example.com/?other=1"],
    )
    def test_missing_or_empty(self, url: str) -> None:
        assert resolve_map_name(url) is None


class TestMapUrl:
    """Tests for map_url."""

    def test_replaces_last_segment(self) -> None:
        assert (
            map_url("http://example.com/walks/index.html?map=alps", "alps")
            == "http://example.com/walks/maps/alps.json"
        )

    def test_trailing_slash(self) -> None:
        assert (
            map_url("http://example.com/walks/", "my walk/1")
            == "http://example.com/walks/maps/my%20walk%2F1.json"
        )

    def test_root_page(self) -> None:
        assert map_url("https://example.com:8443", "a") == "https://example.com:8443/maps/a.json"

    def test_uri_component_safe_characters(self) -> None:
        assert map_url("http://h/x", "it's(1)~*") == "http://h/maps/it's(1)~*.json"


class TestMapSession:
    """Tests for MapSession."""

    def test_missing_map_shows_error_without_fetch(self) -> None:
        canvas = RecordingCanvas()
        session = MapSession("http://example.com/index.html", _unexpected_fetch, canvas)

        assert session.load() is SessionState.ERROR_DISPLAYED
        assert canvas.error == MISSING_MAP_MESSAGE
        assert canvas.calls == ["show_error"]

    def test_renders_dataset(self, sample_dataset: dict[str, Any]) -> None:
        fetched: list[str] = []

        def fetcher(url: str) -> str:
            fetched.append(url)
            return json.dumps(sample_dataset)

        canvas = RecordingCanvas()
        session = MapSession("http://example.com/walks/index.html?map=vienna", fetcher, canvas)

        assert session.state is SessionState.AWAITING_DATASET
        assert session.load() is SessionState.RENDERED
        assert fetched == ["http://example.com/walks/maps/vienna.json"]
        assert canvas.calls == ["initialize", "add_layer_control"]
        assert canvas.center == (48.2, 16.37)
        assert canvas.zoom == 14
        assert [layer.name for layer in canvas.layers] == ["OSM", "track", "heart rate"]
        assert list(canvas.overlays) == [
            "track", "heart rate", "elevation", "speed", "cadence", "temperature",
        ]

    def test_absent_view_is_left_to_canvas(self) -> None:
        canvas = RecordingCanvas()
        MapSession("http://h/?map=x", lambda url: "{}", canvas).load()

        assert canvas.center is None
        assert canvas.zoom is None

    def test_malformed_dataset_propagates(self) -> None:
        canvas = RecordingCanvas()
        session = MapSession("http://h/?map=x", lambda url: "<html>", canvas)

        with pytest.raises(json.JSONDecodeError):
            session.load()
        assert session.state is SessionState.AWAITING_DATASET
        assert canvas.calls == []


class TestHttpFetcher:
    """Tests for HttpFetcher."""

    @responses.activate
    def test_fetch(self, sample_dataset: dict[str, Any]) -> None:
        url = "http://example.com/maps/vienna.json"
        responses.add(responses.GET, url, json=sample_dataset)

        assert json.loads(HttpFetcher()(url)) == sample_dataset

    @responses.activate
    def test_http_error(self) -> None:
        url = "http://example.com/maps/missing.json"
        responses.add(responses.GET, url, status=404)

        with pytest.raises(FetchError, match="missing.json"):
            HttpFetcher()(url)

    @responses.activate
    def test_connection_error(self) -> None:
        with pytest.raises(FetchError):
            HttpFetcher()("http://unreachable.invalid/maps/a.json")


class TestDirectoryFetcher:
    """Tests for DirectoryFetcher."""

    def test_fetch(self, maps_dir: Path) -> None:
        text = DirectoryFetcher(maps_dir)("http://h/walks/maps/morning%20walk.json")

        assert json.loads(text)["zoom"] == 14

    def test_missing_map(self, maps_dir: Path) -> None:
        with pytest.raises(FetchError, match="no such map"):
            DirectoryFetcher(maps_dir)("http://h/maps/nowhere.json")

    @pytest.mark.parametrize(
        "url",
        [
            "http://h/maps/..%2Fsecret.json",
            "http://h/maps/.hidden.json",
            "http://h/maps/notes.txt",
            "http://h/other/walk.json",
        ],
    )
    def test_rejects_other_paths(self, maps_dir: Path, url: str) -> None:
        with pytest.raises(FetchError):
            DirectoryFetcher(maps_dir)(url)

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("http://h/maps/morning%20walk.json", "morning walk.json"),
            ("http://h/maps/maps/walk.json", "walk.json"),
            ("http://h/maps/index.html?map=walk", None),
            ("/maps/", None),
        ],
    )
    def test_dataset_filename(self, url: str, expected: str | None) -> None:
        assert DirectoryFetcher.dataset_filename(url) == expected


class TestLeafletCanvas:
    """Tests for LeafletCanvas."""

    def test_error_page(self) -> None:
        canvas = LeafletCanvas()
        canvas.show_error(MISSING_MAP_MESSAGE)
        page = canvas.render()

        assert f'<div id="the-map">{MISSING_MAP_MESSAGE}</div>' in page
        assert "L.map" not in page

    def test_uninitialized(self) -> None:
        with pytest.raises(WalkmapError):
            LeafletCanvas().render()

    def test_defaults_for_absent_view(self) -> None:
        canvas = LeafletCanvas()
        canvas.initialize(None, None, [])
        canvas.add_layer_control({}, {})
        page = canvas.render()

        assert '{"center": [0.0, 0.0], "zoom": 2}' in page

    def test_layers_and_visibility(self, sample_dataset: dict[str, Any]) -> None:
        page = render_map_page(
            "http://h/index.html?map=vienna", lambda url: json.dumps(sample_dataset)
        )

        assert "<title>vienna</title>" in page
        assert "L.control.layers(baseMaps, overlayMaps)" in page
        assert '"name": "heart rate"' in page
        assert '"center": [48.2, 16.37], "zoom": 14' in page
        assert "<p>4.2 km/h<\\/p>" in page

    def test_script_is_not_closed_early(self) -> None:
        dataset = {
            "track": {
                "type": "Feature",
                "properties": {"name": "</script><script>alert(1)</script>"},
                "geometry": None,
            }
        }
        page = render_map_page("http://h/?map=x", lambda url: json.dumps(dataset))

        assert "</script><script>alert(1)" not in page


@pytest.fixture
def map_server(maps_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[str]:
    """Run the map server on a free port; yields its base URL."""
    monkeypatch.setattr(MapRequestHandler, "maps_dir", maps_dir, raising=False)
    server = socketserver.TCPServer(("127.0.0.1", 0), MapRequestHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        host, port = server.server_address[:2]
        yield f"http://{host}:{port}"
    finally:
        server.shutdown()
        server.server_close()


class TestMapServer:
    """Tests for MapRequestHandler."""

    def test_serves_dataset(self, map_server: str) -> None:
        response = requests.get(f"{map_server}/walks/maps/morning%20walk.json", timeout=5)

        assert response.status_code == 200
        assert response.headers["Content-Type"] == "application/json"
        assert response.json()["zoom"] == 14

    def test_renders_page(self, map_server: str) -> None:
        response = requests.get(f"{map_server}/walks/index.html?map=morning%20walk", timeout=5)

        assert response.status_code == 200
        assert "<title>morning walk</title>" in response.text
        assert '"name": "cadence"' in response.text

    def test_page_without_map(self, map_server: str) -> None:
        response = requests.get(f"{map_server}/index.html", timeout=5)

        assert response.status_code == 200
        assert MISSING_MAP_MESSAGE in response.text

    def test_unknown_map(self, map_server: str) -> None:
        assert requests.get(f"{map_server}/index.html?map=nope", timeout=5).status_code == 404
        assert requests.get(f"{map_server}/maps/nope.json", timeout=5).status_code == 404

    def test_renders_page_under_maps_directory(self, map_server: str) -> None:
        """Verify a page inside a maps/ directory is rendered, not served as a dataset."""
        response = requests.get(f"{map_server}/maps/index.html?map=morning%20walk", timeout=5)

        assert response.status_code == 200
        assert "<title>morning walk</title>" in response.text
