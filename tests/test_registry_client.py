"""
Tests for the HTTP registry client, against a local stub server.
"""

import base64
import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

from quill.adapters.registry_client import HttpRegistry
from quill.core.config.loader import QuillConfig
from quill.core.errors import NotFound, RegistryError
from quill.core.models import System

NGINX = {
    "name": "nginx",
    "version": "1.1.0",
    "versions": {
        "1.0.0": {"scripts": ["install.sh"]},
        "1.1.0": {"dependencies": {"openssl": "^3.0.0"}, "remoteDependencies": {"db": "*"}},
    },
}


class _Handler(BaseHTTPRequestHandler):
    def _handle(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        self.server.requests.append({
            "method": self.command,
            "path": self.path,
            "headers": {k.lower(): v for k, v in self.headers.items()},
            "body": body,
        })
        status, payload = self.server.routes.get((self.command, self.path), (404, b""))
        if isinstance(payload, (dict, list)):
            payload = json.dumps(payload).encode()
        self.send_response(status)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    do_GET = do_PUT = do_POST = do_DELETE = _handle

    def log_message(self, format, *args):
        pass


@pytest.fixture
def server():
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    httpd.requests = []
    httpd.routes = {
        ("GET", "/systems/nginx"): (200, NGINX),
        ("GET", "/systems/broken"): (500, b"boom"),
        ("GET", "/systems/garbled"): (200, b"{not json"),
        ("GET", "/systems/nginx/1.0.0/tarball"): (200, b"tarball-bytes"),
        ("POST", "/systems"): (201, {}),
        ("PUT", "/systems/nginx/1.2.0"): (200, {}),
        ("PUT", "/systems/nginx/1.2.0/tarball"): (200, b""),
        ("PUT", "/systems/nginx/owners/alice"): (200, b""),
        ("DELETE", "/systems/nginx/owners/alice"): (200, b""),
        ("GET", "/config"): (200, {"configs": [{"name": "prod"}, {"name": "dev"}]}),
        ("GET", "/config/prod"): (200, {"name": "prod", "settings": {"db": {"host": "p"}}}),
        ("PUT", "/config/prod"): (200, {}),
        ("DELETE", "/config/prod"): (200, b""),
    }
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield httpd
    httpd.shutdown()
    httpd.server_close()


@pytest.fixture
def client(server) -> HttpRegistry:
    host, port = server.server_address
    return HttpRegistry(f"http://{host}:{port}/", timeout=5)


class TestSystems:
    """Tests for reading and writing system records."""

    def test_get_system(self, client):
        record = client.get_system("nginx")
        assert record.version == "1.1.0"
        assert sorted(record.versions) == ["1.0.0", "1.1.0"]
        latest = record.versions["1.1.0"]
        assert latest.tag == "nginx@1.1.0"
        assert latest.dependencies == {"openssl": "^3.0.0"}
        assert latest.remote_dependencies == {"db": "*"}

    def test_unknown_system(self, client):
        with pytest.raises(NotFound) as exc:
            client.get_system("missing")
        assert exc.value.system == "missing"

    def test_server_error(self, client):
        with pytest.raises(RegistryError, match="500"):
            client.get_system("broken")

    def test_invalid_json(self, client):
        with pytest.raises(RegistryError, match="invalid JSON"):
            client.get_system("garbled")

    def test_unreachable(self):
        client = HttpRegistry("http://127.0.0.1:1", timeout=1)
        with pytest.raises(RegistryError, match="cannot reach"):
            client.get_system("nginx")

    def test_download(self, client, tmp_path: Path):
        dest = client.download("nginx", "1.0.0", tmp_path / "dl" / "system.tgz")
        assert dest.read_bytes() == b"tarball-bytes"

    def test_create_posts_descriptor(self, client, server):
        system = System.model_validate({
            "name": "nginx", "version": "1.2.0", "remoteDependencies": {"db": "*"},
        })
        client.create(system)

        request = server.requests[-1]
        assert (request["method"], request["path"]) == ("POST", "/systems")
        body = json.loads(request["body"])
        assert body["name"] == "nginx"
        assert body["remoteDependencies"] == {"db": "*"}

    def test_add_version_and_upload(self, client, server, tmp_path: Path):
        tarball = tmp_path / "nginx.tgz"
        tarball.write_bytes(b"\x1f\x8b payload")
        client.add_version(System(name="nginx", version="1.2.0"))
        client.upload("nginx", "1.2.0", tarball)

        put_version, put_tarball = server.requests[-2:]
        assert put_version["path"] == "/systems/nginx/1.2.0"
        assert put_tarball["body"] == b"\x1f\x8b payload"
        assert put_tarball["headers"]["content-type"] == "application/octet-stream"

    def test_owners(self, client, server):
        client.add_owner("nginx", "alice")
        client.remove_owner("nginx", "alice")
        assert [(r["method"], r["path"]) for r in server.requests] == [
            ("PUT", "/systems/nginx/owners/alice"),
            ("DELETE", "/systems/nginx/owners/alice"),
        ]

    def test_basic_auth(self, server):
        host, port = server.server_address
        client = HttpRegistry(f"http://{host}:{port}", username="alice", password="pw")
        client.get_system("nginx")

        expected = base64.b64encode(b"alice:pw").decode()
        assert server.requests[-1]["headers"]["authorization"] == f"Basic {expected}"

    def test_no_auth_header_without_credentials(self, client, server):
        client.get_system("nginx")
        assert "authorization" not in server.requests[-1]["headers"]


class TestConfigSets:
    """Tests for named config sets."""

    def test_list(self, client):
        assert client.list_configs() == ["prod", "dev"]

    def test_get_unwraps_settings(self, client):
        assert client.get_config("prod") == {"db": {"host": "p"}}

    def test_get_unknown(self, client):
        with pytest.raises(NotFound):
            client.get_config("staging")

    def test_set(self, client, server):
        client.set_config("prod", {"db": {"host": "q"}})
        body = json.loads(server.requests[-1]["body"])
        assert body == {"name": "prod", "settings": {"db": {"host": "q"}}}

    def test_delete(self, client, server):
        client.delete_config("prod")
        assert server.requests[-1]["method"] == "DELETE"


class TestFromConfig:
    """Tests for building a client from .quillconf settings."""

    def test_from_config(self):
        config = QuillConfig(remote_host="reg", port=8080, username="u", password="p", request_timeout=3)
        client = HttpRegistry.from_config(config)
        assert client.base_uri == "http://reg:8080"
        assert client.timeout == 3
        assert client.name == "http"
