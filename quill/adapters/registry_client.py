"""
HTTP registry client — talks JSON to a quill system registry.

Routes::

    GET    /systems/<name>                      system record
    POST   /systems                             create
    PUT    /systems/<name>/<version>            add version
    GET    /systems/<name>/<version>/tarball    download
    PUT    /systems/<name>/<version>/tarball    upload
    PUT    /systems/<name>/owners/<user>        add owner
    DELETE /systems/<name>/owners/<user>        remove owner
    GET    /config                              list config sets
    GET    /config/<name>                       read config set
    PUT    /config/<name>                       write config set
    DELETE /config/<name>                       delete config set

Every request carries a fixed timeout and, when credentials are
configured, HTTP basic auth.
"""

from __future__ import annotations

import base64
import json
import logging
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any
from urllib.parse import quote

from quill.adapters.base import Registry
from quill.core.config.loader import QuillConfig
from quill.core.errors import NotFound, RegistryError
from quill.core.models.system import RegistryRecord, System

logger = logging.getLogger(__name__)


class HttpRegistry(Registry):
    """Registry reached over HTTP."""

    def __init__(
        self,
        base_uri: str,
        *,
        username: str = "",
        password: str = "",
        timeout: float = 30.0,
    ) -> None:
        self.base_uri = base_uri.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: QuillConfig) -> HttpRegistry:
        return cls(
            config.remote_uri,
            username=config.username,
            password=config.password,
            timeout=config.request_timeout,
        )

    @property
    def name(self) -> str:
        return "http"

    # ── Transport ───────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        data: bytes | None = None,
        content_type: str = "application/json",
        subject: str = "",
    ) -> bytes:
        url = f"{self.base_uri}{path}"
        if body is not None:
            data = json.dumps(body).encode("utf-8")

        req = urllib.request.Request(url, data=data, method=method)
        req.add_header("Accept", "application/json")
        if data is not None:
            req.add_header("Content-Type", content_type)
        if self.username:
            token = base64.b64encode(f"{self.username}:{self.password}".encode()).decode()
            req.add_header("Authorization", f"Basic {token}")

        logger.debug("%s %s", method, url)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as e:
            if e.code == 404:
                raise NotFound(f"not found in registry ({method} {path})", system=subject) from e
            raise RegistryError(f"{method} {path} returned {e.code}", system=subject, cause=e) from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise RegistryError(f"cannot reach registry at {self.base_uri}", system=subject, cause=e) from e

    def _json(self, method: str, path: str, **kwargs) -> Any:
        raw = self._request(method, path, **kwargs)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise RegistryError(f"invalid JSON from {path}", system=kwargs.get("subject", ""), cause=e) from e

    # ── Systems ─────────────────────────────────────────────────

    def get_system(self, name: str) -> RegistryRecord:
        payload = self._json("GET", f"/systems/{quote(name)}", subject=name)
        if not isinstance(payload, dict):
            raise RegistryError("malformed system record", system=name)
        payload.setdefault("name", name)
        return RegistryRecord.from_payload(payload)

    def download(self, name: str, version: str, dest: Path) -> Path:
        raw = self._request(
            "GET", f"/systems/{quote(name)}/{quote(version)}/tarball", subject=f"{name}@{version}",
        )
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(raw)
        return dest

    def create(self, system: System) -> None:
        self._json("POST", "/systems", body=_descriptor(system), subject=system.name)

    def add_version(self, system: System) -> None:
        self._json(
            "PUT", f"/systems/{quote(system.name)}/{quote(system.version)}",
            body=_descriptor(system), subject=system.tag,
        )

    def upload(self, name: str, version: str, tarball: Path) -> None:
        self._request(
            "PUT", f"/systems/{quote(name)}/{quote(version)}/tarball",
            data=tarball.read_bytes(),
            content_type="application/octet-stream",
            subject=f"{name}@{version}",
        )

    # ── Owners ──────────────────────────────────────────────────

    def add_owner(self, name: str, user: str) -> None:
        self._request("PUT", f"/systems/{quote(name)}/owners/{quote(user)}", subject=name)

    def remove_owner(self, name: str, user: str) -> None:
        self._request("DELETE", f"/systems/{quote(name)}/owners/{quote(user)}", subject=name)

    # ── Config sets ─────────────────────────────────────────────

    def get_config(self, name: str) -> dict[str, Any]:
        payload = self._json("GET", f"/config/{quote(name)}", subject=name)
        if isinstance(payload, dict) and isinstance(payload.get("settings"), dict):
            return payload["settings"]
        return payload or {}

    def set_config(self, name: str, settings: dict[str, Any]) -> None:
        self._json("PUT", f"/config/{quote(name)}", body={"name": name, "settings": settings}, subject=name)

    def delete_config(self, name: str) -> None:
        self._request("DELETE", f"/config/{quote(name)}", subject=name)

    def list_configs(self) -> list[str]:
        payload = self._json("GET", "/config")
        if isinstance(payload, dict):
            payload = payload.get("configs", [])
        return [c["name"] if isinstance(c, dict) else str(c) for c in payload or []]


def _descriptor(system: System) -> dict[str, Any]:
    return system.model_dump(mode="json", by_alias=True, exclude_none=True)
