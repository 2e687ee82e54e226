# src/allyhub/net/transport.py

from __future__ import annotations

import logging
import mimetypes
from collections.abc import Mapping
from pathlib import Path
from urllib.parse import urlsplit

import httpx

from ..errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}
DEFAULT_MIME_TYPE = "application/octet-stream"


def validate_endpoint(url: str | None) -> str:
    """Return the stripped URL or raise ConfigurationError (no I/O)."""
    value = (url or "").strip()
    if not value:
        raise ConfigurationError("endpoint URL is empty")
    parts = urlsplit(value)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigurationError(f"invalid endpoint URL: {value!r}")
    return value


def guess_mime_type(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    return mime or DEFAULT_MIME_TYPE


def _make_timeout_obj(connect_s: float, read_s: float) -> httpx.Timeout:
    return httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s)


class HttpxTransport:
    """
    Transport port on top of httpx.AsyncClient.

    - one attempt per call, no retries
    - httpx errors and non-2xx statuses become TransportError in fetch()
    - the client is created lazily on first use, so the transport can be
      constructed outside of an event loop
    """

    def __init__(
        self,
        *,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = _make_timeout_obj(connect_timeout, read_timeout)
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> HttpxTransport:
        return cls(
            connect_timeout=float(getattr(settings, "http_connect_timeout_seconds", 5.0)),
            read_timeout=float(getattr(settings, "http_read_timeout_seconds", 30.0)),
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str, body: bytes) -> bytes:
        try:
            response = await self._get_client().post(url, content=body, headers=JSON_HEADERS)
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e
        logger.debug("POST %s -> %s (%d bytes)", url, response.status_code, len(response.content))
        if not response.is_success:
            raise TransportError(f"HTTP {response.status_code} from {url}", status_code=response.status_code)
        return response.content

    async def send(self, url: str, body: bytes) -> int:
        try:
            response = await self._get_client().post(url, content=body, headers=JSON_HEADERS)
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e
        logger.debug("POST %s -> %s", url, response.status_code)
        return response.status_code

    async def submit(
        self,
        method: str,
        url: str,
        *,
        fields: Mapping[str, str],
        files: Mapping[str, Path] | None = None,
    ) -> tuple[int, bytes]:
        """
        Free-form request for user-defined actions.

        String-only parameters go out as a JSON object; as soon as one file is
        present the whole request becomes multipart/form-data.
        """
        client = self._get_client()
        try:
            if files:
                handles = {}
                try:
                    for name, path in files.items():
                        handles[name] = (path.name, path.open("rb"), guess_mime_type(path))
                    response = await client.request(method, url, data=dict(fields), files=handles)
                finally:
                    for _, fh, _ in handles.values():
                        fh.close()
            else:
                response = await client.request(method, url, json=dict(fields))
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e
        except OSError as e:
            raise TransportError(f"cannot read upload: {e}") from e
        return response.status_code, response.content
