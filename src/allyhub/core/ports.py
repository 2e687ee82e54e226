# src/allyhub/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the sync engine.

The engine depends on Protocols instead of concrete implementations.
This keeps the HTTP client and the on-disk store swappable and makes testing easier.
"""

from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Awaitable, Protocol

from .models import ResourceKind

Clock = Callable[[], float]
# Wall-clock seconds (time.time-compatible). Injected so freshness tests are deterministic.

CollectionListener = Callable[[ResourceKind], None]
# Receives "collection updated" notifications; re-reads the published state itself.


class Transport(Protocol):
    """
    HTTP-side port.

    - fetch: POST a JSON body and return the raw response bytes (raises TransportError)
    - send: POST a JSON body and return only the status code (body ignored)
    - submit: free-form request for user-defined actions (JSON or multipart)
    """

    def fetch(self, url: str, body: bytes) -> Awaitable[bytes]: ...

    def send(self, url: str, body: bytes) -> Awaitable[int]: ...

    def submit(
        self,
        method: str,
        url: str,
        *,
        fields: Mapping[str, str],
        files: Mapping[str, Path] | None = None,
    ) -> Awaitable[tuple[int, bytes]]: ...


class BlobStore(Protocol):
    """Durable key -> bytes storage. No business logic."""

    def load(self, key: str) -> bytes | None: ...
    def save(self, key: str, blob: bytes) -> None: ...
    def delete(self, key: str) -> None: ...
