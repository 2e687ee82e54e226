# tests/fakes.py

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from allyhub.errors import PersistenceError, TransportError


class ManualClock:
    """Wall clock for cache freshness tests; only moves when told to."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass(slots=True)
class ScriptedReply:
    body: bytes = b""
    error: Exception | None = None
    gate: asyncio.Event | None = None


@dataclass(slots=True)
class SubmitCall:
    method: str
    url: str
    fields: dict[str, str]
    files: dict[str, Path] | None


class ScriptedTransport:
    """
    Deterministic Transport for unit tests.

    - fetch() replies are queued per URL (FIFO) and may wait on a gate Event,
      so a test decides in which order overlapping fetches complete
    - an unscripted fetch fails with TransportError
    - send()/submit() record their calls and return configurable results
    """

    def __init__(self) -> None:
        self._replies: dict[str, deque[ScriptedReply]] = defaultdict(deque)
        self.fetch_calls: list[tuple[str, bytes]] = []
        self.send_calls: list[tuple[str, bytes]] = []
        self.submit_calls: list[SubmitCall] = []
        self.send_status = 200
        self.send_error: Exception | None = None
        self.submit_result: tuple[int, bytes] = (200, b"")

    def script(
        self,
        url: str,
        body: bytes = b"",
        *,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self._replies[url].append(ScriptedReply(body=body, error=error, gate=gate))

    async def fetch(self, url: str, body: bytes) -> bytes:
        self.fetch_calls.append((url, body))
        queue = self._replies.get(url)
        if not queue:
            raise TransportError(f"no scripted reply for {url}")
        reply = queue.popleft()
        if reply.gate is not None:
            await reply.gate.wait()
        if reply.error is not None:
            raise reply.error
        return reply.body

    async def send(self, url: str, body: bytes) -> int:
        self.send_calls.append((url, body))
        if self.send_error is not None:
            raise self.send_error
        return self.send_status

    async def submit(
        self,
        method: str,
        url: str,
        *,
        fields: Mapping[str, str],
        files: Mapping[str, Path] | None = None,
    ) -> tuple[int, bytes]:
        self.submit_calls.append(
            SubmitCall(method=method, url=url, fields=dict(fields), files=dict(files) if files else None)
        )
        return self.submit_result

    def fetched_urls(self) -> list[str]:
        return [url for url, _ in self.fetch_calls]


@dataclass(slots=True)
class FailingBlobStore:
    """BlobStore whose every operation fails (disk full, locked database, ...)."""

    attempts: list[str] = field(default_factory=list)

    def load(self, key: str) -> bytes | None:
        self.attempts.append(f"load:{key}")
        raise PersistenceError("disk unavailable")

    def save(self, key: str, blob: bytes) -> None:
        self.attempts.append(f"save:{key}")
        raise PersistenceError("disk unavailable")

    def delete(self, key: str) -> None:
        self.attempts.append(f"delete:{key}")
        raise PersistenceError("disk unavailable")
