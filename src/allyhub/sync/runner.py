# src/allyhub/sync/runner.py

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from .hub import SyncHub

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class HubRunner:
    hub: SyncHub
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop

    def call(self, fn: Callable[[], T], timeout: float | None = 10.0) -> T:
        """Run fn on the hub's loop (the state-owning thread) and return its result."""
        fut: concurrent.futures.Future[Any] = concurrent.futures.Future()

        def _invoke() -> None:
            try:
                fut.set_result(fn())
            except Exception as e:
                fut.set_exception(e)

        self.loop.call_soon_threadsafe(_invoke)
        return fut.result(timeout=timeout)

    def submit(self, coro_fn: Callable[[], Awaitable[T]], timeout: float | None = 30.0) -> T:
        """Await coro_fn() on the hub's loop from another thread."""

        async def _wrapped() -> T:
            return await coro_fn()

        fut = asyncio.run_coroutine_threadsafe(_wrapped(), self.loop)
        return fut.result(timeout=timeout)

    def stop(self) -> None:
        try:
            self.hub.stop_threadsafe("runner stop")
        except Exception:
            logger.debug("Failed to signal hub stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_hub_in_background(hub: SyncHub, *, fetch_stale: bool = True) -> HubRunner:
    """
    Start the hub in a background thread (so a blocking front-end can run in parallel).

    Why a thread:
    - the console REPL is blocking (input()).
    - the hub is async and wants its own event loop.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        holder["loop"] = loop

        async def _main() -> None:
            # start() binds the bus to this loop; only then may other threads post.
            hub.start(fetch_stale=fetch_stale)
            ready.set()
            await hub.run(fetch_stale=fetch_stale)
            await _close_transport(hub)

        try:
            loop.run_until_complete(_main())
        except Exception:
            logger.exception("Sync hub crashed.")
        finally:
            ready.set()
            with contextlib.suppress(Exception):
                loop.run_until_complete(loop.shutdown_asyncgens())
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="allyhub-sync", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    if not isinstance(loop, asyncio.AbstractEventLoop):
        raise RuntimeError("Sync hub thread failed to start its event loop")
    return HubRunner(hub=hub, thread=t, loop=loop)


async def _close_transport(hub: SyncHub) -> None:
    aclose = getattr(hub.transport, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception:
        logger.debug("Transport close failed.", exc_info=True)
