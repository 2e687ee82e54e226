# src/allyhub/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.bootstrap import AppContext
from ..cli.commands import registry as command_registry
from ..core.models import ResourceKind

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def describe_update(ctx: AppContext, kind: ResourceKind) -> str:
    coll = ctx.hub.published(kind)
    if coll.is_fallback:
        return f"[SYNC] {kind.label}: {coll.diagnostic}"
    text = f"[SYNC] {kind.label} updated: {coll.count} items"
    if coll.unread_count:
        text += f", {coll.unread_count} unread"
    return text


def run_console_loop(ctx: AppContext) -> None:
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /help for commands. Plain text is sent to the active conversation. /exit quits.\n")

    def on_update(kind: ResourceKind) -> None:
        # Runs on the hub thread; only reads the published snapshot.
        _print_ts(describe_update(ctx, kind))

    ctx.call(lambda: ctx.hub.subscribe(on_update))

    try:
        while True:
            try:
                user_input = input(">>> ").strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            line = user_input if user_input.startswith("/") else f"/say {user_input}"
            try:
                response = command_registry.handle(ctx, line, emit=_print_ts)
            except TimeoutError:
                logger.warning("Command timed out: %s", line)
                response = "The server did not answer in time."
            except Exception:
                logger.exception("Command handler crashed.")
                response = "Internal error while handling a command."

            if response is not None:
                _print_ts(response)
    finally:
        try:
            ctx.call(lambda: ctx.hub.unsubscribe(on_update))
        except Exception:
            logger.debug("Unsubscribe failed.", exc_info=True)
        sys.stdout.flush()

    logger.info("Console connector finished.")
