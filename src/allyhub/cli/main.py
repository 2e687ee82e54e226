# src/allyhub/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds the SyncHub, runs it in a background thread and
drives it from the console REPL in the main thread.
"""

from __future__ import annotations

import logging
import signal

from ..cli.bootstrap import create_app_context, create_hub
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging
from ..sync.hub import SyncHub
from ..sync.runner import HubRunner, start_hub_in_background

logger = logging.getLogger(__name__)


def _shutdown(hub: SyncHub, runner: HubRunner | None) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    if runner is not None:
        try:
            runner.stop()
            runner.join(timeout=10.0)
        except Exception:
            logger.debug("Hub stop failed.", exc_info=True)

    # SqliteBlobStore uses short-lived connections per call; close() is a hook only.
    try:
        store = hub.cache.store
        if hasattr(store, "close"):
            store.close()
    except Exception:
        logger.debug("Store close failed.", exc_info=True)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/allyhub")
    log_paths = setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "allyhub"))
    logger.debug("Sync traffic is logged to %s", log_paths["sync"])

    # IMPORTANT: reuse same settings object
    hub = create_hub(settings=settings)
    runner = start_hub_in_background(hub)
    ctx = create_app_context(hub, runner)

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        raise KeyboardInterrupt

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError, AttributeError):
        # Some platforms may not support SIGTERM.
        pass

    try:
        run_console_loop(ctx)
    except KeyboardInterrupt:
        pass
    finally:
        _shutdown(hub, runner)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
