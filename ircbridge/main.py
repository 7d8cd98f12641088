"""ircbridge — Main entry point."""

import asyncio
import logging
import os
import sys
from typing import Optional

from .bridge import Bridge
from .config import BridgeSettings, load_settings
from .errors import ConfigurationError

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("ircbridge")


def setup_logging(log_file: Optional[str] = None, debug: bool = False):
    """Console logging plus an optional log file."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]      # stderr (console)
    if log_file:
        handlers.append(logging.FileHandler(os.path.expanduser(log_file), encoding="utf-8"))
    logging.basicConfig(level=logging.INFO, format=_log_format, handlers=handlers, force=True)
    if debug:
        logger.setLevel(logging.DEBUG)


async def run(settings: BridgeSettings):
    """Main run loop."""
    bridge = Bridge.from_settings(settings)
    try:
        await bridge.start()
        logger.info("ircbridge is running. Press Ctrl+C to stop.")
        while bridge.running:
            await asyncio.sleep(1)
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
    finally:
        await bridge.stop()


def main(config_path: Optional[str] = None, debug: bool = False) -> int:
    """Entry point. Returns a process exit code."""
    try:
        settings = load_settings(config_path, **({"debug": True} if debug else {}))
    except ConfigurationError as e:
        setup_logging()
        logger.error(f"Configuration error: {e}")
        return 1

    setup_logging(settings.log_file, debug=settings.debug)
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main(os.environ.get("IRCBRIDGE_CONFIG", "config.json")))
