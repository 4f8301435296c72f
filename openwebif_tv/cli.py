"""Command line entry point for the OpenWebIf bridge."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys

from .bridge import OpenWebIfBridge
from .config import BridgeConfig
from .errors import ConfigError

LOGGER = logging.getLogger("openwebif_tv")

DEFAULT_CONFIG_PATH = "~/.openwebif-tv/config.json"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mirror OpenWebIf receivers and forward commands to them.")
    parser.add_argument(
        "--config",
        default=os.environ.get("OPENWEBIF_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to the JSON configuration (default: %(default)s)",
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    return parser.parse_args(argv)


async def run(config: BridgeConfig) -> int:
    bridge = OpenWebIfBridge(config)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    started = await bridge.start()
    LOGGER.info("Bridge running, %d of %d device(s) started", started, len(bridge.devices))
    try:
        await stop_event.wait()
    finally:
        await bridge.stop()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        config = BridgeConfig.from_file(os.path.expanduser(args.config))
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO)
        LOGGER.error("%s", exc)
        return 1
    level = (args.log_level or config.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    with contextlib.suppress(KeyboardInterrupt):
        return asyncio.run(run(config))
    return 0


if __name__ == "__main__":
    sys.exit(main())
