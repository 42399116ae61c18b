"""
Command-line runner.

Discovers devices for a fixed observation window, prints what was found
and exits:

    python -m tivo_discovery --window 5
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from .config import Settings
from .models import format_device
from .session import run_discovery

logger = logging.getLogger("tivo.discovery.main")


def main(argv: list[str] | None = None) -> int:
    # .env must be in the environment before settings are built
    load_dotenv(Path.cwd() / ".env", override=True)
    app_settings = Settings()

    parser = argparse.ArgumentParser(description="List TiVo devices found via mDNS")
    parser.add_argument(
        "--window",
        type=float,
        default=app_settings.discovery.observation_window,
        help="Seconds to wait for results (default: %(default)s)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, app_settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("started")

    devices = run_discovery(window=args.window, config=app_settings.discovery)
    if devices is None:
        logger.error("Discovery could not be started")
        return 1

    for device in devices:
        print(format_device(device))

    logger.info("stopped (%d devices)", len(devices))
    return 0


if __name__ == "__main__":
    sys.exit(main())
