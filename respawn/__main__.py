"""
Entry point for running the launcher via `python -m respawn`.

Loads the configuration, sets up logging and runs the launcher until the
worker exits cleanly.
"""

import argparse
import asyncio
import logging
import sys

from .config import load_config
from .errors import ConfigLoadError, ManifestLoadError
from .launcher import Launcher, configure_logging

logger = logging.getLogger("respawn")


def main(argv=None):
    """Run the launcher."""
    parser = argparse.ArgumentParser(prog="respawn", description=__doc__)
    parser.add_argument("--config", help="Path to the JSON config file")
    parser.add_argument("--index", type=int, default=0, help="Worker index passed as CHILD_INDEX")
    parser.add_argument("--no-console", action="store_true", help="Do not read a console command")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigLoadError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(config)
    launcher = Launcher(config, console=not args.no_console)

    try:
        code = asyncio.run(launcher.run(args.index))
    except ManifestLoadError as e:
        logger.error(f"Error loading manifest: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        code = 130

    sys.exit(code)


if __name__ == "__main__":
    main()
