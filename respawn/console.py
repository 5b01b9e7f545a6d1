"""
State reset and the one-shot console command.

Both paths clear persisted worker data: the reset flag in the config file
clears the session state and stops the launcher, while the console accepts a
single command at startup to clear the data files.
"""

import asyncio
import logging
import sys
import threading
from enum import Enum
from pathlib import Path

from .config import SupervisorConfig

logger = logging.getLogger(__name__)

STATE_SENTINEL = "(›^-^)›"
EMPTY_DATA = "{}"

CLEAN_COMMANDS = ("-clr", "-clean")
STATE_COMMANDS = ("-cap", "-fbstate")


class CommandResult(Enum):
    CLEANED = "cleaned"
    STATE_CLEARED = "state_cleared"
    INVALID = "invalid"
    ERROR = "error"


def _overwrite(path: Path, content: str):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def clear_data(config: SupervisorConfig) -> bool:
    """Truncate the thread and user data files."""
    try:
        _overwrite(config.threads_file, EMPTY_DATA)
        _overwrite(config.users_file, EMPTY_DATA)
    except OSError as e:
        logger.error(f"Error clearing contents: {e}")
        return False

    logger.info("Thread and User data cleared successfully.")
    return True


def clear_state(config: SupervisorConfig) -> bool:
    """Overwrite the session state file with the sentinel."""
    try:
        _overwrite(config.state_file, STATE_SENTINEL)
    except OSError as e:
        logger.error(f"Error clearing contents: {e}")
        return False

    logger.info(
        "Appstate cleared successfully! Try adding a new one as a replacement "
        "for the previous appstate."
    )
    return True


def handle_command(line: str, config: SupervisorConfig) -> CommandResult:
    """Run a single console command."""
    command = line.strip().lower()

    if command in CLEAN_COMMANDS:
        return CommandResult.CLEANED if clear_data(config) else CommandResult.ERROR
    if command in STATE_COMMANDS:
        return CommandResult.STATE_CLEARED if clear_state(config) else CommandResult.ERROR

    logger.warning("Invalid command!")
    return CommandResult.INVALID


async def read_command(config: SupervisorConfig, stream=None) -> CommandResult:
    """
    Read one line from stdin and handle it.

    The blocking read runs in a daemon thread so a launcher that never
    receives input can still exit.
    """
    stream = stream or sys.stdin
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def resolve(line: str):
        if not future.done():
            future.set_result(line)

    def reader():
        try:
            line = stream.readline()
        except (OSError, ValueError) as e:
            logger.debug(f"Console input unavailable: {e}")
            line = ""
        if not loop.is_closed():
            loop.call_soon_threadsafe(resolve, line)

    threading.Thread(target=reader, name="respawn-console", daemon=True).start()
    line = await future
    return handle_command(line, config)


async def reset_state(config: SupervisorConfig) -> int:
    """
    Clear the session state because removeSt is set in the config file.

    Writes the sentinel to the state file, turns the flag off, saves the
    config file and waits out the grace delay. Returns the exit code the
    launcher should terminate with.
    """
    _overwrite(config.state_file, STATE_SENTINEL)
    logger.warning(
        'The "removeSt" property is set true in the config file. Therefore, the '
        "Appstate was cleared effortlessly! You can now place a new one in the "
        "same directory."
    )

    config.remove_state = False
    config.save()

    await asyncio.sleep(config.reset_grace)
    return 0
