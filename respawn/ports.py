"""
Port selection for the supervisory listener.

Candidates are drawn uniformly from the unprivileged range and probed by
binding a throwaway listener on the loopback interface.
"""

import asyncio
import logging
import random

logger = logging.getLogger(__name__)

PORT_MIN = 1024
PORT_MAX = 65535  # exclusive
PROBE_HOST = "127.0.0.1"


async def _noop_handler(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
    writer.close()


class PortAllocator:
    """Picks random ports and checks they can be bound."""

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def select_port(self) -> int:
        """Return a random port in [1024, 65535)."""
        return self._rng.randrange(PORT_MIN, PORT_MAX)

    async def is_available(self, port: int) -> bool:
        """Try to bind port on the loopback interface, releasing it at once."""
        try:
            server = await asyncio.start_server(_noop_handler, PROBE_HOST, port)
        except OSError:
            return False

        server.close()
        await server.wait_closed()
        return True

    async def allocate(self, current: int) -> int:
        """
        Return the port to bind on this cycle.

        If current is not available, exactly one fresh candidate is drawn and
        returned without a second probe.
        """
        if await self.is_available(current):
            return current

        logger.warning("Retrying...")
        new_port = self.select_port()
        while new_port == current:
            new_port = self.select_port()

        logger.info(
            f"Current port {current} is not available. Switching to new port {new_port}."
        )
        return new_port
