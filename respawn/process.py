"""
Worker process supervision.

Spawns the worker with the parent's standard streams, waits for it to exit
and respawns it whenever it exits with a non-zero code. A clean exit (code 0)
ends supervision, as does a failure to start the executable at all.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable

from .config import SupervisorConfig
from .errors import SpawnError

logger = logging.getLogger(__name__)

CHILD_INDEX_ENV = "CHILD_INDEX"


class SupervisorStatus(Enum):
    STARTING = "starting"
    RUNNING = "running"
    RESTARTING = "restarting"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class SupervisionState:
    """Live state of one supervised worker."""

    child_index: int = 0
    current_port: int | None = None
    status: SupervisorStatus = SupervisorStatus.STARTING
    pid: int | None = None
    restart_count: int = 0
    last_exit_code: int | None = None
    started_at: datetime | None = None
    last_restart: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "child_index": self.child_index,
            "current_port": self.current_port,
            "status": self.status.value,
            "pid": self.pid,
            "restart_count": self.restart_count,
            "last_exit_code": self.last_exit_code,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_restart": self.last_restart.isoformat() if self.last_restart else None,
        }


class ProcessSupervisor:
    """Keeps one worker process alive for a given index."""

    def __init__(
        self,
        config: SupervisorConfig,
        prepare: Callable[[SupervisionState], Awaitable[None]] | None = None,
        spawn: Callable[..., Awaitable[asyncio.subprocess.Process]] | None = None,
    ):
        self.config = config
        self.state = SupervisionState()
        self._prepare = prepare
        self._spawn = spawn or asyncio.create_subprocess_exec
        self._process: asyncio.subprocess.Process | None = None

    def build_env(self, index: int) -> dict[str, str]:
        """Parent environment plus the worker's identifying index."""
        env = os.environ.copy()
        env[CHILD_INDEX_ENV] = str(index)
        return env

    async def _run_child(self, index: int) -> int:
        """Spawn the worker and wait for it. Returns the exit code."""
        cmd = self.config.worker_command
        try:
            process = await self._spawn(
                *cmd,
                cwd=str(self.config.working_dir),
                env=self.build_env(index),
                stdin=None,  # Inherit stdin
                stdout=None,  # Inherit stdout
                stderr=None,  # Inherit stderr
            )
        except OSError as e:
            raise SpawnError(f"Could not start {' '.join(cmd)}: {e}") from e

        self._process = process
        self.state.pid = process.pid
        self.state.started_at = datetime.now()
        self.state.status = SupervisorStatus.RUNNING
        logger.info(f"Started worker {index} with PID {process.pid}")

        exit_code = await process.wait()
        self._process = None
        self.state.pid = None
        return exit_code

    async def supervise(self, index: int = 0) -> SupervisionState:
        """
        Run the worker until it exits cleanly or cannot be started.

        Non-zero exits are retried immediately and without limit unless
        restart_delay or max_restart_attempts are configured.
        """
        state = self.state
        state.child_index = index

        while True:
            if self._prepare:
                await self._prepare(state)

            try:
                exit_code = await self._run_child(index)
            except SpawnError as e:
                logger.error(f"An error occurred while starting the child process: {e}")
                state.status = SupervisorStatus.FAILED
                return state

            state.last_exit_code = exit_code

            if exit_code == 0:
                logger.info(f"Worker {index} exited cleanly, not restarting")
                state.status = SupervisorStatus.STOPPED
                return state

            limit = self.config.max_restart_attempts
            if limit and state.restart_count >= limit:
                logger.error(
                    f"Worker {index} exceeded max restart attempts ({limit}), giving up"
                )
                state.status = SupervisorStatus.FAILED
                return state

            logger.warning(f"Worker {index} exited with code {exit_code}, restarting")
            state.status = SupervisorStatus.RESTARTING
            state.restart_count += 1
            state.last_restart = datetime.now()

            if self.config.restart_delay > 0:
                await asyncio.sleep(self.config.restart_delay)

    async def shutdown(self, timeout: float = 10):
        """Stop the live worker, if any."""
        process = self._process
        if process is None or process.returncode is not None:
            return

        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Worker did not stop gracefully, forcing kill")
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

        logger.info("Stopped worker")
