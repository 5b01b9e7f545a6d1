"""
Launcher orchestration.

Ties the components together: configures logging, handles the state reset
flag, binds the liveness listener on a random free port, schedules the
one-shot dependency update pass, reads the console command and then
supervises the worker for the lifetime of the process.
"""

import asyncio
import logging
from logging.handlers import RotatingFileHandler

from . import __version__
from .config import SupervisorConfig
from .console import read_command, reset_state
from .listener import SupervisorListener
from .ports import PortAllocator
from .process import ProcessSupervisor, SupervisionState, SupervisorStatus
from .updater import DependencyUpdater, Manifest

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(config: SupervisorConfig):
    """Log to a rotating file and to the console."""
    log_formatter = logging.Formatter(LOG_FORMAT)

    config.log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        config.log_file,
        maxBytes=config.log_max_bytes,
        backupCount=config.log_backup_count,
    )
    file_handler.setFormatter(log_formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        handlers=[file_handler, console_handler],
        force=True,
    )
    # uvicorn configures its own loggers; keep them quiet unless asked
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)


class Launcher:
    """Runs one supervised worker together with its side tasks."""

    def __init__(
        self,
        config: SupervisorConfig,
        allocator: PortAllocator | None = None,
        updater: DependencyUpdater | None = None,
        spawn=None,
        console: bool = True,
        stay_alive: bool = True,
    ):
        self.config = config
        self.allocator = allocator or PortAllocator()
        self.supervisor = ProcessSupervisor(config, prepare=self._prepare, spawn=spawn)
        self.listener = SupervisorListener(config, self.supervisor.state)
        self.updater = updater
        self.console = console
        self.stay_alive = stay_alive
        self._port = self.allocator.select_port()

    async def _prepare(self, state: SupervisionState):
        """Make sure the listener is up before each spawn."""
        if self.listener.listening:
            return

        self._port = await self.allocator.allocate(self._port)
        state.current_port = self._port
        await self.listener.bind(self._port)

    def _build_updater(self) -> DependencyUpdater:
        manifest = None
        if self.config.update_enabled:
            manifest = Manifest.load(self.config.manifest_path)
        return DependencyUpdater(self.config, manifest)

    async def run(self, index: int = 0) -> int:
        """
        Run the launcher. Returns the process exit code.

        The deferred update pass always completes before shutdown. After a
        clean worker exit the listener keeps serving until the launcher is
        stopped, unless stay_alive is off.
        """
        if self.config.remove_state:
            return await reset_state(self.config)

        logger.info(f"respawn v{__version__}: Getting Started!")

        if self.updater is None:
            self.updater = self._build_updater()
        update_task = self.updater.schedule()

        console_task = None
        if self.console:
            console_task = asyncio.create_task(read_command(self.config))

        try:
            state = await self.supervisor.supervise(index)
            await update_task

            if state.status == SupervisorStatus.STOPPED and self.stay_alive:
                logger.info("Worker finished, listener stays up until the launcher is stopped")
                await self.listener.wait()
        finally:
            if console_task and not console_task.done():
                console_task.cancel()
            await self.supervisor.shutdown()
            await self.listener.close()

        return 0 if state.status == SupervisorStatus.STOPPED else 1
