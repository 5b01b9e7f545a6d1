"""
Supervisory HTTP listener.

A small FastAPI app served by uvicorn on the allocated port. It exists so the
launcher can be probed for liveness; it serves a static landing page, a
health check and a status snapshot of the supervised worker. Failing to bind
is logged and never stops supervision.
"""

import asyncio
import logging
import socket
from typing import Optional

import psutil
import uvicorn
from fastapi import FastAPI
from fastapi.responses import FileResponse, PlainTextResponse
from pydantic import BaseModel

from . import __version__
from .config import SupervisorConfig
from .errors import BindError
from .process import SupervisionState

logger = logging.getLogger(__name__)


class StatusResponse(BaseModel):
    child_index: int
    current_port: Optional[int]
    status: str
    pid: Optional[int]
    restart_count: int
    last_exit_code: Optional[int]
    started_at: Optional[str]
    last_restart: Optional[str]
    cpu_percent: float = 0.0
    memory_mb: float = 0.0


def worker_metrics(pid: int | None) -> dict:
    """CPU and memory of the worker and its children."""
    result = {"cpu_percent": 0.0, "memory_mb": 0.0}
    if not pid:
        return result

    try:
        proc = psutil.Process(pid)
        cpu_percent = proc.cpu_percent(interval=0.1)
        memory_mb = proc.memory_info().rss / 1024 / 1024

        try:
            for child in proc.children(recursive=True):
                cpu_percent += child.cpu_percent(interval=0.1)
                memory_mb += child.memory_info().rss / 1024 / 1024
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

        result["cpu_percent"] = round(cpu_percent, 1)
        result["memory_mb"] = round(memory_mb, 1)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        pass

    return result


def create_app(config: SupervisorConfig, state: SupervisionState) -> FastAPI:
    """Build the liveness app for one supervised worker."""
    app = FastAPI(
        title="respawn",
        description="Liveness surface for the respawn launcher",
        version=__version__,
    )

    @app.get("/")
    async def landing():
        if config.landing_page.is_file():
            return FileResponse(config.landing_page)
        return PlainTextResponse("OK")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/status", response_model=StatusResponse)
    async def status():
        data = state.to_dict()
        data.update(await asyncio.to_thread(worker_metrics, state.pid))
        return data

    return app


class SupervisorListener:
    """Serves the liveness app on a dynamically chosen port."""

    def __init__(self, config: SupervisorConfig, state: SupervisionState):
        self.config = config
        self.app = create_app(config, state)
        self.port: int | None = None
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None

    @property
    def listening(self) -> bool:
        return self._task is not None and not self._task.done()

    def _open_socket(self, port: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.config.host, port))
        except OSError:
            sock.close()
            raise
        return sock

    async def bind(self, port: int) -> bool:
        """Start serving on port. Returns False if the port cannot be bound."""
        try:
            sock = self._open_socket(port)
        except OSError as e:
            error = BindError(port, str(e))
            logger.error(f"An error occurred while starting the server: {error}")
            return False

        server_config = uvicorn.Config(
            self.app,
            log_config=None,
            log_level="warning",
            access_log=False,
            lifespan="off",
        )
        self._server = uvicorn.Server(server_config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]))
        self._task.add_done_callback(lambda task: self._on_server_done(task, port, sock))
        self.port = port

        logger.info(f"Supervisor is running on port: {port}")
        return True

    def _on_server_done(self, task: asyncio.Task, port: int, sock: socket.socket):
        if task.cancelled() or task.exception() is None:
            return

        sock.close()
        error = BindError(port, str(task.exception()))
        logger.error(f"An error occurred while starting the server: {error}")

    async def wait(self):
        """Block until the server stops serving."""
        if self._task is None:
            return
        try:
            await self._task
        except OSError:
            # Already logged by _on_server_done
            return

    async def close(self):
        """Stop the uvicorn server."""
        if not self._server or not self._task:
            return

        self._server.should_exit = True
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except OSError:
            # Already logged by _on_server_done
            pass
        self._server = None
        self._task = None
        logger.info("Listener stopped")
