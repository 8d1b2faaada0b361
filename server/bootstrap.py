"""Process lifecycle: connect to the database, then open the HTTP listener.

`ServerInstance` owns the app, the database client and the uvicorn server
for one process. The listener only opens after a successful connection;
a failed attempt is logged and the instance idles without a listener
until it is shut down.
"""

from __future__ import annotations

import asyncio
import enum
from typing import Any, Awaitable, Callable, Optional

import uvicorn
from fastapi import FastAPI

from .core.config import Settings
from .core.errors import DatabaseConnectionError
from .core.logging import get_logger
from .db import connect_database

logger = get_logger(__name__)

Connector = Callable[[Optional[str]], Awaitable[Any]]


class ServerState(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    LISTENING = "listening"
    FAILED = "failed"
    STOPPED = "stopped"


class _Listener(uvicorn.Server):
    """uvicorn server reporting when its sockets are bound."""

    def __init__(self, config: uvicorn.Config, on_bound: Callable[[], None]):
        super().__init__(config)
        self._on_bound = on_bound

    async def startup(self, sockets=None) -> None:
        await super().startup(sockets=sockets)
        if self.started:
            self._on_bound()


class ServerInstance:
    def __init__(self, settings: Settings, app: FastAPI):
        self.settings = settings
        self.app = app
        self.state = ServerState.IDLE
        self.client: Any = None
        self.server: Optional[uvicorn.Server] = None
        self.error: Optional[DatabaseConnectionError] = None
        self._stopped = asyncio.Event()

    def _set_state(self, state: ServerState) -> None:
        self.state = state
        self.app.state.server_state = state.value

    async def connect(self, connector: Connector = connect_database) -> ServerState:
        """Make the single connection attempt.

        Returns CONNECTING when the client is ready for `serve()`, FAILED otherwise.
        """
        if self.state is not ServerState.IDLE:
            raise RuntimeError(f"connect() called in state {self.state.value}")
        self._set_state(ServerState.CONNECTING)
        try:
            self.client = await connector(self.settings.mongo_url)
        except DatabaseConnectionError as e:
            self.error = e
            self._set_state(ServerState.FAILED)
            logger.error(f"{e} did not connect", error=str(e))
            return self.state
        self.app.state.db = self.client
        logger.info("database_connected")
        return self.state

    def _on_bound(self) -> None:
        self._set_state(ServerState.LISTENING)
        logger.info(f"Server Port: {self.settings.port}", port=self.settings.port)

    def build_server(self) -> uvicorn.Server:
        config = uvicorn.Config(
            self.app,
            host=self.settings.host,
            port=self.settings.port,
            log_config=None,
            access_log=False,
        )
        return _Listener(config, self._on_bound)

    async def serve(self) -> None:
        """Open the listener and serve until shutdown."""
        if self.state is not ServerState.CONNECTING:
            raise RuntimeError(f"serve() called in state {self.state.value}")
        self.server = self.build_server()
        if self._stopped.is_set():
            return
        await self.server.serve()

    async def run(self, connector: Connector = connect_database) -> ServerState:
        try:
            if await self.connect(connector) is ServerState.FAILED:
                # No retry: stay up without a listener until told to stop
                await self._stopped.wait()
            else:
                await self.serve()
        finally:
            await self.close()
        return self.state

    def shutdown(self) -> None:
        """Ask a running instance to stop."""
        self._stopped.set()
        if self.server is not None:
            self.server.should_exit = True

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
            self.client = None
            self.app.state.db = None
        if self.state is not ServerState.FAILED:
            self._set_state(ServerState.STOPPED)
