"""
Server startup module for SocketChat.
Starts the WebSocket server and, unless told otherwise, the REST api in
the same event loop so both share one repository and one presence map.
"""

import asyncio
import logging
from typing import Optional

from SocketChat.api import create_app, serve
from SocketChat.config import config
from SocketChat.core.server import ConnectionServer
from SocketChat.core.storage import open_store, seed_demo_data

logger = logging.getLogger(__name__)


async def _main(host: str, port: int, api_port: int, db: Optional[str], seed: bool, srv_only: bool) -> None:
    store = open_store(db)
    if seed:
        await seed_demo_data(store)

    ws_server = ConnectionServer(store)
    try:
        async with ws_server.run(host, port):
            if srv_only:
                await asyncio.Future()
            else:
                app = create_app(store, verifier=ws_server.verifier,
                                 presence=ws_server.presence, channels=ws_server.channels)
                await serve(app, host, api_port)
    finally:
        await store.close()


def server(
    host: Optional[str] = None,
    port: Optional[int] = None,
    api_port: Optional[int] = None,
    db: Optional[str] = None,
    seed: bool = False,
    srv_only: bool = False,
):
    """
    Start the chat server.

    Args:
        host (str): Bind address (default: config.DEFAULT_HOST)
        port (int): WebSocket port (default: config.DEFAULT_SERVER_PORT)
        api_port (int): REST port (default: config.DEFAULT_API_PORT)
        db (str): SQLite file; None keeps everything in memory
        seed (bool): Create demo users and a group on startup
        srv_only (bool): If True, serve the WebSocket layer only
    """
    host = host or config.DEFAULT_HOST
    port = config.DEFAULT_SERVER_PORT if port is None else port
    api_port = config.DEFAULT_API_PORT if api_port is None else api_port
    try:
        asyncio.run(_main(host, port, api_port, db or config.SQLITE_DB_FILE, seed, srv_only))
    except KeyboardInterrupt:
        logger.info("Closed by user.")
