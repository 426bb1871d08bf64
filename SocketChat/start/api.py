import asyncio
from typing import Optional

import SocketChat.api as _api
from SocketChat.config import config
from SocketChat.core.storage import open_store, seed_demo_data


def api(host: Optional[str] = None, port: Optional[int] = None, db: Optional[str] = None, seed: bool = False):
    """
    Start the REST api on its own.

    Without a socket server in the process there is no live presence, so
    the health endpoint reports zero online users.

    Args:
        host (str): Bind address
        port (int): Port number for the api (default: config.DEFAULT_API_PORT)
        db (str): SQLite file; None keeps everything in memory
        seed (bool): Create demo users and a group on startup
    """
    store = open_store(db or config.SQLITE_DB_FILE)
    if seed:
        asyncio.run(seed_demo_data(store))
    _api.run(_api.create_app(store), host=host, api_port=port)
