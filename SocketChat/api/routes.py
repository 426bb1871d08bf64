import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI

from SocketChat.config import config
from .routes_base import create_app

logger = logging.getLogger(__name__)


async def serve(app: FastAPI, host: str = None, port: int = None) -> None:
    """
    Serve ``app`` with Uvicorn inside the running event loop.

    Used when the REST api shares a loop with the WebSocket server.
    """
    server = uvicorn.Server(uvicorn.Config(
        app,
        host=host or config.DEFAULT_HOST,
        port=config.DEFAULT_API_PORT if port is None else port,
        log_config=None,
    ))
    await server.serve()


def run(app: FastAPI, host: Optional[str] = None, api_port: Optional[int] = None) -> None:
    """
    Run the FastAPI application with Uvicorn server.

    Args:
        app: Application built by ``create_app``
        host: Bind address
        api_port: Port for the api
    """
    port = config.DEFAULT_API_PORT if api_port is None else api_port
    logger.info("REST api listening on http://%s:%s", host or config.DEFAULT_HOST, port)
    uvicorn.run(app, host=host or config.DEFAULT_HOST, port=port, log_config=None)


__all__ = ['create_app', 'serve', 'run']
