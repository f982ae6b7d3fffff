"""
Application factory for serving a routes directory.

This module builds a Starlette application that mounts a routes directory on
startup, so the same app can be launched by the CLI, by uvicorn directly or by
tests.
"""

import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from starlette.applications import Starlette

from hotroutes.events import RouterErrorEvent
from hotroutes.exceptions import HotRoutesException
from hotroutes.router import Router

logger = logging.getLogger(__name__)


def log_router_error(event: RouterErrorEvent) -> None:
    logger.error(event.message, exc_info=event.err)


def create_app(
    routes_path: str | Path,
    options: Mapping[str, Any] | None = None,
    *,
    router: Router | None = None,
) -> Starlette:
    """Create a Starlette app serving a routes directory.

    The routes are discovered and mounted when the app starts up and unloaded
    when it shuts down. Every error the router reports is logged.

    Args:
        routes_path: Directory holding the handler modules.
        options: Router options (``hot``, ``web_root``, ``web_socket_root``).
        router: An existing router to use, for example one that already has
            listeners attached. A new one is created otherwise.

    Returns:
        A configured Starlette instance. The router is available as
        ``app.state.router``.

    Examples:
        ```python
        app = create_app("./routes", {"hot": True})
        uvicorn.run(app)
        ```
    """
    router = router or Router()
    router.on("error", log_router_error)

    @asynccontextmanager
    async def lifespan(app: Starlette):
        await router.set_routes(routes_path, app, options)
        yield
        router.close()

    app = Starlette(
        lifespan=lifespan,
        exception_handlers={HotRoutesException: router.exception_handler},
    )
    app.state.router = router
    return app
