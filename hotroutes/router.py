"""The router coordinator.

A ``Router`` owns everything built from one routes directory: the registry,
the hot reload cache and the error bridge. It is also the notification
channel, emitting ``error`` and ``reload`` events.

```python
app = Starlette()
router = Router()

@router.on("error")
def log_error(event: RouterErrorEvent):
    logger.error(event.message, exc_info=event.err)

await router.set_routes("./routes", app, {"hot": True})
```
"""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, NamedTuple

from starlette.requests import HTTPConnection, Request
from starlette.responses import Response
from starlette.routing import BaseRoute, Match, Mount
from starlette.routing import Router as StarletteRouter
from starlette.types import ASGIApp, Receive, Scope, Send

from hotroutes.bridge import ErrorBridge
from hotroutes.cache import HotReloadCache
from hotroutes.config import RouterOptions, RoutesConfigError, resolve_options
from hotroutes.descriptors import RouteDescriptor
from hotroutes.discovery import discover_routes
from hotroutes.dispatch import Dispatcher, build_web_router
from hotroutes.events import EventEmitter, RouteReloadEvent
from hotroutes.loader import RouteLoader
from hotroutes.registry import Registry
from hotroutes.responses import ResponseBuilder
from hotroutes.websockets import build_web_socket_router, socket_not_found

logger = logging.getLogger(__name__)


class Routers(NamedTuple):
    web_router: StarletteRouter
    web_socket_router: StarletteRouter


class TransportMount(Mount):
    """A ``Mount`` that only matches one kind of connection."""

    def __init__(self, path: str, app: ASGIApp, *, scope_type: str, name: str | None = None):
        super().__init__(path, app=app, name=name)
        self.scope_type = scope_type

    def matches(self, scope: Scope) -> tuple[Match, Scope]:
        if scope["type"] != self.scope_type:
            return Match.NONE, {}
        return super().matches(scope)


class BridgeResponse(Response):
    """Starlette response that answers through the router's error bridge."""

    def __init__(self, router: "Router", exc: Exception):
        super().__init__()
        self.router = router
        self.exc = exc

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        await self.router.error(self.exc, request, ResponseBuilder.for_scope(scope, send))


class Router(EventEmitter):
    def __init__(self):
        super().__init__()
        self.options: RouterOptions = resolve_options()
        self.registry = Registry()
        self.loader: RouteLoader | None = None
        self.cache: HotReloadCache | None = None
        self.bridge = ErrorBridge(self.registry, self)
        self._mounted: tuple[list[BaseRoute], list[Mount]] | None = None

    async def get_routers(
        self,
        routes_path: str | Path,
        options: Mapping[str, Any] | None = None,
    ) -> Routers:
        """Discover a routes directory and build its routers.

        The registry is rebuilt from source on every call. Any malformed
        handler module aborts the build.

        Args:
            routes_path: Directory holding the handler modules.
            options: Router options, see ``hotroutes.config.RouterOptions``.

        Returns:
            The request/response router and the socket router.

        Raises:
            RoutesConfigError: If the options are invalid.
            RouteDefinitionError: If a handler module is malformed.
            FileNotFoundError: If the routes directory does not exist.
        """
        resolved = resolve_options(options)
        loader = RouteLoader(routes_path)
        registry = Registry(discover_routes(loader))

        if self.loader is not None and self.loader.package != loader.package:
            self.loader.unload()

        self.options = resolved
        self.loader = loader
        self.registry = registry
        self.cache = HotReloadCache(loader, on_reload=self._on_reload)
        self.bridge = ErrorBridge(registry, self, self.cache, hot=resolved["hot"])

        dispatcher = Dispatcher(registry, self.bridge, self.cache, hot=resolved["hot"])
        routers = Routers(
            web_router=build_web_router(dispatcher, web_socket_fallback=socket_not_found),
            web_socket_router=build_web_socket_router(dispatcher),
        )

        logger.info(
            f"Registered {len(registry.pages)} pages and {len(registry.web_sockets)} web sockets "
            f"from {loader.directory} (hot={resolved['hot']})"
        )
        return routers

    async def set_routes(
        self,
        routes_path: str | Path,
        app: Any,
        options: Mapping[str, Any] | None = None,
    ) -> Routers:
        """Build the routers and mount them onto a Starlette application.

        The request/response router is mounted at ``web_root`` and the socket
        router at ``web_socket_root``. A target without websocket support only
        gets the request/response router.
        """
        if app is None:
            raise RoutesConfigError("A Starlette application must be provided.")

        target = getattr(app, "router", app)
        if not isinstance(getattr(target, "routes", None), list):
            raise RoutesConfigError(f"Cannot mount routes onto {type(app).__name__}; it has no route list.")

        routers = await self.get_routers(routes_path, options)
        self.unmount()

        mounts = [TransportMount(self.options["web_root"], routers.web_router, scope_type="http")]
        if hasattr(target, "add_websocket_route"):
            mounts.append(
                TransportMount(self.options["web_socket_root"], routers.web_socket_router, scope_type="websocket")
            )
        else:
            logger.warning(f"{type(app).__name__} does not support web sockets; only pages were mounted")

        target.routes.extend(mounts)
        self._mounted = (target.routes, mounts)
        return routers

    def unmount(self) -> None:
        """Removes the mounts added by the last ``set_routes`` call."""
        if self._mounted is None:
            return

        routes, mounts = self._mounted
        routes[:] = [route for route in routes if not any(route is mount for mount in mounts)]
        self._mounted = None

    def close(self) -> None:
        """Unmounts the routes and unloads the routes package."""
        self.unmount()
        if self.loader is not None:
            self.loader.unload()

    async def error(
        self,
        err: BaseException,
        request: HTTPConnection,
        response: ResponseBuilder,
        next_=None,
    ) -> None:
        """Apply the router's error policy from the host's own error handling."""
        try:
            await self.bridge.error(err, request, response, next_)
        finally:
            await response.finish()

    async def exception_handler(self, request: Request, exc: Exception) -> Response:
        """Starlette exception handler running the router's error policy.

        ```python
        app = Starlette(exception_handlers={HTTPError: router.exception_handler})
        ```
        """
        return BridgeResponse(self, exc)

    async def _on_reload(self, descriptor: RouteDescriptor) -> None:
        await self.emit("reload", RouteReloadEvent(file=descriptor.file, descriptor=descriptor))
