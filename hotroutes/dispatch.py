"""Request/response dispatch.

Page descriptors are grouped by path into ``PageEndpoint`` ASGI apps and laid
out on a starlette ``Router`` in discovery order. Anything the router does not
match lands on the ``FallbackEndpoint``, which runs the catch-all module if
one is registered and the not-found fallback otherwise.
"""

import logging
import re
from collections.abc import Iterable
from typing import Any

from starlette.requests import HTTPConnection, Request
from starlette.routing import BaseRoute, Match, NoMatchFound, Route
from starlette.routing import Router as StarletteRouter
from starlette.types import Receive, Scope, Send
from starlette.websockets import WebSocket

from hotroutes.bridge import ErrorBridge
from hotroutes.cache import HotReloadCache
from hotroutes.descriptors import RouteDescriptor
from hotroutes.outcomes import Outcome, invoke, run_chain
from hotroutes.registry import Registry
from hotroutes.responses import ResponseBuilder

logger = logging.getLogger(__name__)


def route_path(scope: Scope) -> str:
    """The request path relative to the mount point the router sits under."""
    path: str = scope["path"]
    root_path = scope.get("root_path", "")
    if not root_path or not path.startswith(root_path):
        return path

    if path == root_path:
        return ""

    if path[len(root_path)] == "/":
        return path[len(root_path):]

    return path


class PatternRoute(BaseRoute):
    """Route for a compiled regular expression path.

    The pattern is searched, not anchored, against the route path. Named
    groups become path parameters.
    """

    def __init__(
        self,
        pattern: re.Pattern[str],
        endpoint: Any,
        *,
        name: str | None = None,
        scope_type: str = "http",
    ):
        self.pattern = pattern
        self.scope_type = scope_type
        self.path = pattern.pattern
        self.app = endpoint
        self.name = name

    def matches(self, scope: Scope) -> tuple[Match, Scope]:
        if scope["type"] != self.scope_type:
            return Match.NONE, {}

        match = self.pattern.search(route_path(scope))
        if match is None:
            return Match.NONE, {}

        path_params = dict(scope.get("path_params", {}))
        path_params.update({k: v for k, v in match.groupdict().items() if v is not None})
        return Match.FULL, {"endpoint": self.app, "path_params": path_params}

    def url_path_for(self, name: str, /, **path_params: Any):
        raise NoMatchFound(name, path_params)

    async def handle(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.app(scope, receive, send)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(pattern={self.path!r}, name={self.name!r})"


class Dispatcher:
    """Runs handler modules against requests and hands outcomes to the bridge."""

    def __init__(
        self,
        registry: Registry,
        bridge: ErrorBridge,
        cache: HotReloadCache,
        *,
        hot: bool = False,
    ):
        self.registry = registry
        self.bridge = bridge
        self.cache = cache
        self.hot = hot

    async def refresh(self, descriptor: RouteDescriptor) -> None:
        """Reload includes, then the descriptor, when hot reloading is on."""
        if not self.hot:
            return

        await self.cache.refresh_all(self.registry.includes)
        await self.cache.refresh(descriptor)

    async def run(
        self,
        descriptor: RouteDescriptor,
        operation_name: str,
        request: HTTPConnection,
        response: Any,
    ) -> Outcome:
        """Refresh, run the descriptor's middleware, then the operation."""
        try:
            await self.refresh(descriptor)
        except Exception as exc:
            return Outcome.failed(exc, thrown=True)

        outcome = await run_chain(descriptor.middleware, request, response)
        if not outcome.is_passed:
            return outcome

        try:
            operation = descriptor.operation(operation_name)
        except AttributeError as exc:
            return Outcome.failed(exc, thrown=True)

        return await invoke(operation, request, response)

    async def dispatch_page(
        self,
        operations: dict[str, RouteDescriptor],
        request: Request,
        response: ResponseBuilder,
    ) -> None:
        method = request.method.lower()
        operation_name, descriptor = resolve_operation(operations, method)
        if descriptor is None:
            await self.bridge.method_not_allowed(request, response, allowed_methods(operations))
            return

        if await self.bridge.guard_headers(request, response):
            return

        outcome = await self.run(descriptor, operation_name, request, response)
        await self.bridge.resolve(
            outcome,
            request,
            response,
            message=f"An error occurred in {method} {descriptor.display_path} for {request.url.path}.",
            on_pass=lambda: self.dispatch_unmatched(request, response),
        )

    async def dispatch_unmatched(self, request: Request, response: ResponseBuilder) -> None:
        """Catch-all if registered and it supports the method, else not found."""
        descriptor = self.registry.catch_all
        if descriptor is None:
            await self.bridge.not_found(request, response)
            return

        method = request.method.lower()
        operation_name, resolved = resolve_operation({m: descriptor for m in descriptor.capabilities}, method)
        if resolved is None:
            await self.bridge.not_found(request, response)
            return

        if await self.bridge.guard_headers(request, response):
            return

        outcome = await self.run(descriptor, operation_name, request, response)
        await self.bridge.resolve(
            outcome,
            request,
            response,
            message=f"An error occurred in {method} {route_path(request.scope)} for the catch all path.",
            on_pass=lambda: self.bridge.not_found(request, response),
        )


def resolve_operation(
    operations: dict[str, RouteDescriptor], method: str
) -> tuple[str, RouteDescriptor | None]:
    """Pick the operation for a method; HEAD falls back to GET."""
    if method in operations:
        return method, operations[method]

    if method == "head" and "get" in operations:
        return "get", operations["get"]

    return method, None


def allowed_methods(operations: Iterable[str]) -> list[str]:
    methods = {m.upper() for m in operations}
    if "GET" in methods:
        methods.add("HEAD")
    return sorted(methods)


class PageEndpoint:
    """ASGI app for one page path, mapping methods to descriptors."""

    def __init__(self, path: Any, dispatcher: Dispatcher):
        self.path = path
        self.dispatcher = dispatcher
        self.operations: dict[str, RouteDescriptor] = {}

    def add(self, descriptor: RouteDescriptor) -> None:
        for method in sorted(descriptor.capabilities):
            if method in self.operations:
                logger.debug(
                    f"{descriptor.file} also exposes {method} for {descriptor.display_path}; "
                    f"{self.operations[method].file} handles it"
                )
                continue
            self.operations[method] = descriptor

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        response = ResponseBuilder.for_scope(scope, send)
        try:
            await self.dispatcher.dispatch_page(self.operations, request, response)
        finally:
            await response.finish()


class FallbackEndpoint:
    """Default app of the web router: catch-all, then not found."""

    def __init__(self, dispatcher: Dispatcher, web_socket_fallback: Any = None):
        self.dispatcher = dispatcher
        self.web_socket_fallback = web_socket_fallback

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            if self.web_socket_fallback is not None:
                await self.web_socket_fallback(scope, receive, send)
            else:
                await WebSocket(scope, receive, send).close()
            return

        request = Request(scope, receive)
        response = ResponseBuilder.for_scope(scope, send)
        try:
            await self.dispatcher.dispatch_unmatched(request, response)
        finally:
            await response.finish()


def build_web_router(dispatcher: Dispatcher, web_socket_fallback: Any = None) -> StarletteRouter:
    endpoints: dict[Any, PageEndpoint] = {}
    for descriptor in dispatcher.registry.pages:
        key = descriptor.path
        if key not in endpoints:
            endpoints[key] = PageEndpoint(key, dispatcher)
        endpoints[key].add(descriptor)

    routes: list[BaseRoute] = []
    for path, endpoint in endpoints.items():
        if isinstance(path, re.Pattern):
            routes.append(PatternRoute(path, endpoint))
        else:
            routes.append(Route(path, endpoint))

    return StarletteRouter(
        routes=routes,
        redirect_slashes=False,
        default=FallbackEndpoint(dispatcher, web_socket_fallback),
    )
