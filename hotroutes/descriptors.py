"""Normalized route descriptors.

A ``RouteDescriptor`` is what the registry stores for each handler module: the
declared role flags and path copied from its ``Route``, plus the set of
operations the module was found to implement.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path

from hotroutes.exceptions import RouteDefinitionError
from hotroutes.routes import Middleware, Route, RouteModule, RoutePath

HTTP_METHODS = ("get", "head", "post", "put", "patch", "delete", "options")

SOCKET_EVENTS = (
    "connection",
    "message",
    "close",
    "error",
    "headers",
    "listening",
    "client_error",
)

SINGLETON_ROLES = ("not_found", "method_not_allowed", "server_error", "catch_all")


@dataclass(eq=False)
class RouteDescriptor:
    file: Path
    module_name: str
    handle: type[RouteModule]
    path: RoutePath | None
    include: bool
    web_socket: bool
    catch_all: bool
    not_found: bool
    method_not_allowed: bool
    server_error: bool
    middleware: tuple[Middleware, ...] = ()
    capabilities: frozenset[str] = field(default_factory=frozenset)
    last_modified: int = 0

    @property
    def roles(self) -> tuple[str, ...]:
        return tuple(role for role in SINGLETON_ROLES if getattr(self, role))

    @property
    def is_page(self) -> bool:
        """Routable as a page: bound path and at least one HTTP operation."""
        return (
            not self.include
            and not self.web_socket
            and self.path is not None
            and bool(self.capabilities)
        )

    @property
    def is_web_socket(self) -> bool:
        return self.web_socket and self.path is not None

    @property
    def display_path(self) -> str | None:
        if isinstance(self.path, re.Pattern):
            return self.path.pattern
        return self.path

    def operation(self, name: str):
        return getattr(self.handle, name)


def probe_capabilities(handle: type, candidates: tuple[str, ...]) -> frozenset[str]:
    return frozenset(
        name for name in candidates if callable(getattr(handle, name, None))
    )


def normalize(
    route: Route,
    handle: type[RouteModule],
    *,
    file: Path,
    module_name: str,
    last_modified: int,
) -> RouteDescriptor:
    """Merge a declared ``Route`` with what the module actually implements."""
    if not isinstance(route, Route):
        raise RouteDefinitionError(
            f"{handle.__name__}.route() must return a Route, got {type(route).__name__}.",
            file=file,
            name=handle.__name__,
        )

    if isinstance(route.path, str) and not route.path.startswith("/"):
        raise RouteDefinitionError(
            f"Route path {route.path!r} for {handle.__name__} must start with '/'.",
            file=file,
            name=handle.__name__,
        )

    if route.web_socket:
        capabilities = probe_capabilities(handle, SOCKET_EVENTS)
    elif route.include:
        capabilities = frozenset()
    else:
        capabilities = probe_capabilities(handle, HTTP_METHODS)

    return RouteDescriptor(
        file=file,
        module_name=module_name,
        handle=handle,
        path=route.path,
        include=route.include,
        web_socket=route.web_socket,
        catch_all=route.catch_all,
        not_found=route.not_found,
        method_not_allowed=route.method_not_allowed,
        server_error=route.server_error,
        middleware=tuple(route.middleware),
        capabilities=capabilities,
        last_modified=last_modified,
    )
