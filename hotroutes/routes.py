"""Role declarations for handler modules.

Every ``.py`` file in a routes directory defines one ``RouteModule`` subclass.
The subclass overrides ``route()`` to say what it is: a page bound to a path,
a web socket endpoint, a shared include, or one of the singleton fallbacks.

```python
from hotroutes import Route, RouteModule


class SampleRoute(RouteModule):
    @classmethod
    def route(cls) -> Route:
        route = super().route()
        route.path = "/sample"
        return route

    @staticmethod
    async def get(request, response, next_):
        await response.send("Sample route response")
```
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from hotroutes.exceptions import RouteDefinitionError

RoutePath = str | re.Pattern[str]
Middleware = Callable[..., Any]


@dataclass
class Route:
    path: RoutePath | None = None
    include: bool = False
    web_socket: bool = False
    catch_all: bool = False
    not_found: bool = False
    method_not_allowed: bool = False
    server_error: bool = False
    middleware: list[Middleware] = field(default_factory=list)


class RouteModule:
    """Base class for handler modules.

    Operations are looked up on the class, so define them as static or class
    methods. Page modules name them after lowercase HTTP verbs and receive
    ``(request, response, next_)``. Socket modules name them after session
    lifecycle events (``connection``, ``message``, ``close``, ``error``,
    ``headers``, ``listening``, ``client_error``) and receive the session first.
    """

    @classmethod
    def route(cls) -> Route:
        if "route" not in cls.__dict__:
            raise RouteDefinitionError(
                f"You must implement the route property for {cls.__name__}.",
                name=cls.__name__,
            )

        return Route()
