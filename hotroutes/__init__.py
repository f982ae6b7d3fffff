__version__ = "0.1.0"

from hotroutes.config import RouterOptions, RoutesConfigError, load_options, resolve_options
from hotroutes.events import EventEmitter, Observer, RouteReloadEvent, RouterErrorEvent
from hotroutes.exceptions import (
    HeadersAlreadySentError,
    HotRoutesException,
    HTTPError,
    RouteDefinitionError,
)
from hotroutes.outcomes import Next, Outcome
from hotroutes.responses import ResponseBuilder
from hotroutes.router import Router, Routers
from hotroutes.routes import Route, RouteModule
from hotroutes.websockets import SocketSession

__all__ = [
    "EventEmitter",
    "HTTPError",
    "HeadersAlreadySentError",
    "HotRoutesException",
    "Next",
    "Observer",
    "Outcome",
    "ResponseBuilder",
    "Route",
    "RouteDefinitionError",
    "RouteModule",
    "RouteReloadEvent",
    "Router",
    "RouterErrorEvent",
    "RouterOptions",
    "Routers",
    "RoutesConfigError",
    "SocketSession",
    "load_options",
    "resolve_options",
]
