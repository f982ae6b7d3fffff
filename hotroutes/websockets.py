"""Socket dispatch.

Each socket descriptor gets a ``SocketEndpoint``. After the descriptor's
middleware lets the handshake through, the endpoint binds every lifecycle
operation the module implements as a listener on a ``SocketSession``, accepts
the connection and pumps frames into ``message`` listeners until the client
goes away.

Lifecycle listeners receive the session first:

```python
class Chat(RouteModule):
    @classmethod
    def route(cls) -> Route:
        route = super().route()
        route.path = "/chat"
        route.web_socket = True
        return route

    @staticmethod
    async def connection(session, request):
        await session.send("welcome")

    @staticmethod
    async def message(session, data):
        await session.send(data)
```
"""

import inspect
import json
import logging
import re
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from starlette.routing import Router as StarletteRouter
from starlette.routing import WebSocketRoute
from starlette.types import Receive, Scope, Send
from starlette.websockets import WebSocket, WebSocketState

from hotroutes.bridge import UNHANDLED_ERROR_MESSAGE
from hotroutes.descriptors import RouteDescriptor
from hotroutes.dispatch import Dispatcher, PatternRoute
from hotroutes.outcomes import Outcome, run_chain

logger = logging.getLogger(__name__)

NOT_FOUND_CODE = 4404
UNHANDLED_ERROR_CODE = 1011
POLICY_VIOLATION_CODE = 1008
NOT_FOUND_NOTICE = json.dumps({"error": "WebSocket path not found."}, separators=(",", ":"))
UNHANDLED_ERROR_NOTICE = json.dumps({"error": UNHANDLED_ERROR_MESSAGE}, separators=(",", ":"))

# The connection listener is bound to this signal and fired once after accept.
INIT_EVENT = "_init"


class SocketSession:
    """A connected socket plus the lifecycle listeners bound to it."""

    def __init__(
        self,
        websocket: WebSocket,
        descriptor: RouteDescriptor | None = None,
        dispatcher: Dispatcher | None = None,
    ):
        self.websocket = websocket
        self.descriptor = descriptor
        self.dispatcher = dispatcher
        self._listeners: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self._closed = False
        self.close_code: int | None = None

    @property
    def request(self) -> WebSocket:
        return self.websocket

    @property
    def accepted(self) -> bool:
        return self.websocket.application_state == WebSocketState.CONNECTED

    @property
    def closed(self) -> bool:
        return self._closed

    def on(self, event: str, listener: Callable[..., Any]) -> None:
        self._listeners[event].append(listener)

    async def emit(self, event: str, *args: Any) -> bool:
        """Fire a lifecycle event.

        A failing listener is reported once and answered with a generic error
        frame; the session stays open.

        Returns:
            False if a listener failed.
        """
        for listener in list(self._listeners[event]):
            try:
                result = listener(self, *args)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                await self._listener_failed(event, exc)
                return False

        return True

    async def accept(self, subprotocol: str | None = None) -> None:
        if self.websocket.application_state == WebSocketState.CONNECTING:
            await self.websocket.accept(subprotocol=subprotocol)

    async def send(self, data: str | bytes) -> None:
        if isinstance(data, bytes):
            await self.websocket.send_bytes(data)
        else:
            await self.websocket.send_text(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        if self._closed:
            return

        self._closed = True
        self.close_code = code
        if self.websocket.application_state != WebSocketState.DISCONNECTED:
            await self.websocket.close(code=code, reason=reason)

    def mark_disconnected(self, code: int) -> None:
        self._closed = True
        self.close_code = code

    async def _listener_failed(self, event: str, exc: Exception) -> None:
        name = "connection" if event == INIT_EVENT else event
        path = self.descriptor.display_path if self.descriptor else None
        await report(
            self.dispatcher,
            f"An error occurred in {name} {path} for {self.websocket.url.path}.",
            exc,
            self.websocket,
        )

        if self.accepted and not self._closed:
            try:
                await self.send(UNHANDLED_ERROR_NOTICE)
            except Exception:
                logger.exception(f"Could not send the error notice on {self.websocket.url.path}")


async def report(dispatcher: Dispatcher | None, message: str, err: BaseException, websocket: WebSocket) -> None:
    if dispatcher is None:
        logger.error(message, exc_info=err)
        return

    await dispatcher.bridge.emit_error(message, err, websocket)


async def socket_error(session: SocketSession, err: BaseException) -> None:
    """Default socket error handler: close with 1011 and report once."""
    await report(session.dispatcher, UNHANDLED_ERROR_MESSAGE, err, session.websocket)
    try:
        await session.accept()
        await session.close(UNHANDLED_ERROR_CODE, UNHANDLED_ERROR_NOTICE)
    except Exception:
        logger.exception(f"Could not close {session.websocket.url.path} after an error")


async def socket_not_found(scope: Scope, receive: Receive, send: Send) -> None:
    """Default app of the socket router: accept, then close with 4404."""
    session = SocketSession(WebSocket(scope, receive, send))
    await session.accept()
    await session.close(NOT_FOUND_CODE, NOT_FOUND_NOTICE)


def bind_listener(descriptor: RouteDescriptor, name: str) -> Callable[..., Any]:
    # Looked up per call so a hot reload swaps the implementation in place.
    def listener(session: SocketSession, *args: Any) -> Any:
        return descriptor.operation(name)(session, *args)

    listener.__name__ = name
    return listener


class SocketEndpoint:
    def __init__(self, descriptor: RouteDescriptor, dispatcher: Dispatcher):
        self.descriptor = descriptor
        self.dispatcher = dispatcher

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        websocket = WebSocket(scope, receive, send)
        session = SocketSession(websocket, self.descriptor, self.dispatcher)

        try:
            await self.dispatcher.refresh(self.descriptor)
        except Exception as exc:
            outcome = Outcome.failed(exc, thrown=True)
        else:
            outcome = await run_chain(self.descriptor.middleware, websocket, session)

        if outcome.is_failed:
            await socket_error(session, outcome.error)
            return

        if outcome.is_done:
            await session.close(POLICY_VIOLATION_CODE)
            return

        for name in sorted(self.descriptor.capabilities):
            session.on(INIT_EVENT if name == "connection" else name, bind_listener(self.descriptor, name))

        if not await self.handshake(session):
            return

        await session.emit(INIT_EVENT, websocket)
        await session.emit("listening")
        await self.receive_loop(session)

    async def handshake(self, session: SocketSession) -> bool:
        websocket = session.websocket
        header_lines = [f"{key}: {value}" for key, value in websocket.headers.items()]
        headers_ok = await session.emit("headers", header_lines, websocket)

        try:
            if not headers_ok:
                raise ConnectionRefusedError(f"Handshake rejected for {websocket.url.path}")
            await session.accept()
        except Exception as exc:
            await session.emit("client_error", exc, None, websocket)
            await session.close(UNHANDLED_ERROR_CODE, UNHANDLED_ERROR_NOTICE)
            return False

        return True

    async def receive_loop(self, session: SocketSession) -> None:
        websocket = session.websocket
        while not session.closed:
            try:
                message = await websocket.receive()
            except Exception as exc:
                await session.emit("error", exc)
                await socket_error(session, exc)
                return

            if message["type"] == "websocket.disconnect":
                session.mark_disconnected(message.get("code", 1000))
                await session.emit("close", session.close_code)
                return

            data = message.get("text")
            if data is None:
                data = message.get("bytes")
            await session.emit("message", data)

        await session.emit("close", session.close_code)


def build_web_socket_router(dispatcher: Dispatcher) -> StarletteRouter:
    routes = []
    for descriptor in dispatcher.registry.web_sockets:
        endpoint = SocketEndpoint(descriptor, dispatcher)
        if isinstance(descriptor.path, re.Pattern):
            routes.append(PatternRoute(descriptor.path, endpoint, scope_type="websocket"))
        else:
            routes.append(WebSocketRoute(descriptor.path, endpoint))

    return StarletteRouter(routes=routes, redirect_slashes=False, default=socket_not_found)
