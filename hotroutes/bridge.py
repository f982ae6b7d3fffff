"""Error bridge.

Every failure at the dispatch boundary ends up here, whether a handler raised,
passed an error to ``next_``, or the host called ``Router.error`` from its own
error handling. The bridge decides whether the client sees the error verbatim
or a fallback page, and reports everything else on the notification channel.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable

from starlette.exceptions import HTTPException
from starlette.requests import HTTPConnection

from hotroutes.cache import HotReloadCache
from hotroutes.descriptors import RouteDescriptor
from hotroutes.events import EventEmitter, RouterErrorEvent
from hotroutes.exceptions import HeadersAlreadySentError
from hotroutes.outcomes import Outcome, invoke
from hotroutes.registry import Registry
from hotroutes.responses import ResponseBuilder

logger = logging.getLogger(__name__)

NOT_FOUND_BODY = "HTTP 404 Not Found"
METHOD_NOT_ALLOWED_BODY = "HTTP 405 Method Not Allowed"
SERVER_ERROR_BODY = "HTTP 500 Server Error"
UNHANDLED_ERROR_MESSAGE = "An unhandled error has occurred."

Continuation = Callable[[], Awaitable[None]]


def error_status(err: BaseException) -> int | None:
    status = getattr(err, "status_code", None)
    if status is None:
        status = getattr(err, "status", None)
    return status if isinstance(status, int) else None


def is_exposable(err: BaseException) -> bool:
    """Whether an error's status and message may be shown to the client as is.

    Starlette's ``HTTPException`` is exposable for client errors. Anything
    else must carry a status code and a truthy ``expose`` attribute, the way
    ``hotroutes.HTTPError`` does. A 500 is never exposed.
    """
    status = error_status(err)
    if status is None or status == 500:
        return False

    if isinstance(err, HTTPException):
        return status < 500

    return bool(getattr(err, "expose", False))


def exposed_message(err: BaseException) -> str:
    if isinstance(err, HTTPException):
        return err.detail

    message = getattr(err, "message", None)
    return message if isinstance(message, str) else str(err)


class ErrorBridge:
    def __init__(
        self,
        registry: Registry,
        emitter: EventEmitter,
        cache: HotReloadCache | None = None,
        hot: bool = False,
    ):
        self.registry = registry
        self.emitter = emitter
        self.cache = cache
        self.hot = hot

    async def emit_error(self, message: str, err: BaseException, request: HTTPConnection) -> None:
        await self.emitter.emit("error", RouterErrorEvent(message=message, err=err, req=request))

    async def error(
        self,
        err: BaseException,
        request: HTTPConnection,
        response: ResponseBuilder,
        next_=None,
    ) -> None:
        """Terminal error handling.

        Client-exposable errors are sent with their own status and message and
        are not reported. Everything else is reported as an unhandled error and
        answered by the server error fallback.
        """
        if is_exposable(err):
            if response.headers_sent:
                await response.end()
                return

            response.clear()
            response.set_status(error_status(err))
            for name, value in (getattr(err, "headers", None) or {}).items():
                response.add_header(name, value)
            await response.send(exposed_message(err))
            return

        await self.emit_error(UNHANDLED_ERROR_MESSAGE, err, request)
        await self.server_error(request, response)

    async def resolve(
        self,
        outcome: Outcome,
        request: HTTPConnection,
        response: ResponseBuilder,
        *,
        message: str | None = None,
        on_pass: Continuation | None = None,
    ) -> None:
        """Turn a handler outcome into a response action."""
        if outcome.is_done:
            return

        if outcome.is_passed:
            if on_pass is None:
                await self.not_found(request, response)
            else:
                await on_pass()
            return

        if outcome.thrown and not is_exposable(outcome.error):
            await self.emit_error(message or outcome.message or UNHANDLED_ERROR_MESSAGE, outcome.error, request)
            await self.server_error(request, response)
            return

        await self.error(outcome.error, request, response)

    async def guard_headers(self, request: HTTPConnection, response: ResponseBuilder) -> bool:
        """Route a started response to the error handler.

        Returns:
            True when the response had already started.
        """
        if not response.headers_sent:
            return False

        await self.error(HeadersAlreadySentError(), request, response)
        return True

    async def not_found(self, request: HTTPConnection, response: ResponseBuilder) -> None:
        if response.headers_sent:
            await response.end()
            return

        await self._fallback(self.registry.not_found, request, response, 404, NOT_FOUND_BODY)

    async def method_not_allowed(
        self,
        request: HTTPConnection,
        response: ResponseBuilder,
        allowed: Iterable[str] = (),
    ) -> None:
        headers = {"allow": ", ".join(allowed)} if allowed else {}
        await self._fallback(
            self.registry.method_not_allowed,
            request,
            response,
            405,
            METHOD_NOT_ALLOWED_BODY,
            headers,
        )

    async def server_error(self, request: HTTPConnection, response: ResponseBuilder) -> None:
        await self._fallback(self.registry.server_error, request, response, 500, SERVER_ERROR_BODY)

    async def _fallback(
        self,
        descriptor: RouteDescriptor | None,
        request: HTTPConnection,
        response: ResponseBuilder,
        status_code: int,
        body: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        if response.headers_sent:
            await response.end()
            return

        if descriptor is not None and "get" in descriptor.capabilities:
            outcome = await self._run_fallback(descriptor, request, response)
            if outcome.is_done or response.headers_sent:
                return

            if outcome.is_failed:
                logger.error(
                    f"The {status_code} fallback in {descriptor.file} failed, sending the default response",
                    exc_info=outcome.error,
                )
            else:
                logger.debug(f"The {status_code} fallback in {descriptor.file} passed on, sending the default response")

        response.clear()
        response.set_status(status_code)
        for name, value in (headers or {}).items():
            response.add_header(name, value)
        await response.send(body)

    async def _run_fallback(
        self,
        descriptor: RouteDescriptor,
        request: HTTPConnection,
        response: ResponseBuilder,
    ) -> Outcome:
        try:
            if self.hot and self.cache is not None:
                await self.cache.refresh(descriptor)
            operation = descriptor.operation("get")
        except Exception as exc:
            return Outcome.failed(exc, thrown=True)

        return await invoke(operation, request, response)
