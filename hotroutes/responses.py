"""Response builder shared by middleware, operations and fallbacks.

Handlers either buffer a response and let the dispatcher flush it:

```python
response.set_status(201)
response.content_type("application/json")
response.body('{"id": 1}')
```

or send it themselves, possibly in several chunks:

```python
await response.write("first chunk")
await response.end("last chunk")
```

Once the first byte has gone out the status line and headers are fixed;
``headers_sent`` tells later stages not to try again.
"""

from starlette.types import Scope, Send

from hotroutes.exceptions import HeadersAlreadySentError

_TEXT_TYPE = "text/plain; charset=utf-8"
SCOPE_KEY = "hotroutes.response"


class ResponseBuilder:
    @classmethod
    def for_scope(cls, scope: Scope, send: Send) -> "ResponseBuilder":
        """Return the builder shared by every stage of one HTTP request.

        Host middleware that writes through ``for_scope`` before the router
        runs shares its response with the dispatcher.
        """
        response = scope.get(SCOPE_KEY)
        if response is None:
            response = cls(send, method=scope.get("method", "GET"))
            scope[SCOPE_KEY] = response
        return response

    def __init__(self, send: Send, *, method: str = "GET"):
        self._send = send
        self._head = method.upper() == "HEAD"
        self._status = 200
        self._headers: list[tuple[str, str]] = []
        self._body_components: list[bytes] = []
        self._has_content_type = False
        self._headers_sent = False
        self._ended = False

    @property
    def status_code(self) -> int:
        return self._status

    @property
    def headers_sent(self) -> bool:
        return self._headers_sent

    @property
    def writable_ended(self) -> bool:
        return self._ended

    def set_status(self, status_code: int) -> "ResponseBuilder":
        self._ensure_not_started()
        self._status = status_code
        return self

    def add_header(self, name: str, value: str) -> "ResponseBuilder":
        self._ensure_not_started()
        if name.lower() == "content-type":
            self._has_content_type = True
        self._headers.append((name.lower(), value))
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        self._ensure_not_started()
        self._headers = [(k, v) for k, v in self._headers if k != "content-type"]
        return self.add_header("content-type", content_type)

    def body(self, content: str | bytes) -> "ResponseBuilder":
        self._ensure_not_started()
        self._body_components.append(self._encode(content))
        return self

    def clear(self) -> None:
        self._ensure_not_started()
        self._status = 200
        self._headers = []
        self._body_components = []
        self._has_content_type = False

    async def send(self, content: str | bytes | None = None) -> None:
        """Send a complete response: buffered parts plus ``content``."""
        self._ensure_not_started()
        if content is not None:
            self.body(content)
        await self.end()

    async def write(self, chunk: str | bytes) -> None:
        """Stream a chunk, sending the status line and headers first if needed."""
        if self._ended:
            raise HeadersAlreadySentError("Response already ended.")

        if not self._headers_sent:
            await self._start(content_length=None)

        data = self._encode(chunk)
        if data and not self._head:
            await self._send({"type": "http.response.body", "body": data, "more_body": True})

    async def end(self, chunk: str | bytes | None = None) -> None:
        if self._ended:
            return

        if chunk is not None and not self._headers_sent:
            self.body(chunk)

        if self._headers_sent:
            data = b"" if chunk is None or self._head else self._encode(chunk)
        else:
            data = b"".join(self._body_components)
            await self._start(content_length=len(data))
            if self._head:
                data = b""

        self._ended = True
        await self._send({"type": "http.response.body", "body": data, "more_body": False})

    async def finish(self) -> None:
        """Flush whatever is pending so the client is never left waiting."""
        await self.end()

    async def _start(self, content_length: int | None) -> None:
        headers = list(self._headers)
        if not self._has_content_type and (content_length or content_length is None):
            headers.append(("content-type", _TEXT_TYPE))
        if content_length is not None:
            headers.append(("content-length", str(content_length)))

        self._headers_sent = True
        await self._send(
            {
                "type": "http.response.start",
                "status": self._status,
                "headers": [(k.encode("latin-1"), v.encode("latin-1")) for k, v in headers],
            }
        )

    def _ensure_not_started(self) -> None:
        if self._headers_sent:
            raise HeadersAlreadySentError()

    @staticmethod
    def _encode(content: str | bytes) -> bytes:
        if isinstance(content, bytes):
            return content
        return str(content).encode("utf-8")
