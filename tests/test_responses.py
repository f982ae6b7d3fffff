import pytest

from hotroutes import HeadersAlreadySentError, Next, Outcome, ResponseBuilder
from hotroutes.outcomes import OutcomeKind, invoke, run_chain
from hotroutes.responses import SCOPE_KEY


class Recorder:
    """Collects ASGI messages sent by a response."""

    def __init__(self):
        self.messages = []

    async def __call__(self, message):
        self.messages.append(message)

    @property
    def start(self):
        return self.messages[0]

    @property
    def headers(self):
        return {k.decode(): v.decode() for k, v in self.start["headers"]}

    @property
    def body(self):
        return b"".join(m.get("body", b"") for m in self.messages[1:])


class TestResponseBuilder:
    @pytest.mark.asyncio
    async def test_buffered_response(self):
        send = Recorder()
        response = ResponseBuilder(send)
        response.set_status(201).content_type("application/json").body('{"id": 1}')

        assert not response.headers_sent
        await response.finish()

        assert send.start["status"] == 201
        assert send.headers == {"content-type": "application/json", "content-length": "9"}
        assert send.body == b'{"id": 1}'
        assert response.headers_sent
        assert response.writable_ended

    @pytest.mark.asyncio
    async def test_empty_response_has_no_content_type(self):
        send = Recorder()
        response = ResponseBuilder(send)
        response.set_status(204)
        await response.send()

        assert send.start["status"] == 204
        assert send.headers == {"content-length": "0"}

    @pytest.mark.asyncio
    async def test_head_response_has_no_body(self):
        send = Recorder()
        response = ResponseBuilder(send, method="HEAD")
        await response.send("hello")

        assert send.headers["content-length"] == "5"
        assert send.body == b""

    @pytest.mark.asyncio
    async def test_streaming(self):
        send = Recorder()
        response = ResponseBuilder(send)
        await response.write("first ")
        await response.end("last")

        assert send.headers == {"content-type": "text/plain; charset=utf-8"}
        assert [m["more_body"] for m in send.messages[1:]] == [True, False]
        assert send.body == b"first last"

    @pytest.mark.asyncio
    async def test_changes_after_start_are_rejected(self):
        response = ResponseBuilder(Recorder())
        await response.write("started")

        with pytest.raises(HeadersAlreadySentError, match="Headers already sent."):
            response.set_status(500)
        with pytest.raises(HeadersAlreadySentError):
            response.add_header("x-late", "1")
        with pytest.raises(HeadersAlreadySentError):
            await response.send("again")

    @pytest.mark.asyncio
    async def test_end_is_idempotent(self):
        send = Recorder()
        response = ResponseBuilder(send)
        await response.send("once")
        await response.end()
        await response.finish()

        assert len(send.messages) == 2
        with pytest.raises(HeadersAlreadySentError):
            await response.write("more")

    @pytest.mark.asyncio
    async def test_clear_resets_buffered_state(self):
        send = Recorder()
        response = ResponseBuilder(send)
        response.set_status(418).add_header("x-partial", "1").body("partial")
        response.clear()
        await response.send("fresh")

        assert send.start["status"] == 200
        assert "x-partial" not in send.headers
        assert send.body == b"fresh"

    def test_for_scope_shares_one_builder(self):
        scope = {"type": "http", "method": "HEAD"}
        first = ResponseBuilder.for_scope(scope, Recorder())
        second = ResponseBuilder.for_scope(scope, Recorder())

        assert first is second
        assert scope[SCOPE_KEY] is first


class TestOutcomes:
    @pytest.mark.asyncio
    async def test_responding_is_done(self):
        def handler(request, next_):
            pass

        assert (await invoke(handler, "request")).is_done

    @pytest.mark.asyncio
    async def test_calling_next_passes(self):
        async def handler(request, next_):
            next_()

        assert (await invoke(handler, "request")).is_passed

    @pytest.mark.asyncio
    async def test_next_with_error_fails(self):
        error = ValueError("handed on")

        def handler(request, next_):
            next_(error)

        outcome = await invoke(handler, "request")
        assert outcome == Outcome(OutcomeKind.FAILED, error, None, False)

    @pytest.mark.asyncio
    async def test_raising_fails_as_thrown(self):
        async def handler(request, next_):
            raise RuntimeError("raised")

        outcome = await invoke(handler, "request")
        assert outcome.is_failed
        assert outcome.thrown
        assert str(outcome.error) == "raised"

    @pytest.mark.asyncio
    async def test_chain_stops_at_first_handler_that_does_not_continue(self):
        calls = []

        def passing(request, next_):
            calls.append("passing")
            next_()

        def stopping(request, next_):
            calls.append("stopping")

        def unreachable(request, next_):
            calls.append("unreachable")

        outcome = await run_chain([passing, stopping, unreachable], "request")
        assert outcome.is_done
        assert calls == ["passing", "stopping"]

    @pytest.mark.asyncio
    async def test_empty_chain_passes(self):
        assert (await run_chain([], "request")).is_passed

    def test_next_records_its_call(self):
        next_ = Next()
        assert not next_.called
        next_(None)
        assert next_.called
        assert next_.error is None
