import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.routing import Route

from hotroutes import HeadersAlreadySentError, HotRoutesException, HTTPError, ResponseBuilder
from hotroutes.bridge import is_exposable


class WriteFirst:
    """Host middleware that starts every response before routing."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            await ResponseBuilder.for_scope(scope, send).write("Headers already sent error occurred.")
        await self.app(scope, receive, send)


class TriggerError:
    """Host endpoint that hands an error to ``Router.error``."""

    def __init__(self, router, err, written: str | None = None):
        self.router = router
        self.err = err
        self.written = written

    async def __call__(self, scope, receive, send):
        response = ResponseBuilder.for_scope(scope, send)
        if self.written:
            await response.write(self.written)
        await self.router.error(self.err, Request(scope, receive), response)


class TestCustomErrors:
    @pytest_asyncio.fixture
    async def custom_app(self, app, router, route_tree):
        await router.set_routes(route_tree("custom_errors"), app)
        return app

    @pytest.mark.asyncio
    async def test_custom_sample_route(self, custom_app, client: AsyncClient):
        response = await client.get("/customSample")
        assert response.status_code == 200
        assert response.text == "Sample route response"

    @pytest.mark.asyncio
    async def test_custom_not_found(self, custom_app, client: AsyncClient):
        response = await client.get("/unknown")
        assert response.status_code == 404
        assert response.text == "Intentional 404 error for testing purposes"

    @pytest.mark.asyncio
    async def test_custom_method_not_allowed(self, custom_app, client: AsyncClient, errors):
        response = await client.post("/customSample")
        assert response.status_code == 405
        assert response.text == "Intentional 405 error for testing purposes"
        assert errors == []

    @pytest.mark.asyncio
    async def test_custom_server_error(self, custom_app, client: AsyncClient, errors):
        response = await client.get("/customFail")
        assert response.status_code == 500
        assert response.text == "Intentional 500 error for testing purposes"
        assert len(errors) == 1
        assert errors[0].message == "An error occurred in get /customFail for /customFail."
        assert str(errors[0].err) == "Intentional error for testing purposes"


@pytest.mark.asyncio
async def test_failing_fallback_module_uses_default_body(app, router, tmp_path, client: AsyncClient, caplog):
    (tmp_path / "broken_not_found.py").write_text(
        "from hotroutes import Route, RouteModule\n"
        "\n"
        "\n"
        "class BrokenNotFound(RouteModule):\n"
        "    @classmethod\n"
        "    def route(cls) -> Route:\n"
        "        route = super().route()\n"
        "        route.not_found = True\n"
        "        return route\n"
        "\n"
        "    @staticmethod\n"
        "    def get(request, response, next_):\n"
        "        raise RuntimeError('fallback is broken')\n"
    )
    await router.set_routes(tmp_path, app)

    response = await client.get("/anything")
    assert response.status_code == 404
    assert response.text == "HTTP 404 Not Found"
    assert "fallback in" in caplog.text


@pytest.mark.asyncio
async def test_fallback_module_passing_on_uses_default_body(app, router, tmp_path, client: AsyncClient, errors):
    (tmp_path / "passing_server_error.py").write_text(
        "from hotroutes import Route, RouteModule\n"
        "\n"
        "\n"
        "class PassingServerError(RouteModule):\n"
        "    @classmethod\n"
        "    def route(cls) -> Route:\n"
        "        route = super().route()\n"
        "        route.server_error = True\n"
        "        route.not_found = True\n"
        "        return route\n"
        "\n"
        "    @staticmethod\n"
        "    def get(request, response, next_):\n"
        "        response.set_status(202)\n"
        "        next_()\n"
    )
    (tmp_path / "fail_route.py").write_text(
        "from hotroutes import Route, RouteModule\n"
        "\n"
        "\n"
        "class FailRoute(RouteModule):\n"
        "    @classmethod\n"
        "    def route(cls) -> Route:\n"
        "        route = super().route()\n"
        "        route.path = '/fail'\n"
        "        return route\n"
        "\n"
        "    @staticmethod\n"
        "    def get(request, response, next_):\n"
        "        raise RuntimeError('Intentional error for testing purposes')\n"
    )
    await router.set_routes(tmp_path, app)

    response = await client.get("/anything")
    assert response.status_code == 404
    assert response.text == "HTTP 404 Not Found"

    response = await client.get("/fail")
    assert response.status_code == 500
    assert response.text == "HTTP 500 Server Error"
    assert len(errors) == 1


class TestHeadersAlreadySent:
    @pytest_asyncio.fixture
    async def app(self, router, route_tree):
        _app = Starlette(middleware=[Middleware(WriteFirst)])
        await router.set_routes(route_tree("routes"), _app)
        return _app

    @pytest.mark.asyncio
    async def test_page_reports_headers_already_sent(self, client: AsyncClient, errors):
        response = await client.get("/headers")
        assert response.status_code == 200
        assert response.text == "Headers already sent error occurred."
        assert len(errors) == 1
        assert errors[0].message == "An unhandled error has occurred."
        assert str(errors[0].err) == "Headers already sent."
        assert isinstance(errors[0].err, HeadersAlreadySentError)

    @pytest.mark.asyncio
    async def test_not_found_just_ends_the_response(self, client: AsyncClient, errors):
        response = await client.get("/not-found")
        assert response.status_code == 200
        assert response.text == "Headers already sent error occurred."
        assert errors == []


class TestRouterError:
    @pytest.mark.asyncio
    async def test_generic_error(self, router, route_tree, errors):
        _app = Starlette(routes=[Route("/triggerError", TriggerError(router, Exception("Test error")))])
        await router.set_routes(route_tree("routes"), _app)

        async with AsyncClient(transport=ASGITransport(app=_app), base_url="http://testserver") as c:
            response = await c.get("/triggerError")

        assert response.status_code == 500
        assert response.text == "HTTP 500 Server Error"
        assert len(errors) == 1
        assert errors[0].message == "An unhandled error has occurred."
        assert str(errors[0].err) == "Test error"

    @pytest.mark.asyncio
    async def test_exposable_error(self, router, errors):
        err = HTTPError(503, "Test error", expose=True)
        _app = Starlette(routes=[Route("/triggerError", TriggerError(router, err))])

        async with AsyncClient(transport=ASGITransport(app=_app), base_url="http://testserver") as c:
            response = await c.get("/triggerError")

        assert response.status_code == 503
        assert response.text == "Test error"
        assert errors == []

    @pytest.mark.asyncio
    async def test_exposable_error_after_headers_sent(self, router, errors):
        err = HTTPError(503, "Test error", expose=True)
        _app = Starlette(
            routes=[Route("/triggerError", TriggerError(router, err, written="Headers already sent."))]
        )

        async with AsyncClient(transport=ASGITransport(app=_app), base_url="http://testserver") as c:
            response = await c.get("/triggerError")

        assert response.status_code == 200
        assert response.text == "Headers already sent."
        assert errors == []


class TestExceptionHandler:
    @pytest.fixture
    def app(self, router):
        async def teapot(request):
            raise HTTPError(503, "Kettle offline", expose=True)

        async def broken(request):
            raise HotRoutesException("Database unavailable")

        return Starlette(
            routes=[Route("/teapot", teapot), Route("/broken", broken)],
            exception_handlers={HotRoutesException: router.exception_handler},
        )

    @pytest.mark.asyncio
    async def test_exposable_error(self, client: AsyncClient, errors):
        response = await client.get("/teapot")
        assert response.status_code == 503
        assert response.text == "Kettle offline"
        assert errors == []

    @pytest.mark.asyncio
    async def test_unhandled_error(self, client: AsyncClient, errors):
        response = await client.get("/broken")
        assert response.status_code == 500
        assert response.text == "HTTP 500 Server Error"
        assert len(errors) == 1
        assert str(errors[0].err) == "Database unavailable"


def test_is_exposable():
    from starlette.exceptions import HTTPException

    class StatusError(Exception):
        status = 409
        expose = True

    assert is_exposable(HTTPError(400))
    assert is_exposable(HTTPError(503, expose=True))
    assert not is_exposable(HTTPError(500, expose=True))
    assert not is_exposable(HTTPError(503))
    assert is_exposable(HTTPException(404))
    assert not is_exposable(HTTPException(502))
    assert is_exposable(StatusError())
    assert not is_exposable(ValueError("plain"))
    assert not is_exposable(HotRoutesException("base"))
