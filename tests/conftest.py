import shutil
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from starlette.applications import Starlette

from hotroutes import Router, RouterErrorEvent

ROUTE_TREES = Path(__file__).parent / "route_trees"


@pytest.fixture
def route_tree(tmp_path):
    """Copies a fixture tree from tests/route_trees into a fresh directory."""

    def copy(name: str) -> Path:
        target = tmp_path / name
        shutil.copytree(ROUTE_TREES / name, target, ignore=shutil.ignore_patterns("__pycache__"))
        return target

    return copy


@pytest.fixture
def errors() -> list[RouterErrorEvent]:
    return []


@pytest.fixture
def router(errors) -> Router:
    _router = Router()
    _router.on("error", errors.append)
    return _router


@pytest.fixture
def app() -> Starlette:
    return Starlette()


@pytest_asyncio.fixture
async def client(app: Starlette) -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest_asyncio.fixture
async def routes_app(app, router, route_tree) -> Starlette:
    """App with the main fixture tree mounted at the root."""
    await router.set_routes(route_tree("routes"), app, {"hot": False})
    return app
