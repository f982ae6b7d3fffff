"""Filesystem discovery of handler modules.

Walks a routes directory and loads every ``.py`` file as a handler module.
Each module must define exactly one ``RouteModule`` subclass whose ``route()``
declaration is normalized into a ``RouteDescriptor``. Any malformed module
aborts discovery with a ``RouteDefinitionError``.
"""

import inspect
import logging
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType

from hotroutes.descriptors import RouteDescriptor, normalize
from hotroutes.exceptions import RouteDefinitionError
from hotroutes.loader import RouteLoader
from hotroutes.routes import Route, RouteModule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveredRoute:
    file: Path
    module_name: str
    handle: type[RouteModule]
    route: Route


def find_route_class(module: ModuleType, file: Path) -> type[RouteModule]:
    """Return the single ``RouteModule`` subclass defined by a module."""
    candidates = [
        obj
        for obj in vars(module).values()
        if inspect.isclass(obj)
        and issubclass(obj, RouteModule)
        and obj is not RouteModule
        and obj.__module__ == module.__name__
    ]

    if not candidates:
        raise RouteDefinitionError(
            f"{file} does not define a RouteModule subclass.", file=file
        )

    if len(candidates) > 1:
        names = ", ".join(sorted(c.__name__ for c in candidates))
        raise RouteDefinitionError(
            f"{file} defines more than one RouteModule subclass ({names}).",
            file=file,
        )

    return candidates[0]


def iter_route_files(directory: Path):
    """Yields handler module files below a directory, depth first."""
    for item in sorted(directory.iterdir()):
        if item.name.startswith("."):
            continue

        if item.is_dir():
            if item.name == "__pycache__" or item.name.startswith("_"):
                continue
            yield from iter_route_files(item)
            continue

        if item.suffix != ".py" or item.name == "__init__.py":
            logger.debug(f"Skipping non-module file {item}")
            continue

        if "." in item.stem:
            logger.warning(f"Skipping {item}: a dotted file name cannot be imported as a module")
            continue

        yield item


def load_route(loader: RouteLoader, file: Path) -> DiscoveredRoute:
    module = loader.load(file)
    handle = find_route_class(module, file)
    return DiscoveredRoute(
        file=file,
        module_name=module.__name__,
        handle=handle,
        route=handle.route(),
    )


def discover_routes(loader: RouteLoader) -> list[RouteDescriptor]:
    """Walk the loader's routes directory and normalize every handler module.

    Args:
        loader: The loader bound to the routes directory.

    Returns:
        Descriptors in discovery order.

    Raises:
        FileNotFoundError: If the routes directory does not exist.
        RouteDefinitionError: If any module is missing or misdeclares its route.
    """
    root = loader.directory
    if not root.is_dir():
        raise FileNotFoundError(f"Routes directory not found: {root}")

    descriptors = []
    for file in iter_route_files(root):
        discovered = load_route(loader, file)
        descriptors.append(
            normalize(
                discovered.route,
                discovered.handle,
                file=file,
                module_name=discovered.module_name,
                last_modified=file.stat().st_mtime_ns,
            )
        )
        logger.debug(
            f"Discovered {discovered.handle.__name__} at {file} "
            f"(path={discovered.route.path!r}, capabilities={sorted(descriptors[-1].capabilities)})"
        )

    return descriptors
