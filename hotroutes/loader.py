"""
Route module loader for hotroutes.

This module loads handler modules from a routes directory without modifying
sys.path. The directory is exposed as a synthetic package so that handler
modules can import each other with relative imports, and any module can be
dropped from the import cache and executed again for hot reloading.
"""

import hashlib
import importlib
import importlib.abc
import importlib.machinery
import importlib.util
import logging
import sys
from pathlib import Path
from types import ModuleType

logger = logging.getLogger(__name__)

DottedPath = str


class RouteSourceLoader(importlib.machinery.SourceFileLoader):
    """Always compiles from source. A rewrite inside one mtime tick must not be
    answered from a stale ``__pycache__`` entry."""

    def get_code(self, fullname):
        return self.source_to_code(self.get_data(self.path), self.path)


class RoutePackageInjector(importlib.abc.Loader):
    """Creates package modules for directories that have no ``__init__.py``."""

    def __init__(self, path: Path):
        self.path = path

    def create_module(self, spec):
        return None

    def exec_module(self, module):
        module.__file__ = None
        module.__package_injector__ = True


class RouteMetaPathFinder(importlib.abc.MetaPathFinder):
    def __init__(self, package: str, directory: Path):
        self.package = package
        self.directory = directory

    def find_spec(self, fullname, path, target=None):
        parts = fullname.split(".")
        if parts[0] != self.package:
            return None

        location = Path(self.directory, *parts[1:])
        if location.is_dir():
            init_file = location / "__init__.py"
            if init_file.is_file():
                return importlib.util.spec_from_file_location(
                    fullname,
                    init_file,
                    loader=RouteSourceLoader(fullname, str(init_file)),
                    submodule_search_locations=[str(location)],
                )

            spec = importlib.util.spec_from_loader(
                fullname, RoutePackageInjector(location), is_package=True
            )
            spec.submodule_search_locations = [str(location)]
            return spec

        source = location.with_suffix(".py")
        if source.is_file():
            return importlib.util.spec_from_file_location(
                fullname, source, loader=RouteSourceLoader(fullname, str(source))
            )

        return None

    @classmethod
    def inject(cls, package: str, directory: Path) -> "RouteMetaPathFinder":
        for finder in sys.meta_path:
            if isinstance(finder, cls) and finder.package == package:
                return finder

        finder = cls(package, directory)
        sys.meta_path.insert(0, finder)
        return finder

    @classmethod
    def remove(cls, package: str) -> None:
        sys.meta_path[:] = [
            finder
            for finder in sys.meta_path
            if not (isinstance(finder, cls) and finder.package == package)
        ]


def package_name_for(directory: Path) -> str:
    """Synthetic package name for a routes directory, unique per absolute path."""
    digest = hashlib.sha1(str(directory).encode("utf-8")).hexdigest()[:12]
    return f"_hotroutes_{digest}"


class RouteLoader:
    """Loads and reloads handler modules from a routes directory.

    Examples:
        ```python
        loader = RouteLoader("./routes")
        module = loader.load(Path("./routes/api/users.py"))
        ...
        module = loader.reload(Path("./routes/api/users.py"))
        ```
    """

    def __init__(self, directory: Path | str):
        self.directory = Path(directory).resolve()
        self.package = package_name_for(self.directory)
        RouteMetaPathFinder.inject(self.package, self.directory)
        self.purge()

    def module_name(self, file: Path) -> DottedPath:
        relative = Path(file).resolve().relative_to(self.directory).with_suffix("")
        return ".".join((self.package, *relative.parts))

    def load(self, file: Path) -> ModuleType:
        """Imports the module backing a file inside the routes directory."""
        name = self.module_name(file)
        logger.debug(f"Loading route module {name} from {file}")
        return importlib.import_module(name)

    def reload(self, file: Path) -> ModuleType:
        """Discards the cached module for a file and executes its source again."""
        name = self.module_name(file)
        previous = sys.modules.pop(name, None)
        try:
            return importlib.import_module(name)
        except BaseException:
            if previous is not None:
                sys.modules[name] = previous
            raise

    def purge(self) -> None:
        """Drops every module of this routes package from the import cache."""
        prefix = f"{self.package}."
        for name in [n for n in sys.modules if n == self.package or n.startswith(prefix)]:
            del sys.modules[name]

    def unload(self) -> None:
        """Purges the routes package and removes its import finder."""
        self.purge()
        RouteMetaPathFinder.remove(self.package)
        logger.debug(f"Unloaded routes package {self.package} for {self.directory}")
