import logging
from collections.abc import Iterable, Iterator
from pathlib import Path

from hotroutes.descriptors import SINGLETON_ROLES, RouteDescriptor
from hotroutes.exceptions import RouteDefinitionError

logger = logging.getLogger(__name__)


class Registry:
    """In-memory route table keyed by handler file.

    Singleton roles (not found, method not allowed, server error, catch all)
    hold at most one descriptor each; the last one registered wins and the
    overwrite is logged as a warning.
    """

    def __init__(self, descriptors: Iterable[RouteDescriptor] = ()):
        self._descriptors: dict[Path, RouteDescriptor] = {}
        self._singletons: dict[str, Path | None] = dict.fromkeys(SINGLETON_ROLES)
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: RouteDescriptor) -> None:
        if descriptor.file in self._descriptors:
            raise RouteDefinitionError(
                f"{descriptor.file} is already registered.", file=descriptor.file
            )

        self._descriptors[descriptor.file] = descriptor
        for role in descriptor.roles:
            current = self._singletons[role]
            if current is not None:
                logger.warning(
                    f"Both {current} and {descriptor.file} declare the {role} role; "
                    f"{descriptor.file} will be used"
                )
            self._singletons[role] = descriptor.file

    def get(self, file: Path) -> RouteDescriptor | None:
        return self._descriptors.get(file)

    def __getitem__(self, file: Path) -> RouteDescriptor:
        return self._descriptors[file]

    def __contains__(self, file: object) -> bool:
        return file in self._descriptors

    def __iter__(self) -> Iterator[RouteDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)

    @property
    def includes(self) -> list[RouteDescriptor]:
        return [d for d in self if d.include]

    @property
    def web_sockets(self) -> list[RouteDescriptor]:
        return [d for d in self if d.is_web_socket]

    @property
    def pages(self) -> list[RouteDescriptor]:
        return [d for d in self if d.is_page]

    def singleton(self, role: str) -> RouteDescriptor | None:
        file = self._singletons[role]
        return None if file is None else self._descriptors[file]

    @property
    def not_found(self) -> RouteDescriptor | None:
        return self.singleton("not_found")

    @property
    def method_not_allowed(self) -> RouteDescriptor | None:
        return self.singleton("method_not_allowed")

    @property
    def server_error(self) -> RouteDescriptor | None:
        return self.singleton("server_error")

    @property
    def catch_all(self) -> RouteDescriptor | None:
        return self.singleton("catch_all")
