"""Hot reload cache.

Before a handler runs, the cache compares the backing file's modification time
with the one recorded on its descriptor and, when they differ, executes the
module again and swaps the new class in place. Two requests racing on the same
change may both reload; replacing a module twice is harmless, so there is no
lock on this path.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable

from starlette.concurrency import run_in_threadpool

from hotroutes.descriptors import RouteDescriptor
from hotroutes.discovery import find_route_class
from hotroutes.loader import RouteLoader

logger = logging.getLogger(__name__)

ReloadCallback = Callable[[RouteDescriptor], Awaitable[None]]


class HotReloadCache:
    def __init__(self, loader: RouteLoader, on_reload: ReloadCallback | None = None):
        self._loader = loader
        self._on_reload = on_reload
        self.reload_count = 0

    async def refresh(self, descriptor: RouteDescriptor) -> bool:
        """Reload a descriptor's module if its file changed.

        Returns:
            True when the module was reloaded.
        """
        stats = await run_in_threadpool(descriptor.file.stat)
        if descriptor.last_modified == stats.st_mtime_ns:
            return False

        module = self._loader.reload(descriptor.file)
        descriptor.handle = find_route_class(module, descriptor.file)
        descriptor.last_modified = stats.st_mtime_ns
        self.reload_count += 1
        logger.info(f"Reloaded {descriptor.handle.__name__} from {descriptor.file}")

        if self._on_reload is not None:
            await self._on_reload(descriptor)

        return True

    async def refresh_all(self, descriptors: Iterable[RouteDescriptor]) -> None:
        for descriptor in descriptors:
            await self.refresh(descriptor)
