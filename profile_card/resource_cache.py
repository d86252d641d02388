import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from . import config

logger = logging.getLogger(__name__)
if config.DEBUG_CACHE:
    logger.setLevel(logging.DEBUG)

IMAGES = 'images'
TEMPLATES = 'templates'


class ResourceCache:
    """
    Keyed store for decoded images (keyed by exact source string) and parsed
    template documents (keyed by template name).

    With ttl=None entries live for the lifetime of the cache object. With a
    ttl in seconds an entry older than that is dropped on its next lookup so
    the caller refetches it. Two requests missing the same key both fetch;
    the later put simply overwrites an identical value.
    """

    def __init__(self, ttl: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._stores: Dict[str, Dict[str, Tuple[Any, float]]] = {IMAGES: {}, TEMPLATES: {}}
        self._lock = threading.Lock()
        self._stats = {'hits': 0, 'misses': 0, 'expired': 0}

    def _get(self, kind: str, key: str) -> Optional[Any]:
        with self._lock:
            store = self._stores[kind]
            entry = store.get(key)
            if entry is None:
                self._stats['misses'] += 1
                return None
            value, stored_at = entry
            if self.ttl is not None and self.clock() - stored_at > self.ttl:
                del store[key]
                self._stats['expired'] += 1
                self._stats['misses'] += 1
                logger.debug(f"Cache entry expired: {kind}/{key}")
                return None
            self._stats['hits'] += 1
            return value

    def _put(self, kind: str, key: str, value: Any) -> None:
        with self._lock:
            self._stores[kind][key] = (value, self.clock())
        logger.debug(f"Cached {kind}/{key}")

    def get_image(self, source: str):
        return self._get(IMAGES, source)

    def put_image(self, source: str, image) -> None:
        self._put(IMAGES, source, image)

    def get_template(self, name: str):
        return self._get(TEMPLATES, name)

    def put_template(self, name: str, document) -> None:
        self._put(TEMPLATES, name, document)

    def invalidate(self, kind: str, key: str) -> bool:
        """Drop one entry. Returns True if it was present."""
        with self._lock:
            return self._stores[kind].pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            for store in self._stores.values():
                store.clear()
        logger.info("Resource cache cleared")

    def stats(self) -> dict:
        with self._lock:
            return {
                'cached_images': len(self._stores[IMAGES]),
                'cached_templates': len(self._stores[TEMPLATES]),
                'ttl_seconds': self.ttl,
                **self._stats,
            }
