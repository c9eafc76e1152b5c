"""
Time-limited caches for procedure signatures read from the catalog.
"""
import functools
import logging
import threading

import cachetools

logger = logging.getLogger(__name__)


class Cache:
    """Process-wide registry of named ``TTLCache`` objects.

    Keys always start with the lower-cased procedure name followed by a
    colon, which is what ``clear_for_procedure`` matches on.
    """

    _instance = None
    _caches: dict[str, cachetools.TTLCache] = {}
    _lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'Cache':
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def get_cache(self, name: str, maxsize: int = 100, ttl: int = 300) -> cachetools.TTLCache:
        """Return the cache called ``name``, created on first use.

        ``maxsize`` and ``ttl`` only apply when the cache is created.
        """
        with self._lock:
            return self._caches.setdefault(name, cachetools.TTLCache(maxsize=maxsize, ttl=ttl))

    def clear_all(self) -> None:
        with self._lock:
            for cache in self._caches.values():
                cache.clear()

    def clear_for_procedure(self, procedure: str) -> None:
        """Forget what is known about one procedure, e.g. after ALTER PROCEDURE."""
        prefix = f'{procedure.lower()}:'
        with self._lock:
            for name, cache in self._caches.items():
                stale = [key for key in list(cache) if key.startswith(prefix)]
                for key in stale:
                    del cache[key]
                if stale:
                    logger.debug(f'Dropped {len(stale)} {name} entries for {procedure}')


def _database_identity(cn) -> str:
    """Password-free URL of the database behind a connection, '' if unknown."""
    url = getattr(getattr(cn, 'engine', None), 'url', None)
    if url is None:
        return ''
    return url.render_as_string(hide_password=True)


def _create_cache_key(procedure: str, method_args: tuple, method_kwargs: dict,
                      database: str = '') -> str:
    positional = ':'.join(map(repr, method_args))
    named = ':'.join(f'{k}={method_kwargs[k]!r}' for k in sorted(method_kwargs) if k != 'bypass_cache')
    return f'{procedure}:{database}:{positional}:{named}'.lower()


def cacheable_strategy(cache_name: str, ttl: int = 300, maxsize: int = 50):
    """Cache a strategy method of the form ``method(self, cn, procedure, ...)``.

    Entries are keyed by procedure and by the database ``cn`` is connected
    to; each strategy class and method gets its own cache.
    ``bypass_cache=True`` reads through without storing.
    """
    def decorator(method):
        qualified = f'{cache_name}_{method.__qualname__.replace(".", "_")}'

        @functools.wraps(method)
        def wrapper(self, cn, procedure, *args, bypass_cache=False, **kwargs):
            if bypass_cache:
                return method(self, cn, procedure, *args, **kwargs)

            cache = Cache.get_instance().get_cache(qualified, ttl=ttl, maxsize=maxsize)
            key = _create_cache_key(procedure, args, kwargs, _database_identity(cn))
            try:
                return cache[key]
            except KeyError:
                pass
            logger.debug(f'Looking up {procedure} ({method.__name__}), not cached')
            cache[key] = result = method(self, cn, procedure, *args, **kwargs)
            return result

        return wrapper
    return decorator
