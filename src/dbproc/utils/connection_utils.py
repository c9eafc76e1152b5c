"""
Engines, named pools and connection retries.

Direct providers build an unpooled engine from their options; pooled
providers resolve a pool registered by name with ``register_pool``. Both
registries are process-wide and disposed at exit.
"""
import atexit
import logging
import threading
import time
from functools import wraps
from typing import Any

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

__all__ = [
    'check_connection',
    'create_url_from_options',
    'get_engine_for_options',
    'register_pool',
    'lookup_pool',
    'unregister_pool',
    'dispose_all_engines',
    'get_dialect_name',
]

logger = logging.getLogger(__name__)

# Engines by URL and pool settings; named pools by name
_engine_registry: dict[tuple, Engine] = {}
_pool_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def create_url_from_options(options) -> sa.URL:
    """Convert DatabaseOptions to a SQLAlchemy URL.

    An explicit ``url`` (connection string) wins; ``username`` and
    ``password`` options are applied on top of it when given. Otherwise the
    dialect strategy builds the URL from discrete options.
    """
    if options.url:
        url = sa.make_url(options.url)
        if options.username:
            url = url.set(username=options.username)
        if options.password:
            url = url.set(password=options.password)
        return url

    from dbproc.strategy import get_strategy
    return get_strategy(options.drivername).build_connection_url(options)


def check_connection(func=None, *, max_retries=3, retry_delay=1,
                     retry_errors=None, retry_backoff=1.5, sleep_func=time.sleep):
    """Retry a connection attempt on transient failures.

    Usable bare or with arguments. Only errors of ``retry_errors`` (by
    default the driver and SQLAlchemy connection errors) that
    ``is_retryable_error`` accepts are retried; the wait starts at
    ``retry_delay`` seconds and grows by ``retry_backoff`` each attempt.
    """
    def decorator(f):
        @wraps(f)
        def inner(*args, **kwargs):
            from dbproc.exceptions import DbConnectionError, is_retryable_error
            catch = DbConnectionError if retry_errors is None else retry_errors
            delay = retry_delay
            for attempt in range(1, max_retries + 1):
                try:
                    return f(*args, **kwargs)
                except catch as err:
                    if not is_retryable_error(err):
                        raise
                    if attempt == max_retries:
                        logger.error(f'Connection failed after {attempt} attempts: {err}')
                        raise
                    logger.warning(f'Connection error (attempt {attempt}/{max_retries}), retrying in {delay}s: {err}')
                    sleep_func(delay)
                    delay *= retry_backoff

        return inner

    if func is None:
        return decorator
    return decorator(func)


def _pool_arguments(use_pool, pool_size, pool_recycle, pool_timeout) -> dict:
    if not use_pool:
        return {'poolclass': NullPool}
    return {
        'pool_size': pool_size,
        'pool_recycle': pool_recycle,
        'pool_timeout': pool_timeout,
        'max_overflow': 10,
        'pool_pre_ping': True,
        'pool_reset_on_return': 'rollback',
    }


def get_engine_for_options(options, use_pool=False, pool_size=5,
                           pool_recycle=300, pool_timeout=30,
                           engine_factory=sa.create_engine, **kwargs) -> Engine:
    """Return the engine serving ``options``, creating it once.

    Direct providers get a ``NullPool`` engine so every ``open()`` is a
    fresh physical connection that ``close()`` really closes. Pooled
    engines check connections out with a pre-ping and roll back on return.
    Extra keyword arguments go to ``engine_factory`` unchanged.
    """
    url = create_url_from_options(options)
    pool_args = _pool_arguments(use_pool, pool_size, pool_recycle, pool_timeout)
    key = (url.render_as_string(hide_password=False), use_pool, pool_size, pool_recycle, pool_timeout)

    with _engine_registry_lock:
        engine = _engine_registry.get(key)
        if engine is not None:
            return engine

        from dbproc.strategy import get_strategy
        strategy_args = get_strategy(options.drivername).get_engine_kwargs(options)
        engine = engine_factory(url, **{'echo': False, **strategy_args, **pool_args, **kwargs})
        _engine_registry[key] = engine
        logger.debug(f'New {"pooled" if use_pool else "unpooled"} engine for {url.render_as_string()}')
        return engine


def register_pool(name: str, source: Any, **kwargs) -> Engine:
    """Register a named connection pool.

    Args:
        name: Pool name used by pooled providers
        source: An existing Engine, or DatabaseOptions to build a pooled engine from
        **kwargs: Additional arguments passed to get_engine_for_options

    Returns
        The registered engine
    """
    if isinstance(source, Engine):
        engine = source
    else:
        engine = get_engine_for_options(source, use_pool=True,
                                        pool_size=source.pool_max_connections,
                                        pool_recycle=source.pool_max_idle_time,
                                        pool_timeout=source.pool_wait_timeout,
                                        **kwargs)
    with _engine_registry_lock:
        _pool_registry[name] = engine
    logger.debug(f'Registered connection pool {name!r}')
    return engine


def lookup_pool(name: str) -> Engine:
    """Resolve a named connection pool.

    Raises
        ConnectionFailure: If no pool is registered under the name
    """
    with _engine_registry_lock:
        engine = _pool_registry.get(name)
    if engine is None:
        from dbproc.exceptions import ConnectionFailure
        raise ConnectionFailure(f'No connection pool registered as {name!r}')
    return engine


def unregister_pool(name: str, dispose: bool = True) -> None:
    """Remove a named pool, disposing its engine by default."""
    with _engine_registry_lock:
        engine = _pool_registry.pop(name, None)
    if engine is not None and dispose:
        engine.dispose()
        logger.debug(f'Disposed connection pool {name!r}')


def dispose_all_engines():
    """Dispose all engines and named pools."""
    with _engine_registry_lock:
        for engine in {*_engine_registry.values(), *_pool_registry.values()}:
            engine.dispose()
        _engine_registry.clear()
        _pool_registry.clear()
        logger.debug('All database engines disposed')



atexit.register(dispose_all_engines)


def get_dialect_name(obj) -> str:
    """Name the dialect behind a wrapper, SQLAlchemy object or driver connection.

    Raises
        AttributeError: If nothing identifies the dialect
    """
    dialect = getattr(obj, 'dialect', None)
    if dialect is None:
        dialect = getattr(getattr(obj, 'engine', None), 'dialect', None)
    if dialect is not None:
        return (dialect if isinstance(dialect, str) else str(dialect.name)).lower()

    module = type(obj).__module__
    for prefix, name in (('psycopg', 'postgresql'), ('pyodbc', 'mssql')):
        if module.startswith(prefix):
            return name

    raise AttributeError(f'Cannot determine dialect for {type(obj)}')
