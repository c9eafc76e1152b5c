"""
Helper functions for managing auto-commit across database drivers.
"""
import logging
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)


def _get_raw_connection(connection: Any) -> Any:
    """Extract the raw DBAPI connection from a wrapper."""
    raw_conn = getattr(connection, 'dbapi_connection', connection)
    return getattr(raw_conn, 'driver_connection', None) or raw_conn


def _strategy_for(connection: Any) -> Any:
    from dbproc.strategy import get_db_strategy
    return getattr(connection, 'strategy', None) or get_db_strategy(connection)


def enable_auto_commit(connection: Any) -> None:
    """Enable auto-commit mode for a connection or connection wrapper."""
    _strategy_for(connection).enable_autocommit(_get_raw_connection(connection))
    logger.debug(f'Enabled auto-commit for connection {id(connection)}')


def disable_auto_commit(connection: Any) -> None:
    """Disable auto-commit mode for a connection or connection wrapper."""
    _strategy_for(connection).disable_autocommit(_get_raw_connection(connection))
    logger.debug(f'Disabled auto-commit for connection {id(connection)}')


def is_auto_commit(connection: Any) -> bool:
    """Report whether a connection is in auto-commit mode."""
    return _strategy_for(connection).is_autocommit(_get_raw_connection(connection))


@contextmanager
def temporary_autocommit(connection: Any):
    """Context manager to temporarily enable autocommit on a connection.

    Saves current autocommit state, enables autocommit, executes the block,
    then restores the original state.
    """
    original = connection.autocommit
    try:
        connection.autocommit = True
        yield connection
    finally:
        connection.autocommit = original
