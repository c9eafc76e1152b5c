"""
Dialect strategy lookup.

Strategies are stateless, so one instance per dialect is shared.
"""
from functools import lru_cache

from dbproc.strategy.base import _STRATEGY_REGISTRY
from dbproc.strategy.base import DatabaseStrategy as DatabaseStrategy
from dbproc.strategy.base import register_strategy as register_strategy
from dbproc.strategy.postgres import PostgresStrategy as PostgresStrategy
from dbproc.strategy.sqlserver import SQLServerStrategy as SQLServerStrategy
from dbproc.utils.connection_utils import get_dialect_name


def get_strategy_class(dialect: str) -> type[DatabaseStrategy]:
    """Return the registered strategy class for a dialect.

    Raises
        ValueError: If no strategy is registered under the name
    """
    try:
        return _STRATEGY_REGISTRY[dialect]
    except KeyError:
        raise ValueError(f'Unsupported dialect: {dialect}. Available: {get_available_dialects()}') from None


@lru_cache(maxsize=8)
def get_strategy(dialect: str) -> DatabaseStrategy:
    """Return the shared strategy instance for a dialect name."""
    return get_strategy_class(dialect)()


def get_db_strategy(cn) -> DatabaseStrategy:
    """Return the strategy for a connection, engine or driver connection."""
    return get_strategy(get_dialect_name(cn))


def get_available_dialects() -> list[str]:
    return sorted(_STRATEGY_REGISTRY)


def is_supported_dialect(dialect: str) -> bool:
    return dialect in _STRATEGY_REGISTRY
