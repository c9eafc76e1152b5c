"""
Base strategy interface for stored-procedure calls.

The strategy pattern encapsulates how each database renders a named-parameter
procedure call, names SQL types, reads output values and reports signature
errors, while the statement and manager layers stay dialect-neutral.
"""
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from dbproc.exceptions import BindError, ExecutionError

if TYPE_CHECKING:
    from dbproc.connection import ConnectionWrapper
    from dbproc.options import DatabaseOptions
    from dbproc.statement import BoundParameter

logger = logging.getLogger(__name__)

# dialect name -> strategy class, filled by the concrete strategy modules
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_$]*$')


def register_strategy(dialect: str):
    """Class decorator making a strategy available under ``dialect``."""
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for database-specific procedure call handling.
    """

    type_names: dict[int, str] = {}

    @contextmanager
    def _cursor(self, cn: 'ConnectionWrapper', sql: str, params: Any = None):
        """Context manager for cursor lifecycle.
        """
        cursor = cn.dbapi_connection.cursor()
        try:
            cursor.execute(sql, params or ())
            yield cursor
        finally:
            cursor.close()

    def _select_column_raw(self, cn: 'ConnectionWrapper', sql: str,
                           params: Any = None) -> list:
        """Execute SQL and return the first column as a list.
        """
        with self._cursor(cn, sql, params) as cursor:
            return [row[0] for row in cursor.fetchall()]

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g., 'postgresql', 'mssql')."""

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy URL from discrete connection options.
        """

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return extra SQLAlchemy create_engine kwargs for this dialect."""
        return {}

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return option field names required when no URL is given.
        """

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Reject direct-mode options missing a field the dialect needs."""
        missing = [name for name in cls.get_required_options() if not getattr(options, name)]
        if missing:
            raise ValueError(f'{cls.__name__} requires {", ".join(missing)}')

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode on a raw DBAPI connection."""
        raw_conn.autocommit = True

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode on a raw DBAPI connection."""
        raw_conn.autocommit = False

    def is_autocommit(self, raw_conn: Any) -> bool:
        """Report the auto-commit mode of a raw DBAPI connection."""
        return bool(getattr(raw_conn, 'autocommit', False))

    def type_name(self, sql_type: int) -> str:
        """Return the dialect type name for a SQL type code.

        Raises
            BindError: If the code is UNSPECIFIED or has no dialect type
        """
        try:
            return self.type_names[sql_type]
        except KeyError:
            raise BindError(f'SQL type {sql_type} is not supported by {self.dialect_name}') from None

    def check_parameter_name(self, name: str) -> str:
        """Return a parameter name usable in named-argument call syntax.

        Raises
            BindError: If the name is not a plain identifier
        """
        if not _IDENTIFIER.match(name):
            raise BindError(f'Invalid procedure parameter name: {name!r}')
        return name

    @abstractmethod
    def get_procedure_parameters(self, cn: 'ConnectionWrapper', procedure: str,
                                 bypass_cache: bool = False) -> list[str]:
        """Get the parameter names of a procedure from the catalog.

        Args:
            cn: Database connection object
            procedure: Procedure name, optionally schema qualified
            bypass_cache: If True, bypass cache and query database directly

        Returns
            list: Lower-cased parameter names, empty if the procedure is unknown
        """

    @abstractmethod
    def render_call(self, procedure: str, params: Mapping[str, 'BoundParameter'],
                    query: bool = False) -> tuple[str, Any]:
        """Render the SQL and driver arguments for a procedure call.

        Args:
            procedure: Procedure name
            params: Bound parameters keyed by name, in binding order
            query: True when the call produces a result set to read

        Returns
            tuple: SQL text and driver arguments
        """

    def fetch_rows(self, cursor: Any) -> list[dict[str, Any]]:
        """Read the result set of an executed call as dictionaries.
        """
        if cursor.description is None:
            return []
        columns = [desc[0] for desc in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def fetch_outputs(self, cursor: Any, params: Mapping[str, 'BoundParameter']) -> dict[str, Any]:
        """Read output parameter values after an executed call.

        Output columns are matched to parameter names case-insensitively.
        """
        names = [name for name, param in params.items() if param.is_output]
        if not names or cursor.description is None:
            return {}
        row = cursor.fetchone()
        if row is None:
            return {}
        values = {desc[0].lower(): value for desc, value in zip(cursor.description, row)}
        return {name: values.get(name.lower()) for name in names}

    def is_bind_error(self, exc: BaseException) -> bool:
        """Check if a driver error reports an unknown parameter or signature.
        """
        return False

    def translate_error(self, exc: BaseException) -> Exception:
        """Translate a driver error into the dbproc taxonomy.
        """
        if self.is_bind_error(exc):
            return BindError(str(exc))
        return ExecutionError(str(exc))

    @staticmethod
    def split_procedure_name(procedure: str) -> tuple[str | None, str]:
        """Split an optionally schema-qualified procedure name.

        >>> DatabaseStrategy.split_procedure_name('dbo.customer_save')
        ('dbo', 'customer_save')
        >>> DatabaseStrategy.split_procedure_name('customer_save')
        (None, 'customer_save')
        """
        schema, _, name = procedure.strip().rpartition('.')
        return (schema or None), name
