"""
Callable statements: prepared invocations of named stored procedures.

Implements the bind-by-name surface used by the binder (``set_object``,
``register_out_parameter``) on top of a DB-API cursor, delegating SQL
rendering, output retrieval and error classification to the dialect strategy.
"""
import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import TYPE_CHECKING, Any

from dbproc.exceptions import BindError
from dbproc.types import TypeConverter, is_valid_sql_type

if TYPE_CHECKING:
    from dbproc.connection import ConnectionWrapper

logger = logging.getLogger(__name__)


def dumpsql(func):
    """Decorator for logging procedure calls, timing and driver errors."""
    @wraps(func)
    def wrapper(self, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'Calling {self.procedure} with {list(self.parameters)}')
        try:
            return func(self, *args, **kwargs)
        except Exception:
            logger.error(f'Error calling {self.procedure}\nSQL:\n{self.sql}')
            raise
        finally:
            elapsed = time.time() - start
            self.connwrapper.addcall(elapsed)
            logger.debug(f'Call time: {elapsed:.4f}s')
    return wrapper


@dataclass
class BoundParameter:
    """State of one named parameter on a statement.

    A parameter is an output when it has a registered SQL type; it carries an
    input value when ``has_value`` is set (IN and INOUT).
    """
    name: str
    value: Any = None
    has_value: bool = False
    sql_type: int | None = None

    @property
    def is_output(self) -> bool:
        return self.sql_type is not None


class CallableStatement:
    """A prepared call to a named procedure with parameters bound by name.

    When the catalog knows the procedure, parameter names are checked against
    its signature as they are bound. Binding a name twice overwrites the
    earlier binding.
    """

    def __init__(self, connection_wrapper: 'ConnectionWrapper', procedure: str,
                 signature: list[str] | None = None) -> None:
        self.connwrapper = connection_wrapper
        self.strategy = connection_wrapper.strategy
        self.procedure = procedure
        self.signature = {name.lower() for name in signature or ()}
        self.parameters: dict[str, BoundParameter] = {}
        self.outputs: dict[str, Any] = {}
        self.sql: str | None = None
        self.rowcount = -1

    def _parameter(self, name: str) -> BoundParameter:
        if self.signature and name.lower() not in self.signature:
            raise BindError(f'Procedure {self.procedure} has no parameter named {name!r}')
        return self.parameters.setdefault(name, BoundParameter(name))

    def set_object(self, name: str, value: Any) -> None:
        """Bind an input value by name."""
        param = self._parameter(name)
        param.value = TypeConverter.convert_value(value)
        param.has_value = True

    def register_out_parameter(self, name: str, sql_type: int) -> None:
        """Register an output parameter by name and SQL type.

        Raises
            BindError: If the type is UNSPECIFIED or unsupported by the dialect
        """
        if not is_valid_sql_type(sql_type):
            raise BindError(f'Output parameter {name!r} of {self.procedure} needs an explicit SQL type')
        self.strategy.type_name(sql_type)
        self._parameter(name).sql_type = int(sql_type)

    def get_object(self, name: str) -> Any:
        """Return the value of an output parameter after execution."""
        try:
            return self.outputs[name]
        except KeyError:
            raise BindError(f'{name!r} is not a registered output parameter of {self.procedure}') from None

    def _execute(self, query: bool) -> Any:
        self.sql, args = self.strategy.render_call(self.procedure, self.parameters, query=query)
        cursor = self.connwrapper.dbapi_connection.cursor()
        try:
            try:
                if args:
                    cursor.execute(self.sql, args)
                else:
                    cursor.execute(self.sql)
                self.rowcount = cursor.rowcount
                if query:
                    return self.strategy.fetch_rows(cursor)
                self.outputs = self.strategy.fetch_outputs(cursor, self.parameters)
                return self.rowcount
            except self.connwrapper.driver_errors as exc:
                raise self.strategy.translate_error(exc) from exc
        finally:
            cursor.close()

    @dumpsql
    def execute_update(self) -> int:
        """Execute the call for its effects; output values become available.

        Returns the driver row count (-1 when the driver does not report one).

        Raises
            BindError: If the driver reports an unknown parameter
            ExecutionError: If the database rejects the call
        """
        return self._execute(query=False)

    @dumpsql
    def execute_query(self) -> list[dict[str, Any]]:
        """Execute the call and return its result rows in cursor order.

        Raises
            BindError: If the driver reports an unknown parameter
            ExecutionError: If the database rejects the call
        """
        return self._execute(query=True)
