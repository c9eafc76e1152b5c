"""
Connections for stored-procedure calls.

A `ConnectionProvider` hands out non-autocommit `ConnectionWrapper` objects,
either checked out of a named pool or opened directly from a connection
string plus credentials. SQLAlchemy owns engines and pooling; procedures
run on the DBAPI connection underneath.
"""
import logging
from dataclasses import fields
from typing import Any, Self

import sqlalchemy as sa

from dbproc.exceptions import ConnectionFailure, DbConnectionError
from dbproc.exceptions import ExecutionError
from dbproc.options import DatabaseOptions
from dbproc.statement import CallableStatement
from dbproc.strategy import get_db_strategy
from dbproc.utils.auto_commit import disable_auto_commit, enable_auto_commit
from dbproc.utils.auto_commit import is_auto_commit
from dbproc.utils.connection_utils import check_connection
from dbproc.utils.connection_utils import get_engine_for_options, lookup_pool

from libb import load_options

logger = logging.getLogger(__name__)


class ConnectionWrapper:
    """One open database connection, as used by a single manager operation.

    Counts procedure calls and their elapsed time, prepares callable
    statements, and commits or rolls back with driver errors reported as
    `ExecutionError`. Unknown attributes fall through to the SQLAlchemy
    connection.
    """

    def __init__(self, sa_connection: sa.engine.Connection,
                 options: DatabaseOptions | None = None) -> None:
        self.sa_connection = sa_connection
        self.engine = sa_connection.engine
        self.options = options
        self.dbapi_connection = sa_connection.connection
        self.strategy = get_db_strategy(sa_connection)
        self.calls = 0
        self.time = 0
        self.in_transaction = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __getattr__(self, name: str) -> Any:
        return getattr(self.sa_connection, name)

    @property
    def driver_errors(self) -> type[Exception]:
        """Base error class of the loaded DBAPI driver."""
        return self.sa_connection.dialect.loaded_dbapi.Error

    @property
    def autocommit(self) -> bool:
        return is_auto_commit(self)

    @autocommit.setter
    def autocommit(self, value: bool) -> None:
        if value and self.in_transaction:
            raise RuntimeError('Cannot enable autocommit inside a transaction')
        if value:
            enable_auto_commit(self)
        else:
            disable_auto_commit(self)

    @property
    def is_pooled(self) -> bool:
        """False for direct connections, whose engine uses ``NullPool``."""
        return not isinstance(self.engine.pool, sa.pool.NullPool)

    def addcall(self, elapsed: float) -> None:
        self.calls += 1
        self.time += elapsed

    def prepare_call(self, procedure: str) -> CallableStatement:
        """Prepare a callable statement for a named procedure.

        Raises
            ExecutionError: If the procedure catalog cannot be read
        """
        try:
            signature = self.strategy.get_procedure_parameters(self, procedure)
        except self.driver_errors as exc:
            raise ExecutionError(str(exc)) from exc
        if not signature:
            logger.debug(f'No catalog signature for {procedure}; names checked at execution')
        return CallableStatement(self, procedure, signature)

    def commit(self) -> None:
        """Commit the current transaction.

        Raises
            ExecutionError: If the database refuses the commit
        """
        try:
            self.dbapi_connection.commit()
        except self.driver_errors as exc:
            raise ExecutionError(str(exc)) from exc

    def rollback(self) -> None:
        """Roll back the current transaction.

        Raises
            ExecutionError: If the rollback itself fails
        """
        try:
            self.dbapi_connection.rollback()
        except self.driver_errors as exc:
            raise ExecutionError(str(exc)) from exc

    def close(self) -> None:
        """Release the connection to its pool (or close it when unpooled).

        Pending work is not committed.
        """
        if not self.sa_connection.closed:
            self.sa_connection.close()
            logger.debug(f'Connection closed: {self.calls} calls in {self.time:.2f}s (avg: {self.time/max(1,self.calls):.3f}s per call)')


class ConnectionProvider:
    """Opens connections for one manager configuration.

    Pooled mode resolves `options.pool_name` in the pool registry; direct mode
    builds an unpooled engine from the connection options. Every connection
    returned by `open()` has autocommit disabled.
    """

    def __init__(self, options: DatabaseOptions) -> None:
        self.options = options

    def __repr__(self) -> str:
        mode = f'pool={self.options.pool_name!r}' if self.options.use_pool else 'direct'
        return f'{type(self).__name__}({self.options.drivername}, {mode})'

    def _engine(self) -> sa.engine.Engine:
        if self.options.use_pool:
            return lookup_pool(self.options.pool_name)
        return get_engine_for_options(self.options, use_pool=False)

    def _connect(self) -> sa.engine.Connection:
        return self._engine().connect()

    def open(self) -> ConnectionWrapper:
        """Open a connection with autocommit disabled.

        Raises
            ConnectionFailure: If the pool cannot be resolved or the
                connection cannot be opened
        """
        connect_func = check_connection(self._connect) if self.options.check_connection else self._connect
        try:
            sa_connection = connect_func()
        except ConnectionFailure:
            raise
        except (sa.exc.SQLAlchemyError, *DbConnectionError) as exc:
            logger.error(f'Could not open connection via {self!r}: {exc}')
            raise ConnectionFailure(str(exc)) from exc

        cn = ConnectionWrapper(sa_connection, self.options)
        try:
            cn.autocommit = False
        except Exception as exc:
            cn.close()
            raise ConnectionFailure(f'Could not disable autocommit: {exc}') from exc

        logger.debug(f'Opened connection {id(cn)} via {self!r}')
        return cn


def _resolve_options(options: DatabaseOptions | dict[str, Any] | str,
                     config: Any | None = None, **kw: Any) -> DatabaseOptions:
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
        return options
    options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
    return options_func(options, config, **kw)


@load_options(cls=DatabaseOptions)
def provider(options: DatabaseOptions | dict[str, Any] | str,
             config: Any | None = None, **kw: Any) -> ConnectionProvider:
    """Build the ConnectionProvider a manager opens its connections from.

    ``options`` is a DatabaseOptions, a dict, or the name of a section of
    ``config`` (e.g. ``provider('postgresql', config=config)``); keyword
    arguments override individual fields.
    """
    return ConnectionProvider(_resolve_options(options, config, **kw))


@load_options(cls=DatabaseOptions)
def connect(options: DatabaseOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> ConnectionWrapper:
    """Open a single non-autocommit connection

    Accepts options in the same forms as `provider()`.

    Returns
        ConnectionWrapper, to be closed by the caller
    """
    return ConnectionProvider(_resolve_options(options, config, **kw)).open()
