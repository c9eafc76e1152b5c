"""
PostgreSQL-specific strategy implementation.

Procedures are invoked with named notation:
- writes use ``CALL proc(a => %(p0)s, out_b => NULL::integer)``; OUT and
  INOUT values come back as the single row produced by CALL
- reads use ``SELECT * FROM proc(a => %(p0)s)`` against set-returning
  functions; OUT-only arguments are not passed since they define the
  result columns
"""
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import psycopg
import sqlalchemy as sa

from dbproc.cache import cacheable_strategy
from dbproc.strategy.base import DatabaseStrategy, register_strategy
from dbproc.types import SqlType

if TYPE_CHECKING:
    from dbproc.connection import ConnectionWrapper
    from dbproc.options import DatabaseOptions
    from dbproc.statement import BoundParameter

logger = logging.getLogger(__name__)


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """PostgreSQL-specific operations.
    """

    type_names = {
        SqlType.BIT: 'boolean',
        SqlType.BOOLEAN: 'boolean',
        SqlType.SMALLINT: 'smallint',
        SqlType.INTEGER: 'integer',
        SqlType.BIGINT: 'bigint',
        SqlType.REAL: 'real',
        SqlType.FLOAT: 'double precision',
        SqlType.DOUBLE: 'double precision',
        SqlType.DECIMAL: 'numeric',
        SqlType.NUMERIC: 'numeric',
        SqlType.CHAR: 'char',
        SqlType.VARCHAR: 'varchar',
        SqlType.NVARCHAR: 'varchar',
        SqlType.VARBINARY: 'bytea',
        SqlType.DATE: 'date',
        SqlType.TIME: 'time',
        SqlType.TIMESTAMP: 'timestamp',
    }

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for PostgreSQL."""
        return 'postgresql'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy URL for PostgreSQL with the psycopg driver."""
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)
        if options.appname:
            query['application_name'] = options.appname
        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or None,
            database=options.database,
            query=query,
        )

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections."""
        return ['hostname', 'username', 'password', 'database', 'port']

    @cacheable_strategy('procedure_parameters', ttl=300, maxsize=100)
    def get_procedure_parameters(self, cn: 'ConnectionWrapper', procedure: str,
                                 bypass_cache: bool = False) -> list[str]:
        """Get parameter names of a procedure or function from information_schema.

        Overloads are merged; unnamed parameters are ignored.
        """
        schema, name = self.split_procedure_name(procedure)
        sql = """
select distinct lower(p.parameter_name)
from information_schema.routines r
join information_schema.parameters p
    on p.specific_schema = r.specific_schema and p.specific_name = r.specific_name
where lower(r.routine_name) = lower(%s)
and p.parameter_name is not null
"""
        args = [name]
        if schema:
            sql += 'and lower(r.routine_schema) = lower(%s)\n'
            args.append(schema)
        return self._select_column_raw(cn, sql, tuple(args))

    def render_call(self, procedure: str, params: Mapping[str, 'BoundParameter'],
                    query: bool = False) -> tuple[str, dict[str, Any]]:
        """Render a named-notation CALL (writes) or SELECT (reads).

        >>> from dbproc.statement import BoundParameter
        >>> params = {'Name': BoundParameter('Name', 'Acme', True),
        ...           'Id': BoundParameter('Id', sql_type=SqlType.INTEGER)}
        >>> PostgresStrategy().render_call('customer_save', params)
        ('CALL customer_save(Name => %(p0)s, Id => NULL::integer)', {'p0': 'Acme'})
        """
        parts = []
        args = {}
        for i, (name, param) in enumerate(params.items()):
            name = self.check_parameter_name(name)
            key = f'p{i}'
            if param.is_output:
                type_name = self.type_name(param.sql_type)
                if param.has_value:
                    parts.append(f'{name} => %({key})s::{type_name}')
                    args[key] = param.value
                elif not query:
                    parts.append(f'{name} => NULL::{type_name}')
            else:
                parts.append(f'{name} => %({key})s')
                args[key] = param.value

        arglist = ', '.join(parts)
        if query:
            return f'SELECT * FROM {procedure}({arglist})', args
        return f'CALL {procedure}({arglist})', args

    def is_bind_error(self, exc: BaseException) -> bool:
        """Unknown named arguments surface as an undefined function."""
        return isinstance(exc, psycopg.errors.UndefinedFunction)
