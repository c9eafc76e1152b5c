"""
SQL Server-specific strategy implementation.

Procedures run through ``EXEC`` with ``@name = ?`` arguments (pyodbc qmark
style). Output parameters are declared as batch variables, passed with
``OUTPUT`` and selected as the last result set of the batch.
"""
import logging
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from dbproc.cache import cacheable_strategy
from dbproc.strategy.base import DatabaseStrategy, register_strategy
from dbproc.types import SqlType

if TYPE_CHECKING:
    from dbproc.connection import ConnectionWrapper
    from dbproc.options import DatabaseOptions
    from dbproc.statement import BoundParameter

logger = logging.getLogger(__name__)

# 8145: "@x is not a parameter for procedure y"
# 201: "Procedure or function y expects parameter @x, which was not supplied"
# 2812: "Could not find stored procedure y"
_BIND_ERROR_REGEX = re.compile(r'\((8145|201|2812)\)|is not a parameter for', re.IGNORECASE)


@register_strategy('mssql')
class SQLServerStrategy(DatabaseStrategy):
    """SQL Server-specific operations"""

    type_names = {
        SqlType.BIT: 'BIT',
        SqlType.BOOLEAN: 'BIT',
        SqlType.SMALLINT: 'SMALLINT',
        SqlType.INTEGER: 'INT',
        SqlType.BIGINT: 'BIGINT',
        SqlType.REAL: 'REAL',
        SqlType.FLOAT: 'FLOAT',
        SqlType.DOUBLE: 'FLOAT',
        SqlType.DECIMAL: 'DECIMAL(38, 10)',
        SqlType.NUMERIC: 'NUMERIC(38, 10)',
        SqlType.CHAR: 'NCHAR(255)',
        SqlType.VARCHAR: 'NVARCHAR(4000)',
        SqlType.NVARCHAR: 'NVARCHAR(4000)',
        SqlType.VARBINARY: 'VARBINARY(MAX)',
        SqlType.DATE: 'DATE',
        SqlType.TIME: 'TIME',
        SqlType.TIMESTAMP: 'DATETIME2',
    }

    @property
    def dialect_name(self) -> str:
        return 'mssql'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy URL for SQL Server with the pyodbc driver."""
        query = {'driver': options.odbc_driver, 'TrustServerCertificate': 'yes'}
        if options.appname:
            query['APP'] = options.appname
        return sa.URL.create(
            drivername='mssql+pyodbc',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or None,
            database=options.database,
            query=query,
        )

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        kwargs = {}
        if options.timeout:
            kwargs['connect_args'] = {'timeout': options.timeout}
        return kwargs

    @classmethod
    def get_required_options(cls) -> list[str]:
        return ['hostname', 'username', 'password', 'database', 'odbc_driver']

    @cacheable_strategy('procedure_parameters', ttl=300, maxsize=100)
    def get_procedure_parameters(self, cn: 'ConnectionWrapper', procedure: str,
                                 bypass_cache: bool = False) -> list[str]:
        """Get parameter names of a procedure from sys.parameters

        The leading ``@`` is stripped from catalog names.
        """
        sql = """
select lower(substring(p.name, 2, 128))
from sys.parameters p
where p.object_id = object_id(?)
and p.name <> ''
order by p.parameter_id
"""
        return self._select_column_raw(cn, sql, (procedure,))

    def render_call(self, procedure: str, params: Mapping[str, 'BoundParameter'],
                    query: bool = False) -> tuple[str, list[Any]]:
        """Render an EXEC batch.

        >>> from dbproc.statement import BoundParameter
        >>> params = {'Name': BoundParameter('Name', 'Acme', True),
        ...           'Id': BoundParameter('Id', sql_type=SqlType.INTEGER)}
        >>> sql, args = SQLServerStrategy().render_call('dbo.customer_save', params)
        >>> print(sql)
        SET NOCOUNT ON;
        DECLARE @o1 INT;
        EXEC dbo.customer_save @Name = ?, @Id = @o1 OUTPUT;
        SELECT @o1 AS [Id];
        >>> args
        ['Acme']
        """
        declares = []
        declare_args = []
        parts = []
        exec_args = []
        selects = []
        for i, (name, param) in enumerate(params.items()):
            name = self.check_parameter_name(name)
            if param.is_output:
                var = f'@o{i}'
                declares.append(f'DECLARE {var} {self.type_name(param.sql_type)};')
                if param.has_value:
                    declares.append(f'SET {var} = ?;')
                    declare_args.append(param.value)
                parts.append(f'@{name} = {var} OUTPUT')
                selects.append(f'{var} AS [{name}]')
            else:
                parts.append(f'@{name} = ?')
                exec_args.append(param.value)

        lines = ['SET NOCOUNT ON;', *declares]
        lines.append(f'EXEC {procedure} {", ".join(parts)}'.rstrip() + ';')
        if selects and not query:
            lines.append(f'SELECT {", ".join(selects)};')
        return '\n'.join(lines), declare_args + exec_args

    def fetch_rows(self, cursor: Any) -> list[dict[str, Any]]:
        """Read the first result set that has columns."""
        while cursor.description is None:
            if not cursor.nextset():
                return []
        return super().fetch_rows(cursor)

    def fetch_outputs(self, cursor: Any, params: Mapping[str, 'BoundParameter']) -> dict[str, Any]:
        """Skip result sets produced by the procedure body and read the last one."""
        if not any(param.is_output for param in params.values()):
            return {}
        last = None
        while True:
            if cursor.description is not None:
                columns = [desc[0] for desc in cursor.description]
                rows = cursor.fetchall()
                if rows:
                    last = dict(zip(columns, rows[-1]))
            if not cursor.nextset():
                break
        if last is None:
            return {}
        values = {k.lower(): v for k, v in last.items()}
        return {name: values.get(name.lower()) for name, param in params.items() if param.is_output}

    def is_bind_error(self, exc: BaseException) -> bool:
        return bool(_BIND_ERROR_REGEX.search(str(exc)))
