"""
Stored-procedure data access for PostgreSQL and SQL Server.

Entity and filter types declare which attributes bind to procedure
parameters; an EntityManager saves, deletes, gets and lists them through
named procedures and reports every outcome as a Response.

    import dbproc

    provider = dbproc.provider('postgresql', config=config)
    response = CustomerManager(provider).get_list(CustomerFilter(name='A%'))
    if response:
        frame = response.data.to_frame()
"""
__version__ = '0.1.0'

from dbproc.binder import bind
from dbproc.cache import Cache
from dbproc.connection import ConnectionProvider, ConnectionWrapper, connect
from dbproc.connection import provider
from dbproc.entity import Entity, EntityList, Filter, ResultMapper
from dbproc.exceptions import AccessError, ArgumentError, BindError
from dbproc.exceptions import ConnectionFailure, DatabaseError, ExecutionError
from dbproc.exceptions import MappingError
from dbproc.manager import EntityManager
from dbproc.metadata import AttributeMetadata, bound, describe
from dbproc.options import DatabaseOptions
from dbproc.parameters import Parameter, extract
from dbproc.response import Response
from dbproc.statement import CallableStatement
from dbproc.transaction import Transaction as transaction
from dbproc.types import Direction, SqlType
from dbproc.utils.connection_utils import register_pool, unregister_pool


def clear_cache(procedure: str | None = None) -> None:
    """Forget cached procedure signatures, for one procedure or all.
    """
    if procedure:
        Cache.get_instance().clear_for_procedure(procedure)
    else:
        Cache.get_instance().clear_all()


__all__ = [
    'AccessError',
    'ArgumentError',
    'AttributeMetadata',
    'BindError',
    'CallableStatement',
    'ConnectionFailure',
    'ConnectionProvider',
    'ConnectionWrapper',
    'DatabaseError',
    'DatabaseOptions',
    'Direction',
    'Entity',
    'EntityList',
    'EntityManager',
    'ExecutionError',
    'Filter',
    'MappingError',
    'Parameter',
    'Response',
    'ResultMapper',
    'SqlType',
    'bind',
    'bound',
    'clear_cache',
    'connect',
    'describe',
    'extract',
    'provider',
    'register_pool',
    'transaction',
    'unregister_pool',
]
