"""
Exception taxonomy for stored-procedure access.
"""
import re

import psycopg
import sqlalchemy as sa

RETRYABLE_PATTERNS = [
    # SSL/TLS errors
    r'ssl',
    r'tls',
    # Connection drops
    r'connection.*(closed|reset|refused|lost|terminated|broken)',
    r'server closed',
    r'eof detected',
    r'broken pipe',
    # Timeouts
    r'timeout',
    r'timed out',
    # Network issues
    r'could not connect',
    r'no route to host',
    r'network.*(unreachable|error)',
    r'host.*(unreachable|down)',
    # Database unavailable
    r'database.*unavailable',
    r'too many connections',
    r'connection pool',
]

_RETRYABLE_REGEX = re.compile('|'.join(RETRYABLE_PATTERNS), re.IGNORECASE)


def is_retryable_error(exc: BaseException) -> bool:
    """Check if an exception represents a transient error worth retrying.

    Returns True for SSL drops, resets, timeouts, unreachable hosts and
    exhausted server connection slots. Syntax errors, constraint violations
    and permission errors are not retryable.

    >>> is_retryable_error(Exception('server closed the connection unexpectedly'))
    True
    >>> is_retryable_error(Exception('duplicate key value violates unique constraint'))
    False
    """
    return bool(_RETRYABLE_REGEX.search(str(exc).lower()))


class DatabaseError(Exception):
    """Base class for all dbproc errors.
    """


class ConnectionFailure(DatabaseError):
    """A usable connection could not be obtained.

    Raised before any statement is prepared.
    """


class BindError(DatabaseError):
    """Parameter name or SQL type does not match the procedure signature.
    """


class ExecutionError(DatabaseError):
    """The database rejected a statement or a commit.

    The message is the driver's message.
    """


class MappingError(DatabaseError):
    """A result row could not be turned into an entity.
    """


class AccessError(DatabaseError):
    """A declared attribute could not be read from an instance.
    """


class ArgumentError(DatabaseError):
    """Binding metadata declared on a type is structurally inconsistent.
    """


DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sa.exc.OperationalError,
    sa.exc.InterfaceError,
    )
