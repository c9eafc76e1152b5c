"""
Connection and auto-commit helpers.
"""
from dbproc.utils.auto_commit import disable_auto_commit, enable_auto_commit
from dbproc.utils.auto_commit import is_auto_commit, temporary_autocommit
from dbproc.utils.connection_utils import check_connection
from dbproc.utils.connection_utils import create_url_from_options
from dbproc.utils.connection_utils import dispose_all_engines, get_dialect_name
from dbproc.utils.connection_utils import get_engine_for_options, lookup_pool
from dbproc.utils.connection_utils import register_pool, unregister_pool

__all__ = [
    'check_connection',
    'create_url_from_options',
    'disable_auto_commit',
    'dispose_all_engines',
    'enable_auto_commit',
    'get_dialect_name',
    'get_engine_for_options',
    'is_auto_commit',
    'lookup_pool',
    'register_pool',
    'temporary_autocommit',
    'unregister_pool',
]
