from dataclasses import dataclass

from dbproc.strategy import get_available_dialects, get_strategy_class
from dbproc.strategy import is_supported_dialect

from libb import ConfigOptions, scriptname

__all__ = ['DatabaseOptions']


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options

    supported driver names: `postgresql`, `mssql`

    Connection modes:
    - direct (default): open connections from `url` (a SQLAlchemy connection
      string, credentials may be given separately) or from the discrete
      hostname/port/database/username/password fields
    - pooled (`use_pool=True`): check connections out of the pool registered
      under `pool_name` (see `dbproc.register_pool`)

    Connection pooling options (used when registering a pool from options):
    - pool_max_connections: Maximum connections in pool (default: 5)
    - pool_max_idle_time: Maximum seconds a connection can be idle (default: 300)
    - pool_wait_timeout: Maximum seconds to wait for a connection (default: 30)
    """
    drivername: str = 'postgresql'
    url: str = None
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    odbc_driver: str = 'ODBC Driver 18 for SQL Server'
    check_connection: bool = True
    # Connection pooling parameters
    use_pool: bool = False
    pool_name: str = None
    pool_max_connections: int = 5
    pool_max_idle_time: int = 300
    pool_wait_timeout: int = 30

    def __post_init__(self):
        if not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise ValueError(f'drivername must be one of: {available}')
        self.appname = self.appname or scriptname() or 'python_console'
        if self.use_pool and not self.pool_name:
            raise ValueError('pool_name is required when use_pool is set')
        if self.use_pool or self.url:
            return
        get_strategy_class(self.drivername).validate_options(self)
