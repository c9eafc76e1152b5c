"""
SQL type codes, parameter directions and value conversion.

This module provides:
- SqlType: integer SQL type codes (ODBC numbering)
- Direction: IN / OUT / INOUT parameter direction
- infer_sql_type: map a runtime value to its SqlType
- TypeConverter: convert NumPy/Pandas values to driver-ready Python values
"""
import datetime
import decimal
import logging
import math
from enum import Enum, IntEnum
from typing import Any

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

INT32_MIN = -2**31
INT32_MAX = 2**31 - 1


class SqlType(IntEnum):
    """SQL type codes.

    Values follow the ODBC ``SQL_*`` numbering (as exposed by pyodbc) so codes taken from
    existing procedure catalogs keep their meaning.
    """
    UNSPECIFIED = -1
    BIT = -7
    BIGINT = -5
    VARBINARY = -3
    NVARCHAR = -9
    CHAR = 1
    NUMERIC = 2
    DECIMAL = 3
    INTEGER = 4
    SMALLINT = 5
    FLOAT = 6
    REAL = 7
    DOUBLE = 8
    VARCHAR = 12
    BOOLEAN = 16
    DATE = 91
    TIME = 92
    TIMESTAMP = 93


class Direction(Enum):
    """Direction of a procedure parameter.
    """
    IN = 'in'
    OUT = 'out'
    INOUT = 'inout'

    @property
    def is_input(self) -> bool:
        """Whether a value is sent to the procedure."""
        return self in {Direction.IN, Direction.INOUT}

    @property
    def is_output(self) -> bool:
        """Whether a value is read back from the procedure."""
        return self in {Direction.OUT, Direction.INOUT}


def _sql_type_for_numpy(value: np.generic) -> SqlType:
    if isinstance(value, np.bool_):
        return SqlType.BIT
    if isinstance(value, np.integer):
        return SqlType.INTEGER if value.dtype.itemsize <= 4 else SqlType.BIGINT
    if isinstance(value, np.float32):
        return SqlType.REAL
    if isinstance(value, np.floating):
        return SqlType.FLOAT
    if isinstance(value, np.datetime64):
        return SqlType.TIMESTAMP
    return SqlType.UNSPECIFIED


def infer_sql_type(value: Any) -> SqlType:
    """Return the SQL type for a runtime value.

    Order matters: ``bool`` is checked before ``int`` and ``datetime`` before
    ``date`` because of subclassing.

    >>> infer_sql_type('Acme')
    <SqlType.VARCHAR: 12>
    >>> infer_sql_type(2**40)
    <SqlType.BIGINT: -5>
    >>> infer_sql_type(None)
    <SqlType.UNSPECIFIED: -1>
    """
    if value is None:
        return SqlType.UNSPECIFIED
    if isinstance(value, np.generic):
        return _sql_type_for_numpy(value)
    if isinstance(value, str):
        return SqlType.VARCHAR
    if isinstance(value, decimal.Decimal):
        return SqlType.DECIMAL
    if isinstance(value, bool):
        return SqlType.BIT
    if isinstance(value, int):
        if INT32_MIN <= value <= INT32_MAX:
            return SqlType.INTEGER
        return SqlType.BIGINT
    if isinstance(value, float):
        return SqlType.FLOAT
    if isinstance(value, bytes | bytearray | memoryview):
        return SqlType.VARBINARY
    if isinstance(value, datetime.datetime):
        return SqlType.TIMESTAMP
    if isinstance(value, datetime.date):
        return SqlType.DATE
    if isinstance(value, datetime.time):
        return SqlType.TIME
    return SqlType.UNSPECIFIED


def is_valid_sql_type(code: Any) -> bool:
    """Check if a code is one of the declared SqlType values (not UNSPECIFIED)."""
    if isinstance(code, bool) or not isinstance(code, int):
        return False
    return code in SqlType._value2member_map_ and code != SqlType.UNSPECIFIED


class TypeConverter:
    """Conversion of parameter values for database drivers.

    Handles NumPy scalars, Pandas timestamps and the NaN/NaT null markers.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a driver-compatible format."""
        if value is None:
            return None

        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None

        if value is pd.NaT:
            return None

        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()

        if isinstance(value, np.datetime64):
            if np.isnat(value):
                return None
            return pd.Timestamp(value).to_pydatetime()

        if isinstance(value, np.floating) and np.isnan(value):
            return None

        if isinstance(value, np.generic):
            return value.item()

        if isinstance(value, bytearray | memoryview):
            return bytes(value)

        return value
