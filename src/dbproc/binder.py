"""
Attach extracted parameters to a callable statement.
"""
import logging
from collections.abc import Iterable
from typing import Any

from dbproc.parameters import Parameter

logger = logging.getLogger(__name__)


def bind(statement: Any, parameters: Iterable[Parameter] | None) -> Any:
    """Bind parameters to a statement by name, in list order.

    Input values are set for IN/INOUT parameters and output registrations
    are made for OUT/INOUT parameters. A name bound twice keeps the last
    value; duplicates are not detected.

    Raises
        BindError: Propagated from the statement for unknown names or
            unsupported output types
    """
    count = 0
    for param in parameters or ():
        if param.direction.is_input:
            statement.set_object(param.name, param.value)
        if param.direction.is_output:
            statement.register_out_parameter(param.name, param.sql_type)
        count += 1
    logger.debug(f'Bound {count} parameters')
    return statement
