"""
Parameter extraction from entities and filters.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

from dbproc.exceptions import AccessError
from dbproc.metadata import describe
from dbproc.types import Direction, SqlType, infer_sql_type, is_valid_sql_type

__all__ = ['Parameter', 'extract']

logger = logging.getLogger(__name__)


@dataclass
class Parameter:
    """One named procedure parameter.

    ``attribute`` records the source attribute so output values can be
    written back; it does not take part in equality.
    """
    name: str
    value: Any = None
    sql_type: int = SqlType.UNSPECIFIED
    direction: Direction = Direction.IN
    attribute: str | None = field(default=None, compare=False, repr=False)


def extract(instance: Any) -> list[Parameter]:
    """Build the ordered parameter list of an entity or filter.

    An explicit SQL type wins when it is a known code; otherwise the type is
    inferred from the current attribute value.

    Raises
        AccessError: If a declared attribute cannot be read
        ArgumentError: If the type's binding declarations are inconsistent
    """
    params = []
    for binding in describe(instance):
        try:
            value = getattr(instance, binding.attribute)
        except AttributeError as exc:
            raise AccessError(f'Cannot read {type(instance).__name__}.{binding.attribute}: {exc}') from exc

        if is_valid_sql_type(binding.sql_type):
            sql_type = SqlType(binding.sql_type)
        else:
            sql_type = infer_sql_type(value)

        params.append(Parameter(binding.parameter_name, value, sql_type,
                                binding.direction, binding.attribute))

    logger.debug(f'Extracted {len(params)} parameters from {type(instance).__name__}')
    return params
