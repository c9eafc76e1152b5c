"""
Binding metadata declared on entity and filter types.

A type declares which of its attributes are bound to procedure parameters
in one of two ways:

1. A ``__bindings__`` tuple of AttributeMetadata on the class:

    class Customer(Entity):
        __bindings__ = (
            AttributeMetadata('id', 'Id', Direction.OUT, SqlType.INTEGER),
            AttributeMetadata('name', 'Name'),
        )

2. Dataclass fields created with ``bound()``:

    @dataclass
    class Customer(Entity):
        id: int = bound(None, name='Id', direction=Direction.OUT, sql_type=SqlType.INTEGER)
        name: str = bound(None, name='Name')
        note: str = None  # not bound

Declaration order is binding order. Attributes whose identifier starts with
an underscore are never bound.
"""
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any

from dbproc.exceptions import ArgumentError
from dbproc.types import Direction, SqlType

__all__ = [
    'AttributeMetadata',
    'bound',
    'describe',
]

logger = logging.getLogger(__name__)

BINDING_KEY = 'dbproc.binding'


@dataclass(frozen=True)
class AttributeMetadata:
    """Static description of one bound attribute.

    Args:
        attribute: Attribute identifier on the owning type
        name: Logical parameter name; blank means use ``attribute``
        direction: Parameter direction, IN by default
        sql_type: Explicit SQL type code; UNSPECIFIED means infer from value
    """
    attribute: str
    name: str = ''
    direction: Direction = Direction.IN
    sql_type: int = SqlType.UNSPECIFIED

    @property
    def parameter_name(self) -> str:
        """Resolved parameter name.

        >>> AttributeMetadata('name', '   ').parameter_name
        'name'
        >>> AttributeMetadata('name', ' Name ').parameter_name
        'Name'
        """
        name = (self.name or '').strip()
        return name or self.attribute

    @property
    def is_public(self) -> bool:
        return not self.attribute.startswith('_')


def bound(default: Any = None, *, name: str = '', direction: Direction = Direction.IN,
          sql_type: int = SqlType.UNSPECIFIED, **kwargs: Any) -> Any:
    """Declare a bound dataclass field.

    The attribute identifier is filled in from the field name when the owning
    type is described.
    """
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata[BINDING_KEY] = AttributeMetadata('', name, direction, sql_type)
    return dataclasses.field(default=default, metadata=metadata, **kwargs)


def _validate(entry: Any, owner: type) -> AttributeMetadata:
    if not isinstance(entry, AttributeMetadata):
        raise ArgumentError(f'{owner.__name__}: binding {entry!r} is not an AttributeMetadata')
    if not isinstance(entry.attribute, str) or not entry.attribute:
        raise ArgumentError(f'{owner.__name__}: binding has no attribute identifier')
    if not isinstance(entry.name, str):
        raise ArgumentError(f'{owner.__name__}.{entry.attribute}: name must be a string')
    if not isinstance(entry.direction, Direction):
        raise ArgumentError(f'{owner.__name__}.{entry.attribute}: invalid direction {entry.direction!r}')
    if isinstance(entry.sql_type, bool) or not isinstance(entry.sql_type, int):
        raise ArgumentError(f'{owner.__name__}.{entry.attribute}: invalid sql type {entry.sql_type!r}')
    return entry


def _dataclass_bindings(owner: type) -> tuple[AttributeMetadata, ...]:
    result = []
    for field in dataclasses.fields(owner):
        declared = field.metadata.get(BINDING_KEY)
        if declared is None:
            continue
        if not isinstance(declared, AttributeMetadata):
            raise ArgumentError(f'{owner.__name__}.{field.name}: binding {declared!r} is not an AttributeMetadata')
        result.append(dataclasses.replace(declared, attribute=field.name))
    return tuple(result)


def describe(obj: Any) -> tuple[AttributeMetadata, ...]:
    """Return the ordered binding metadata of a type or instance.

    Types without declarations yield an empty tuple. Non-public attributes
    are dropped.

    Raises
        ArgumentError: If the declarations are inconsistent
    """
    owner = obj if isinstance(obj, type) else type(obj)

    declared = getattr(owner, '__bindings__', None)
    if declared is not None:
        if isinstance(declared, str) or not hasattr(declared, '__iter__'):
            raise ArgumentError(f'{owner.__name__}.__bindings__ must be a sequence')
        entries = tuple(declared)
    elif dataclasses.is_dataclass(owner):
        entries = _dataclass_bindings(owner)
    else:
        return ()

    bindings = []
    for entry in entries:
        entry = _validate(entry, owner)
        if not entry.is_public:
            logger.debug(f'Skipping non-public attribute {owner.__name__}.{entry.attribute}')
            continue
        bindings.append(entry)
    return tuple(bindings)
