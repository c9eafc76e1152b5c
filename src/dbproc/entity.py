"""
Base types for consumer entities, filters and entity lists.

Consumers subclass `Entity` and `Filter` and declare bindings (see
`dbproc.metadata`). The default result mapper, `Entity.from_row`, fills the
declared attributes from the columns named by their parameter names.
"""
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Generic, Protocol, Self, TypeVar

import pandas as pd

from dbproc.exceptions import MappingError
from dbproc.metadata import describe

__all__ = [
    'Entity',
    'EntityList',
    'Filter',
    'ResultMapper',
]

logger = logging.getLogger(__name__)

E = TypeVar('E', bound='Entity')
E_co = TypeVar('E_co', covariant=True)


class ResultMapper(Protocol[E_co]):
    """Turns one result row into one populated entity.

    May raise MappingError when the row does not fit the entity.
    """

    def __call__(self, row: Mapping[str, Any]) -> E_co: ...


def _column(row: Mapping[str, Any], name: str) -> Any:
    if name in row:
        return row[name]
    lowered = name.lower()
    for key, value in row.items():
        if str(key).lower() == lowered:
            return value
    raise MappingError(f'Column {name!r} not found in result row (columns: {list(row)})')


class Entity:
    """Base class for one row-shaped domain object.
    """

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Self:
        """Build an instance from a result row.

        Column names match parameter names exactly, then case-insensitively.

        Raises
            MappingError: If the type cannot be built without arguments or a
                bound column is missing
        """
        try:
            instance = cls()
        except TypeError as exc:
            raise MappingError(f'Cannot create {cls.__name__} without arguments: {exc}') from exc
        for binding in describe(cls):
            setattr(instance, binding.attribute, _column(row, binding.parameter_name))
        return instance


class Filter:
    """Base class for predicate objects bound like entities but never stored.
    """


class EntityList(list, Generic[E]):
    """Ordered, duplicate-permitting list of entities.
    """

    def __init__(self, items: Iterable[E] = ()) -> None:
        super().__init__(items)

    def to_frame(self, entity_type: type[E] | None = None) -> pd.DataFrame:
        """Return the bound attributes as a DataFrame, one row per entity.

        Columns follow binding order; `entity_type` preserves them for an
        empty list.
        """
        if entity_type is None and self:
            entity_type = type(self[0])
        columns = [b.attribute for b in describe(entity_type)] if entity_type else []
        if not self:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame.from_records(
            [{col: getattr(item, col) for col in columns} for item in self],
            columns=columns)
