"""
Generic CRUD over stored procedures.

A concrete manager names its entity type and four procedures:

    class CustomerManager(EntityManager[Customer]):
        entity_type = Customer
        save_procedure = 'customer_save'
        delete_procedure = 'customer_delete'
        get_procedure = 'customer_get'
        list_procedure = 'customer_list'

    manager = CustomerManager(dbproc.provider('postgresql', config=config))
    response = manager.save(Customer(name='Acme'))

Every operation opens one connection, closes it before returning, and
reports through a `Response`. Writes run in one transaction per call: a batch
either commits as a whole or is rolled back. Database rejections become
failure responses; bind and connection errors propagate.
"""
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Generic, TypeVar

from dbproc.binder import bind
from dbproc.connection import ConnectionProvider
from dbproc.entity import Entity, EntityList, Filter, ResultMapper
from dbproc.exceptions import ExecutionError, MappingError
from dbproc.metadata import describe
from dbproc.parameters import extract
from dbproc.response import Response
from dbproc.transaction import Transaction
from dbproc.utils.auto_commit import temporary_autocommit

from libb import attrdict

__all__ = ['EntityManager']

logger = logging.getLogger(__name__)

E = TypeVar('E', bound=Entity)


class EntityManager(Generic[E]):
    """Save, delete, get and list entities through stored procedures.

    Args:
        connection_provider: Source of connections (see ConnectionProvider)
        mapper: Row-to-entity mapper; defaults to `entity_type.from_row`
        list_factory: Zero-argument callable producing an empty list container
        **procedures: Per-instance overrides of the `*_procedure` names
    """

    entity_type: type[E] = Entity
    save_procedure: str | None = None
    delete_procedure: str | None = None
    get_procedure: str | None = None
    list_procedure: str | None = None
    list_factory: Callable[[], Any] = EntityList

    def __init__(self, connection_provider: ConnectionProvider,
                 mapper: ResultMapper[E] | None = None,
                 list_factory: Callable[[], Any] | None = None,
                 **procedures: str) -> None:
        self.connection_provider = connection_provider
        self.mapper = mapper or self.entity_type.from_row
        self.list_factory = list_factory or type(self).list_factory
        for kind in ('save', 'delete', 'get', 'list'):
            name = procedures.pop(f'{kind}_procedure', None)
            if name is not None:
                setattr(self, f'{kind}_procedure', name)
        if procedures:
            raise TypeError(f'Unexpected arguments: {sorted(procedures)}')

    def _procedure(self, kind: str) -> str:
        name = (getattr(self, f'{kind}_procedure') or '').strip()
        if not name:
            raise ValueError(f'{type(self).__name__} has no {kind} procedure')
        return name

    def _batch(self, target: E | Iterable[E]) -> Any:
        """Entities to write: any iterable without bindings of its own is a batch."""
        if isinstance(target, Entity) or describe(target) or not isinstance(target, Iterable):
            batch = self.list_factory()
            batch.append(target)
            return batch
        return list(target)

    def _call_update(self, cn: Any, procedure: str, instance: Any) -> None:
        """Bind one instance, execute, and copy output values back onto it."""
        params = extract(instance)
        statement = bind(cn.prepare_call(procedure), params)
        statement.execute_update()
        for param in params:
            if param.direction.is_output and param.attribute and param.name in statement.outputs:
                setattr(instance, param.attribute, statement.outputs[param.name])

    def _call_query(self, cn: Any, procedure: str, flt: Any) -> list[Mapping[str, Any]]:
        statement = bind(cn.prepare_call(procedure), extract(flt))
        return statement.execute_query()

    def _map_row(self, row: Mapping[str, Any]) -> E:
        try:
            return self.mapper(attrdict(row))
        except MappingError:
            raise
        except (KeyError, AttributeError, TypeError, ValueError) as exc:
            raise MappingError(f'Cannot map row to {self.entity_type.__name__}: {exc}') from exc

    def _write(self, procedure: str, instances: Iterable[Any]) -> Response:
        count = 0
        with self.connection_provider.open() as cn:
            try:
                with Transaction(cn):
                    for instance in instances:
                        self._call_update(cn, procedure, instance)
                        count += 1
            except ExecutionError as exc:
                logger.warning(f'{procedure} failed after {count} rows, batch rolled back: {exc}')
                return Response.fail(str(exc))
        logger.debug(f'{procedure} committed {count} rows')
        return Response.ok()

    def save(self, target: E | Iterable[E]) -> Response:
        """Save one entity or a batch of entities in one transaction.

        OUT and INOUT values returned by the procedure are written back to
        the entities.
        """
        return self._write(self._procedure('save'), self._batch(target))

    def delete(self, target: E | Iterable[E] | Filter) -> Response:
        """Delete one entity, a batch of entities, or the rows matching a filter.
        """
        if isinstance(target, Filter):
            return self.execute_update(target, self._procedure('delete'))
        return self._write(self._procedure('delete'), self._batch(target))

    def get(self, flt: Any) -> Response[E]:
        """Fetch the single entity selected by a filter.

        A missing row is reported as a failure.
        """
        procedure = self._procedure('get')
        with self.connection_provider.open() as cn, temporary_autocommit(cn):
            try:
                rows = self._call_query(cn, procedure, flt)
                if not rows:
                    raise MappingError(f'{procedure} returned no rows')
                if len(rows) > 1:
                    logger.debug(f'{procedure} returned {len(rows)} rows, using the first')
                entity = self._map_row(rows[0])
            except (ExecutionError, MappingError) as exc:
                logger.debug(f'{procedure} failed: {exc}')
                return Response.fail(str(exc))
        return Response.ok(entity)

    def get_list(self, flt: Any = None) -> Response:
        """Fetch the entities selected by a filter through the list procedure.
        """
        return self.execute_selection(flt, self._procedure('list'))

    def execute_selection(self, flt: Any, procedure: str) -> Response:
        """Run any row-returning procedure with a filter's parameters.

        Rows are mapped in cursor order; no rows gives an empty list.
        """
        with self.connection_provider.open() as cn, temporary_autocommit(cn):
            try:
                rows = self._call_query(cn, procedure, flt)
                result = self.list_factory()
                for row in rows:
                    result.append(self._map_row(row))
            except (ExecutionError, MappingError) as exc:
                logger.debug(f'{procedure} failed: {exc}')
                return Response.fail(str(exc))
        logger.debug(f'{procedure} returned {len(rows)} rows')
        return Response.ok(result)

    def execute_update(self, flt: Any, procedure: str) -> Response:
        """Run any procedure with a filter's parameters in its own transaction.
        """
        return self._write(procedure, [flt])
