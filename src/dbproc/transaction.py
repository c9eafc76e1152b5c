"""
Transaction handling for procedure calls.
"""
import logging
import threading
from typing import Any

from dbproc.exceptions import ExecutionError

logger = logging.getLogger(__name__)


_local = threading.local()


class Transaction:
    """Context manager for running several procedure calls as one unit.

    Commits once on normal exit and rolls back when the block raises. A
    failed commit is rolled back and re-raised as ExecutionError. Nested
    transactions on the same connection within one thread are not supported.

    Examples
        with Transaction(cn):
            for stmt in statements:
                stmt.execute_update()
    """

    def __init__(self, cn: Any) -> None:
        self.connection = cn

        if not hasattr(_local, 'active_transactions'):
            _local.active_transactions = set()

        if id(cn) in _local.active_transactions:
            raise RuntimeError('Nested transactions are not supported')

    def __enter__(self):
        _local.active_transactions.add(id(self.connection))
        self.connection.in_transaction = True
        logger.debug(f'Started transaction for connection {id(self.connection)}')
        return self

    def _rollback(self, cause: BaseException) -> None:
        """Roll back, logging a rollback failure so ``cause`` stays the error raised."""
        try:
            self.connection.rollback()
        except ExecutionError as exc:
            logger.error(f'Rollback failed for connection {id(self.connection)}: {exc}')
            return
        logger.warning(f'Rolled back transaction for connection {id(self.connection)}: {cause}')

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        try:
            if exc_type is not None:
                self._rollback(value)
                return
            try:
                self.connection.commit()
            except ExecutionError as exc:
                self._rollback(exc)
                raise
            logger.debug(f'Committed transaction for connection {id(self.connection)}')
        finally:
            _local.active_transactions.discard(id(self.connection))
            self.connection.in_transaction = False
