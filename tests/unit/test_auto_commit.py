"""
Test auto-commit handling on wrapped and raw connections.
"""
import logging

import pytest
from dbproc.strategy import PostgresStrategy
from dbproc.utils.auto_commit import disable_auto_commit, enable_auto_commit
from dbproc.utils.auto_commit import is_auto_commit, temporary_autocommit

logger = logging.getLogger(__name__)


class RawConnection:
    def __init__(self, autocommit=False):
        self.autocommit = autocommit


@pytest.fixture
def wrapped(mocker):
    """Mimic ConnectionWrapper: strategy plus SQLAlchemy's DBAPI proxy."""
    raw = RawConnection()
    conn = mocker.Mock(spec=['strategy', 'dbapi_connection'])
    conn.strategy = PostgresStrategy()
    conn.dbapi_connection = mocker.Mock(spec=['driver_connection'])
    conn.dbapi_connection.driver_connection = raw
    return conn, raw


class TestAutoCommit:
    """Test suite for auto-commit functionality"""

    def test_enable_auto_commit(self, wrapped):
        conn, raw = wrapped
        enable_auto_commit(conn)
        assert raw.autocommit is True
        assert is_auto_commit(conn)

    def test_disable_auto_commit(self, wrapped):
        conn, raw = wrapped
        raw.autocommit = True
        disable_auto_commit(conn)
        assert raw.autocommit is False
        assert not is_auto_commit(conn)

    def test_raw_connection_detected_by_driver(self, create_simple_mock_connection):
        """A bare driver connection resolves its strategy from its module."""
        raw = create_simple_mock_connection('postgresql')
        raw.autocommit = False
        enable_auto_commit(raw)
        assert raw.autocommit is True


class TestTemporaryAutocommit:

    def test_restores_previous_mode(self):
        conn = RawConnection(autocommit=False)
        with temporary_autocommit(conn) as cn:
            assert cn is conn
            assert conn.autocommit is True
        assert conn.autocommit is False

    def test_restores_on_error(self):
        conn = RawConnection(autocommit=False)
        with pytest.raises(RuntimeError), temporary_autocommit(conn):
            raise RuntimeError('boom')
        assert conn.autocommit is False

    def test_keeps_autocommit_when_already_on(self):
        conn = RawConnection(autocommit=True)
        with temporary_autocommit(conn):
            pass
        assert conn.autocommit is True
