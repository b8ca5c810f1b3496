"""
Tests for the SQLAlchemy database handle.
"""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from sqlalchemy import create_engine, event

from planreplay.db import handle as handle_module
from planreplay.db.handle import QueryTimeout, SqlAlchemyHandle, connect
from planreplay.exceptions import ConfigurationError


@pytest.fixture
def pyodbc_like_engine(monkeypatch: pytest.MonkeyPatch) -> dict[str, Any]:
    """Build an in-memory engine that reports the pyodbc driver."""
    captured: dict[str, Any] = {}
    real_create_engine = create_engine

    def fake_create_engine(url: str, **kwargs: Any) -> Any:
        captured["url"] = url
        captured["kwargs"] = kwargs
        engine = real_create_engine("sqlite://")
        engine.dialect.driver = "pyodbc"
        return engine

    monkeypatch.setattr(handle_module, "create_engine", fake_create_engine)
    return captured


class TestQueryTimeout:

    def test_sets_connection_timeout(self) -> None:
        dbapi_connection = SimpleNamespace(timeout=0)

        QueryTimeout(30)(dbapi_connection, None)

        assert dbapi_connection.timeout == 30

    def test_timeout_is_a_connect_listener_not_a_login_timeout(
        self, pyodbc_like_engine: dict[str, Any]
    ) -> None:
        handle = SqlAlchemyHandle.from_url("mssql+pyodbc://u:p@prod-sql/Sales", 30)

        assert "connect_args" not in pyodbc_like_engine["kwargs"]
        assert handle.query_timeout is not None
        assert handle.query_timeout.seconds == 30
        assert event.contains(handle._engine, "connect", handle.query_timeout)

    def test_fractional_timeout_rounds_to_at_least_one_second(
        self, pyodbc_like_engine: dict[str, Any]
    ) -> None:
        handle = SqlAlchemyHandle.from_url("mssql+pyodbc://u:p@prod-sql/Sales", 0.4)

        assert handle.query_timeout is not None
        assert handle.query_timeout.seconds == 1

    def test_no_timeout_configured(self, pyodbc_like_engine: dict[str, Any]) -> None:
        handle = SqlAlchemyHandle.from_url("mssql+pyodbc://u:p@prod-sql/Sales")

        assert handle.query_timeout is None

    def test_other_drivers_ignore_timeout(self) -> None:
        handle = SqlAlchemyHandle.from_url("sqlite://", 30)

        assert handle.query_timeout is None
        handle.ping()
        handle.close()


class TestSqlAlchemyHandle:

    def test_fetch_and_execute(self) -> None:
        handle = SqlAlchemyHandle.from_url("sqlite://")

        handle.execute("CREATE TABLE t (x INTEGER)")
        handle.execute("INSERT INTO t VALUES (1)")

        assert handle.fetch_all("SELECT x FROM t WHERE x = :x", {"x": 1}) == [{"x": 1}]
        handle.close()

    def test_labels_default(self) -> None:
        handle = SqlAlchemyHandle.from_url("sqlite://")

        assert handle.server == "local"
        assert handle.database == "default"

    def test_invalid_url_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            connect("not a url")

        assert exc_info.value.config_key == "url"
