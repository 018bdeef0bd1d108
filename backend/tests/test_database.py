"""Tests for engine and session lifecycle."""

import pytest
from sqlalchemy import inspect

from geo_assign import database


class TestEngineLifecycle:
    def test_init_creates_schema_and_factory(self):
        engine = database.init_engine("sqlite://")
        try:
            assert {"reports", "mla_records", "mp_records"} <= set(inspect(engine).get_table_names())
            with database.get_session_factory()() as session:
                assert session.get_bind() is engine
        finally:
            database.dispose_engine()

    def test_factory_unavailable_after_dispose(self):
        database.init_engine("sqlite://")
        database.dispose_engine()
        with pytest.raises(RuntimeError, match="not initialized"):
            database.get_session_factory()

    def test_session_dependency_yields_session(self):
        database.init_engine("sqlite://")
        try:
            dependency = database.get_session()
            session = next(dependency)
            assert session.is_active
            dependency.close()
        finally:
            database.dispose_engine()
