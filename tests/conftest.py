"""
Shared fixtures: a temporary SQLite database with the demo schema.
"""

import pytest
from sqlalchemy import MetaData, create_engine

from visibility.demo_schema import create_demo_schema, define_tables
from visibility.store import SqlStore


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'visibility.db'}")
    create_demo_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def tables():
    return define_tables(MetaData()).tables


@pytest.fixture
def insert_rows(engine, tables):
    """insert_rows("pilots", [{...}, ...]); missing columns are NULL."""
    def _insert(name, rows):
        table = tables[name]
        full = [{c.name: row.get(c.name) for c in table.columns} for row in rows]
        with engine.begin() as conn:
            conn.execute(table.insert(), full)
    return _insert


@pytest.fixture
def store(engine):
    return SqlStore(engine)
