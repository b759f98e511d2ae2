# tests/conftest.py
"""
Shared test fixtures and configuration for pytest.
"""

import datetime as dt
import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from bulkdata.database import Database
from bulkdata.etl.options import BulkConfig
from bulkdata.schema import TableSchema

TEST_KEY = '2YvTXI9DHQPy4d6-ZC9NxcypvLMsJ94OBdmoHyjmwbM='
FIXED_NOW = dt.datetime(2024, 1, 15, 12, 0, 0, tzinfo=dt.timezone.utc)


class FakeDatabaseError(Exception):
    """Stands in for the driver's DatabaseError in mocked connections."""


# Set test config file and encryption key for all tests
@pytest.fixture(autouse=True)
def setup_test_config():
    """Automatically set test config file and encryption key for all tests."""
    from bulkdata.config import set_config_file

    test_config = Path(__file__).parent / 'test.yml'
    set_config_file(str(test_config))

    with patch.dict(os.environ, {'BULKDATA_ENCRYPTION_KEY': TEST_KEY}):
        yield


def executed_sql(cursor):
    """Statements passed to a mock cursor's execute, in order."""
    return [c.args[0] for c in cursor.execute.call_args_list]


@pytest.fixture
def mock_cursor():
    """Mock dict cursor; statements produce no result set unless a test says so."""
    cursor = MagicMock()
    cursor.has_results = False
    cursor.fetchall.return_value = []
    cursor.rowcount = 0
    return cursor


@pytest.fixture
def mock_db(mock_cursor):
    """Mock PostgreSQL connection whose sequence hands out ids from 101."""
    db = MagicMock()
    db.server_type = 'postgres'
    db.interface.__name__ = 'psycopg2'
    db.interface.DatabaseError = FakeDatabaseError
    db.cursor.return_value = mock_cursor
    db.reserve_ids.side_effect = lambda sequence_name, count: list(range(101, 101 + count))
    return db


@pytest.fixture
def bulk_config():
    """Default config with a frozen clock."""
    return BulkConfig(clock=lambda: FIXED_NOW)


@pytest.fixture
def soldiers_schema():
    """Fire Nation army roster."""
    return TableSchema('fire_nation_army', {
        'id': 'integer',
        'name': 'text',
        'rank': 'text',
        'division_id': 'integer',
        'firebending_skill': 'integer',
        'created_at': 'timestamp with time zone',
        'updated_at': 'timestamp with time zone',
    })


@pytest.fixture
def partitioned_schema():
    """Fire Nation army roster partitioned by division."""
    return TableSchema('fire_nation_army', {
        'id': 'integer',
        'name': 'text',
        'rank': 'text',
        'division_id': 'integer',
        'firebending_skill': 'integer',
    }, partition_keys=['division_id'],
        partition_fn=lambda division_id: f'fire_nation_army_partitions.p{division_id}')


@pytest.fixture
def sample_soldiers():
    """Soldiers without ids."""
    return [
        {'name': 'Zuko', 'rank': 'Prince', 'division_id': 1, 'firebending_skill': 9},
        {'name': 'Zhao', 'rank': 'Admiral', 'division_id': 1, 'firebending_skill': 7},
        {'name': 'Iroh', 'rank': 'General', 'division_id': 2, 'firebending_skill': 10},
        {'name': 'Azula', 'rank': 'Princess', 'division_id': 2, 'firebending_skill': 10},
    ]


@pytest.fixture
def sqlite_db():
    """In-memory SQLite database with an air_nomads table."""
    db = Database.create('sqlite', database=':memory:')
    cursor = db.cursor()
    cursor.execute("""
                   CREATE TABLE air_nomads
                   (
                       id               INTEGER PRIMARY KEY,
                       name             TEXT NOT NULL,
                       temple           TEXT NOT NULL,
                       airbending_level INTEGER,
                       created_at       TEXT
                   )
                   """)
    db.commit()
    yield db
    db.close()
