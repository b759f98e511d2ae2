# tests/test_bulk.py
import sqlite3
from unittest.mock import patch

import pytest

from bulkdata.errors import InconsistentBatch, InvalidConfiguration
from bulkdata.etl.bulk import BUILDERS, BulkTable
from bulkdata.etl.copy_builder import CopyBuilder
from bulkdata.etl.insert_builder import InsertBuilder
from bulkdata.etl.update_builder import UpdateBuilder
from bulkdata.schema import TableSchema

from conftest import FIXED_NOW, executed_sql

needs_update_from = pytest.mark.skipif(sqlite3.sqlite_version_info < (3, 33, 0),
                                       reason='UPDATE ... FROM requires SQLite 3.33')
needs_returning = pytest.mark.skipif(sqlite3.sqlite_version_info < (3, 35, 0),
                                     reason='RETURNING requires SQLite 3.35')


@pytest.fixture
def army(mock_db, soldiers_schema, bulk_config):
    return BulkTable(mock_db, soldiers_schema, bulk_config)


class TestBuilderDispatch:
    """Test BulkTable picks the right builder."""

    def test_registry(self):
        assert BUILDERS == {'insert': InsertBuilder, 'update': UpdateBuilder, 'copy': CopyBuilder}

    def test_create_many_inserts(self, army, mock_cursor, sample_soldiers):
        army.create_many(sample_soldiers)

        sql = executed_sql(mock_cursor)
        assert len(sql) == 1
        assert sql[0].startswith('INSERT INTO fire_nation_army ')

    def test_create_many_does_not_mutate_input(self, army, sample_soldiers):
        army.create_many(sample_soldiers)
        assert 'id' not in sample_soldiers[0]

    def test_create_many_with_copy(self, army, tmp_path):
        """Test statement_builder='copy' loads the file."""
        path = tmp_path / 'recruits.txt'
        path.write_text('Jee\tLieutenant\n')

        with patch.object(CopyBuilder, 'build_and_execute', return_value=[]) as copy:
            assert army.create_many(path, statement_builder='copy') == []
        copy.assert_called_once_with(path)

    def test_create_many_copy_needs_path(self, army, sample_soldiers):
        with pytest.raises(InvalidConfiguration, match='file path'):
            army.create_many(sample_soldiers, statement_builder='copy')

    def test_create_many_rejects_update_builder(self, army, sample_soldiers):
        with pytest.raises(InvalidConfiguration, match='update_many'):
            army.create_many(sample_soldiers, statement_builder='update')

    def test_insert_rejects_path(self, army):
        with pytest.raises(InvalidConfiguration, match='sequence of rows'):
            army.create_many('/data/recruits.csv')

    def test_update_many_rejects_other_builders(self, army):
        with pytest.raises(InvalidConfiguration):
            army.update_many([{'id': 1, 'rank': 'General'}], statement_builder='insert')

    def test_update_many(self, army, mock_cursor):
        army.update_many([{'id': 1, 'rank': 'General'}])
        assert executed_sql(mock_cursor)[0].startswith('UPDATE fire_nation_army SET rank = datatable.rank')

    def test_copy_from_forces_copy(self, army, tmp_path, mock_cursor):
        path = tmp_path / 'recruits.csv'
        path.write_text('name,rank\nJee,Lieutenant\n')

        assert army.copy_from(path, statement_builder='insert', file_format='csv', header=True,
                              column_names=['name', 'rank']) == []
        assert executed_sql(mock_cursor)[0].startswith('COPY fire_nation_army (name, rank) FROM ')

    def test_unknown_option(self, army, sample_soldiers):
        with pytest.raises(InvalidConfiguration, match='Unknown bulk option'):
            army.create_many(sample_soldiers, commit=True)

    def test_builder_cursor_closed(self, army, mock_cursor, sample_soldiers):
        army.create_many(sample_soldiers)
        mock_cursor.close.assert_called_once()

    def test_builder_cursor_closed_after_failure(self, army, mock_cursor, tmp_path):
        """Test the cursor is released when the batch raises or loads nothing."""
        with pytest.raises(InconsistentBatch):
            army.create_many([{'id': 1, 'name': 'Zuko'}, {'id': 2, 'rank': 'General'}])
        army.copy_from(tmp_path / 'deserters.csv')

        assert mock_cursor.close.call_count == 2

    def test_repr(self, army):
        assert repr(army) == 'BulkTable(fire_nation_army)'


class TestEmptyBatches:
    """Test empty input is a no-op."""

    @pytest.mark.parametrize('rows', [[], {}, ()])
    def test_empty(self, army, mock_db, mock_cursor, rows):
        assert army.create_many(rows) == []
        assert army.update_many(rows) == []
        mock_cursor.execute.assert_not_called()
        mock_db.reserve_ids.assert_not_called()

    def test_empty_with_returning(self, army, mock_cursor):
        assert army.create_many([], returning='*') == []
        mock_cursor.execute.assert_not_called()

    def test_empty_ignores_options(self, army, mock_db):
        """Test an empty batch returns before its options are checked."""
        assert army.create_many([], slice_size=0) == []
        assert army.update_many([], slice_size=0) == []
        mock_db.cursor.assert_not_called()


class TestReturning:

    def test_rows_from_every_statement(self, army, mock_cursor, sample_soldiers):
        """Test RETURNING rows are concatenated in statement order."""
        mock_cursor.has_results = True
        mock_cursor.fetchall.side_effect = [[{'id': 101}, {'id': 102}], [{'id': 103}, {'id': 104}]]

        returned = army.create_many(sample_soldiers, returning=['id'], slice_size=2)

        assert returned == [{'id': 101}, {'id': 102}, {'id': 103}, {'id': 104}]

    def test_config_returning_default(self, mock_db, mock_cursor, soldiers_schema):
        from bulkdata.etl.options import BulkConfig
        table = BulkTable(mock_db, soldiers_schema, BulkConfig(returning='*'))
        table.create_many([{'id': 1, 'name': 'Zuko'}])

        assert executed_sql(mock_cursor)[0].endswith(' RETURNING *')

    def test_inconsistent_batch(self, army, mock_cursor):
        with pytest.raises(InconsistentBatch):
            army.create_many([{'id': 1, 'name': 'Zuko'}, {'id': 2, 'rank': 'General'}])
        mock_cursor.execute.assert_not_called()


@pytest.fixture
def nomads(sqlite_db, bulk_config):
    schema = TableSchema.from_db(sqlite_db.cursor(), 'air_nomads')
    return BulkTable(sqlite_db, schema, bulk_config)


def fetch_nomads(db):
    cursor = db.cursor('dict')
    cursor.execute('SELECT id, name, temple, airbending_level, created_at FROM air_nomads ORDER BY id')
    return cursor.fetchall()


class TestSqliteIntegration:
    """Round trips against an in-memory SQLite database."""

    def test_create_many(self, nomads, sqlite_db):
        rows = [
            {'name': 'Aang', 'temple': 'Southern Air Temple', 'airbending_level': 10},
            {'name': 'Gyatso', 'temple': 'Southern Air Temple', 'airbending_level': 9},
            {'name': "Tashi's apprentice", 'temple': 'Eastern Air Temple', 'airbending_level': None},
        ]
        assert nomads.create_many(rows, slice_size=2) == []

        stored = fetch_nomads(sqlite_db)
        assert [r['name'] for r in stored] == ['Aang', 'Gyatso', "Tashi's apprentice"]
        assert stored[2]['airbending_level'] is None
        assert stored[0]['created_at'] == str(FIXED_NOW)

    def test_explicit_ids(self, nomads, sqlite_db):
        nomads.create_many([{'id': 7, 'name': 'Jinora', 'temple': 'Northern Air Temple'}])
        assert fetch_nomads(sqlite_db)[0]['id'] == 7

    @needs_returning
    def test_create_many_returning(self, nomads):
        returned = nomads.create_many(
            [{'name': 'Aang', 'temple': 'Southern Air Temple'},
             {'name': 'Tenzin', 'temple': 'Air Temple Island'}],
            returning=['id', 'name'],
        )
        assert sorted(r['name'] for r in returned) == ['Aang', 'Tenzin']
        assert all(isinstance(r['id'], int) for r in returned)

    @needs_update_from
    def test_update_many(self, nomads, sqlite_db):
        nomads.create_many([
            {'id': 1, 'name': 'Aang', 'temple': 'Southern Air Temple', 'airbending_level': 8},
            {'id': 2, 'name': 'Gyatso', 'temple': 'Southern Air Temple', 'airbending_level': 9},
            {'id': 3, 'name': 'Tenzin', 'temple': 'Air Temple Island', 'airbending_level': 7},
        ])

        nomads.update_many([({'id': 1}, {'airbending_level': 10}),
                            ({'id': 3}, {'airbending_level': 9})])

        levels = {r['name']: r['airbending_level'] for r in fetch_nomads(sqlite_db)}
        assert levels == {'Aang': 10, 'Gyatso': 9, 'Tenzin': 9}

    @needs_update_from
    def test_update_with_constraint(self, nomads, sqlite_db):
        nomads.create_many([
            {'id': 1, 'name': 'Aang', 'temple': 'Southern Air Temple', 'airbending_level': 8},
            {'id': 2, 'name': 'Gyatso', 'temple': 'Southern Air Temple', 'airbending_level': 9},
        ])

        nomads.update_many({(('id', 1),): {'temple': 'Air Temple Island'},
                            (('id', 2),): {'temple': 'Air Temple Island'}},
                           constraint_predicate='{table}.airbending_level < 9')

        temples = {r['name']: r['temple'] for r in fetch_nomads(sqlite_db)}
        assert temples == {'Aang': 'Air Temple Island', 'Gyatso': 'Southern Air Temple'}

    def test_copy_not_supported(self, nomads, tmp_path):
        path = tmp_path / 'nomads.txt'
        path.write_text('Aang\tSouthern Air Temple\n')

        with pytest.raises(NotImplementedError):
            nomads.copy_from(path)

    def test_hand_built_schema_without_ids(self, sqlite_db, bulk_config):
        """Test sqlite numbers the rows itself when the schema declares an identity."""
        schema = TableSchema('air_nomads', {
            'id': 'integer',
            'name': 'text',
            'temple': 'text',
            'airbending_level': 'integer',
            'created_at': 'text',
        })
        assert schema.sequence_name == 'air_nomads_id_seq'
        table = BulkTable(sqlite_db, schema, bulk_config)

        table.create_many([{'name': 'Aang', 'temple': 'Southern Air Temple'},
                           {'name': 'Tenzin', 'temple': 'Air Temple Island'}])

        stored = fetch_nomads(sqlite_db)
        assert [r['name'] for r in stored] == ['Aang', 'Tenzin']
        assert [r['id'] for r in stored] == [1, 2]

    @needs_returning
    def test_returned_ids_match_stored_rows(self, nomads, sqlite_db):
        rows = [{'name': 'Aang', 'temple': 'Southern Air Temple'},
                {'name': 'Tenzin', 'temple': 'Air Temple Island'},
                {'name': 'Jinora', 'temple': 'Northern Air Temple'}]

        returned = nomads.create_many(rows, returning=['id'])

        stored = {r['id']: (r['name'], r['temple']) for r in fetch_nomads(sqlite_db)}
        assert sorted(r['id'] for r in returned) == sorted(stored)
        assert sorted(stored.values()) == sorted((r['name'], r['temple']) for r in rows)

    @needs_returning
    @needs_update_from
    def test_update_many_returning(self, nomads, sqlite_db):
        nomads.create_many([
            {'id': 1, 'name': 'Aang', 'temple': 'Southern Air Temple', 'airbending_level': 8},
            {'id': 2, 'name': 'Gyatso', 'temple': 'Southern Air Temple', 'airbending_level': 9},
            {'id': 3, 'name': 'Tenzin', 'temple': 'Air Temple Island', 'airbending_level': 7},
        ])

        returned = nomads.update_many([({'id': 1}, {'airbending_level': 10}),
                                       ({'id': 3}, {'airbending_level': 9})],
                                      returning='*')

        assert sorted((r['id'], r['airbending_level']) for r in returned) == [(1, 10), (3, 9)]
        levels = {r['id']: r['airbending_level'] for r in fetch_nomads(sqlite_db)}
        assert levels == {1: 10, 2: 9, 3: 9}
