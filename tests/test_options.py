# tests/test_options.py
import datetime as dt

import pytest

from bulkdata.errors import InvalidConfiguration
from bulkdata.etl.fragments import Raw
from bulkdata.etl.options import BulkConfig, BulkOptions, FileFormat, StatementBuilder


class TestStatementBuilder:

    def test_values(self):
        assert sorted(StatementBuilder.values()) == ['copy', 'insert', 'update']

    def test_validate_case_insensitive(self):
        assert StatementBuilder.validate('INSERT') == 'insert'

    def test_validate_unknown(self):
        """Test unknown builder names are rejected."""
        with pytest.raises(InvalidConfiguration, match='merge'):
            StatementBuilder.validate('merge')


class TestFileFormat:

    @pytest.mark.parametrize('value,expected', [
        ('csv', 'CSV'),
        ('CSV', 'CSV'),
        ('text', 'TEXT'),
        ('binary', 'TEXT'),
        (None, 'TEXT'),
        ('', 'TEXT'),
    ])
    def test_normalize(self, value, expected):
        """Test unrecognized formats fall back to TEXT."""
        assert FileFormat.normalize(value) == expected


class TestBulkConfig:
    """Test process-wide defaults."""

    def test_defaults(self):
        config = BulkConfig()
        assert config.slice_size == 1000
        assert config.check_consistency is True
        assert config.returning is None
        assert config.file_format == 'TEXT'
        assert config.statement_builder == 'insert'
        assert config.timestamp_columns == ('created_at', 'updated_at')
        assert config.datatable_alias == 'datatable'

    def test_default_clock_is_utc(self):
        now = BulkConfig().clock()
        assert now.tzinfo == dt.timezone.utc

    @pytest.mark.parametrize('size', [0, -5, '10', 1.5])
    def test_invalid_slice_size(self, size):
        with pytest.raises(InvalidConfiguration):
            BulkConfig(slice_size=size)

    def test_invalid_alias(self):
        with pytest.raises(InvalidConfiguration):
            BulkConfig(datatable_alias='data table;')

    def test_invalid_clock(self):
        with pytest.raises(InvalidConfiguration):
            BulkConfig(clock='now')

    def test_from_settings(self):
        """Test settings keys map onto config fields."""
        config = BulkConfig.from_settings({
            'default_slice_size': 250,
            'check_consistency': False,
            'file_format': 'csv',
            'timestamp_columns': ['inserted_at'],
        })
        assert config.slice_size == 250
        assert config.check_consistency is False
        assert config.file_format == 'CSV'
        assert config.timestamp_columns == ('inserted_at',)

    def test_from_settings_overrides(self):
        config = BulkConfig.from_settings({'default_slice_size': 250}, slice_size=10)
        assert config.slice_size == 10


class TestBulkOptions:
    """Test per-call option resolution."""

    def test_resolve_uses_config_defaults(self):
        config = BulkConfig(slice_size=50, returning=['id'], file_format='CSV')
        opts = BulkOptions.resolve(config)

        assert opts.slice_size == 50
        assert opts.check_consistency is True
        assert opts.returning == ['id']
        assert opts.file_format == 'CSV'
        assert opts.statement_builder == 'insert'

    def test_resolve_overrides(self):
        opts = BulkOptions.resolve(BulkConfig(), slice_size=2, check_consistency=False, returning='*')
        assert opts.slice_size == 2
        assert opts.check_consistency is False
        assert opts.returning == '*'

    def test_aliases(self):
        """Test alternate option spellings map to the canonical fields."""
        opts = BulkOptions.resolve(BulkConfig(), null_token='\\N', quote_char='"',
                                   escape_char='\\', force_not_null_columns=['name'],
                                   where_constraint='{table}.active')
        assert opts.null == '\\N'
        assert opts.quote == '"'
        assert opts.escape == '\\'
        assert opts.force_not_null == ['name']
        assert opts.constraint_predicate == '{table}.active'

    def test_unknown_option(self):
        with pytest.raises(InvalidConfiguration, match='Unknown bulk option: slices'):
            BulkOptions.resolve(BulkConfig(), slices=3)

    @pytest.mark.parametrize('returning', [42, [], '', ['id; drop']])
    def test_invalid_returning(self, returning):
        with pytest.raises(InvalidConfiguration):
            BulkOptions.resolve(BulkConfig(), returning=returning)

    def test_invalid_fragment_type(self):
        with pytest.raises(InvalidConfiguration, match='set_clause'):
            BulkOptions.resolve(BulkConfig(), set_clause={'name': 'X'})

    def test_fragment_values_accepted(self):
        opts = BulkOptions.resolve(BulkConfig(), set_clause=['name'],
                                   join_predicate=Raw('{table}.id = {datatable}.id'),
                                   constraint_predicate='{table}.active')
        assert opts.set_clause == ['name']

    def test_single_character_options(self):
        with pytest.raises(InvalidConfiguration, match='delimiter'):
            BulkOptions.resolve(BulkConfig(), delimiter=';;')

    def test_column_names_string(self):
        """Test a single column name is wrapped in a list."""
        opts = BulkOptions.resolve(BulkConfig(), column_names='name')
        assert opts.column_names == ['name']

    def test_invalid_statement_builder(self):
        with pytest.raises(InvalidConfiguration):
            BulkOptions.resolve(BulkConfig(), statement_builder='upsert')
