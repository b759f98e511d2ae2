# tests/test_quoting.py
import datetime as dt
import uuid
from decimal import Decimal

import pytest

from bulkdata.quoting import cast_literal, quote_string, quote_value
from bulkdata.schema import Column


class TestQuoteValue:
    """Test SQL literal rendering."""

    @pytest.mark.parametrize('value,expected', [
        (None, 'NULL'),
        (True, 'TRUE'),
        (False, 'FALSE'),
        (42, '42'),
        (-7, '-7'),
        (1.5, '1.5'),
        (Decimal('10.25'), '10.25'),
        ('Aang', "'Aang'"),
        ("Ba Sing Se's wall", "'Ba Sing Se''s wall'"),
        ('', "''"),
    ])
    def test_scalars(self, value, expected):
        assert quote_value(value) == expected

    def test_non_finite_floats_are_quoted(self):
        """Test NaN and infinities render as quoted special values."""
        assert quote_value(float('nan')) == "'NaN'"
        assert quote_value(float('inf')) == "'Infinity'"
        assert quote_value(float('-inf')) == "'-Infinity'"
        assert quote_value(Decimal('NaN')) == "'NaN'"

    def test_temporal(self):
        assert quote_value(dt.date(2024, 1, 15)) == "'2024-01-15'"
        assert quote_value(dt.time(8, 30)) == "'08:30:00'"
        assert quote_value(dt.datetime(2024, 1, 15, 12, 0)) == "'2024-01-15 12:00:00'"
        aware = dt.datetime(2024, 1, 15, 12, 0, tzinfo=dt.timezone.utc)
        assert quote_value(aware) == "'2024-01-15 12:00:00+00:00'"

    def test_uuid(self):
        value = uuid.UUID('12345678-1234-5678-1234-567812345678')
        assert quote_value(value) == "'12345678-1234-5678-1234-567812345678'"

    def test_bytes(self):
        """Test binary values use the server's hex literal form."""
        assert quote_value(b'\x01\xff') == "'\\x01ff'"
        assert quote_value(b'\x01\xff', server_type='sqlite') == "X'01ff'"

    def test_array(self):
        """Test lists render as array literals."""
        assert quote_value([1, 2, None]) == "'{1,2,NULL}'"
        assert quote_value(['fire', 'water']) == '\'{"fire","water"}\''
        assert quote_value([[1, 2], [3, 4]]) == "'{{1,2},{3,4}}'"

    def test_array_element_escaping(self):
        """Test quotes and backslashes inside array elements are escaped."""
        assert quote_value(['say "hi"']) == '\'{"say \\"hi\\""}\''
        assert quote_value(["Toph's"]) == '\'{"Toph\'\'s"}\''

    def test_json_column(self):
        """Test lists and dicts become JSON for json/jsonb columns."""
        assert quote_value([1, 2], Column('tags', 'jsonb')) == "'[1, 2]'"
        assert quote_value({'element': 'air'}) == '\'{"element": "air"}\''
        assert quote_value({'k': "it's"}, 'json') == '\'{"k": "it\'\'s"}\''

    def test_type_name_as_column(self):
        """Test a bare type name works in place of a Column."""
        assert quote_value([1], 'integer[]') == "'{1}'"
        assert quote_value([1], 'JSONB') == "'[1]'"

    def test_nul_rejected(self):
        with pytest.raises(ValueError):
            quote_value('bad\x00value')


class TestQuoteString:

    def test_quote_string(self):
        assert quote_string("O'Malley") == "'O''Malley'"


class TestCastLiteral:
    """Test casting literals to native types."""

    def test_postgres(self):
        assert cast_literal("'Zuko'", 'text') == "'Zuko'::text"
        assert cast_literal('NULL', 'numeric(10,2)') == 'NULL::numeric(10,2)'

    def test_other_servers(self):
        assert cast_literal("'Zuko'", 'TEXT', 'sqlite') == "CAST('Zuko' AS TEXT)"

    def test_no_type(self):
        assert cast_literal('42', None) == '42'
