# bulkdata/quoting.py
"""
SQL literal rendering for values embedded directly in bulk statements.

Multi-row INSERT and UPDATE ... FROM (SELECT ... UNION SELECT ...) statements
carry their data inline instead of as bind parameters, so every value is
turned into a literal here. The column (when known) decides how containers
are rendered: lists become PostgreSQL array literals unless the column is
json/jsonb.
"""

import datetime as dt
import json
import math
import uuid
from decimal import Decimal
from typing import Any, Optional

NULL = 'NULL'
JSON_TYPES = ('json', 'jsonb')


def _column_type(column) -> str:
    if column is None:
        return ''
    return (getattr(column, 'sql_type', None) or str(column)).lower()


def quote_string(value: str) -> str:
    """Quote a string literal, doubling embedded single quotes."""
    if '\x00' in value:
        raise ValueError("String literals cannot contain NUL characters")
    return "'" + value.replace("'", "''") + "'"


def _array_element(value: Any) -> str:
    """Render one element of a PostgreSQL array literal."""
    if value is None:
        return 'NULL'
    if isinstance(value, (list, tuple)):
        return '{' + ','.join(_array_element(v) for v in value) + '}'
    if isinstance(value, bool):
        return 't' if value else 'f'
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    text = _temporal_text(value) if isinstance(value, (dt.date, dt.time)) else str(value)
    text = text.replace('\\', '\\\\').replace('"', '\\"')
    return f'"{text}"'


def _temporal_text(value) -> str:
    if isinstance(value, dt.datetime):
        return value.isoformat(sep=' ')
    return value.isoformat()


def quote_value(value: Any, column: Optional[Any] = None, server_type: str = 'postgres') -> str:
    """
    Render ``value`` as a SQL literal.

    Args:
        value: Python value to render
        column: Column metadata (a :class:`~bulkdata.schema.Column` or a type name)
        server_type: 'postgres' or 'sqlite'; only affects binary values

    Returns:
        The literal text, e.g. ``'O''Brien'``, ``42``, ``NULL`` or ``'{1,2}'``

    Example
    -------
    ::

        >>> quote_value("O'Brien")
        "'O''Brien'"
        >>> quote_value([1, 2, None])
        "'{1,2,NULL}'"
    """
    col_type = _column_type(column)

    if value is None:
        return NULL
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "'NaN'"
        if math.isinf(value):
            return "'Infinity'" if value > 0 else "'-Infinity'"
        return repr(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            return quote_string(str(value).replace('sNaN', 'NaN'))
        return str(value)
    if isinstance(value, (dt.date, dt.time)):
        return quote_string(_temporal_text(value))
    if isinstance(value, uuid.UUID):
        return quote_string(str(value))
    if isinstance(value, (bytes, bytearray, memoryview)):
        hex_text = bytes(value).hex()
        if server_type == 'postgres':
            return f"'\\x{hex_text}'"
        return f"X'{hex_text}'"
    if isinstance(value, dict) or (isinstance(value, (list, tuple)) and col_type in JSON_TYPES):
        return quote_string(json.dumps(value, default=str))
    if isinstance(value, (list, tuple)):
        return quote_string('{' + ','.join(_array_element(v) for v in value) + '}')
    return quote_string(str(value))


def cast_literal(literal: str, sql_type: Optional[str], server_type: str = 'postgres') -> str:
    """
    Cast a rendered literal to a native column type.

    PostgreSQL gets the ``literal::type`` shorthand, other servers the
    standard ``CAST(literal AS type)``.
    """
    if not sql_type:
        return literal
    if server_type == 'postgres':
        return f"{literal}::{sql_type}"
    return f"CAST({literal} AS {sql_type})"
