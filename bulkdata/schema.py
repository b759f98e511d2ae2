# bulkdata/schema.py
"""
Table metadata consumed by the bulk write builders.

A :class:`TableSchema` answers the questions the builders ask about the
target: which columns exist and what their native types are, whether there
is a surrogate identity column backed by a sequence, and, for partitioned
tables, which child table a row belongs in.

Schemas can be declared by hand or read from the database with
:meth:`TableSchema.from_db`.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .utils import validate_identifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Column:
    """A table column and its native SQL type (as used in casts)."""
    name: str
    sql_type: str = 'text'
    nullable: bool = True
    primary_key: bool = False


class TableSchema:
    """
    Schema of a bulk write target.

    Args:
        name: Base table name, optionally schema qualified
        columns: Either a mapping of column name to SQL type (or :class:`Column`)
            or an iterable of :class:`Column`
        identity: Surrogate key column filled from a sequence on insert.
            Ignored when the table has no such column; pass None to disable.
        sequence_name: Sequence backing the identity column
            (default ``<table>_<identity>_seq``)
        partition_keys: Columns whose values pick the child table
        partition_fn: Called with the partition key values of a row, returns
            the child table name

    Example
    -------
    ::

        employees = TableSchema('employees', {
            'id': 'integer',
            'company_id': 'integer',
            'name': 'text',
            'salary': 'numeric(10,2)',
            'created_at': 'timestamp',
        })

        # Partitioned by company
        employees = TableSchema('employees', columns,
                                partition_keys=['company_id'],
                                partition_fn=lambda company_id: f'employees_partitions.p{company_id}')
    """

    def __init__(self,
                 name: str,
                 columns: Union[Mapping[str, Any], Iterable[Column]],
                 identity: Optional[str] = 'id',
                 sequence_name: Optional[str] = None,
                 partition_keys: Optional[Sequence[str]] = None,
                 partition_fn: Optional[Callable[..., str]] = None):
        validate_identifier(name)
        self._name = name
        self._columns: Dict[str, Column] = {}
        if isinstance(columns, Mapping):
            items = [col if isinstance(col, Column) else Column(col_name, str(col))
                     for col_name, col in columns.items()]
        else:
            items = list(columns)
        for col in items:
            validate_identifier(col.name)
            self._columns[col.name] = col

        self._identity = identity if identity in self._columns else None
        if self._identity and sequence_name is None:
            sequence_name = f"{name}_{self._identity}_seq"
        self._sequence_name = sequence_name if self._identity else None

        self._partition_keys = tuple(partition_keys or ())
        if partition_fn is not None and not self._partition_keys:
            raise ValueError(f"Table {name}: partition_fn given without partition_keys")
        self._partition_fn = partition_fn

    def __repr__(self) -> str:
        return f"TableSchema('{self._name}', {len(self._columns)} columns)"

    @property
    def name(self) -> str:
        return self._name

    @property
    def columns(self) -> Dict[str, Column]:
        return self._columns

    @property
    def column_names(self) -> List[str]:
        return list(self._columns)

    @property
    def identity(self) -> Optional[str]:
        return self._identity

    @property
    def has_identity(self) -> bool:
        return self._identity is not None

    @property
    def sequence_name(self) -> Optional[str]:
        return self._sequence_name

    @property
    def partition_keys(self) -> tuple:
        return self._partition_keys

    @property
    def partitioned(self) -> bool:
        return self._partition_fn is not None

    def column(self, name: str) -> Optional[Column]:
        return self._columns.get(name)

    def partition_key_values(self, row: Mapping[str, Any]) -> list:
        return [row.get(key) for key in self._partition_keys]

    def table_name_for(self, row: Mapping[str, Any]) -> str:
        """Name of the table ``row`` is written to."""
        if not self.partitioned:
            return self._name
        return self._partition_fn(*self.partition_key_values(row))

    @classmethod
    def from_db(cls, cursor, table_name: str, **kwargs) -> 'TableSchema':
        """
        Read column names, types and the identity sequence from the database.

        Args:
            cursor: Database cursor (any cursor type)
            table_name: Name of table to analyze (supports schema.table format)
            **kwargs: Passed through to the constructor (partition_keys, partition_fn, ...)

        Raises:
            ValueError: If the table does not exist or the database type is unsupported
        """
        db_type = cursor.connection.server_type
        if db_type == 'postgres':
            columns, identity, sequence = _get_postgres_metadata(cursor, table_name)
        elif db_type == 'sqlite':
            columns, identity, sequence = _get_sqlite_metadata(cursor, table_name)
        else:
            raise ValueError(f"Schema introspection not supported for database type: {db_type}")

        if not columns:
            raise ValueError(f"Table {table_name} not found or has no columns")
        kwargs.setdefault('identity', identity)
        if sequence is not None:
            kwargs.setdefault('sequence_name', sequence)
        logger.debug(f"Read {len(columns)} columns for {table_name}; identity={identity}")
        return cls(table_name, columns, **kwargs)


def _get_postgres_metadata(cursor, table_name: str):
    """Columns with formatted native types, plus the identity column and its sequence."""
    tab_info = table_name.lower().split('.')
    schema = None
    if len(tab_info) == 2:
        schema, table_name = tab_info

    col_query = '''
        SELECT a.attname,
               format_type(a.atttypid, a.atttypmod),
               NOT a.attnotnull,
               COALESCE(i.indisprimary, false),
               pg_get_serial_sequence(quote_ident(n.nspname) || '.' || quote_ident(c.relname), a.attname)
        FROM pg_attribute a
        JOIN pg_class c ON c.oid = a.attrelid
        JOIN pg_namespace n ON n.oid = c.relnamespace
        LEFT JOIN pg_index i
            ON i.indrelid = c.oid AND i.indisprimary AND a.attnum = ANY(i.indkey)
        WHERE c.relname = %(table_name)s
          AND n.nspname = COALESCE(%(schema)s::varchar, current_schema())
          AND a.attnum > 0
          AND NOT a.attisdropped
        ORDER BY a.attnum
    '''
    cursor.execute(col_query, {'table_name': table_name, 'schema': schema})

    columns = []
    identity = None
    sequence = None
    for row in cursor.fetchall():
        row = list(row.values()) if isinstance(row, Mapping) else row
        name, sql_type, nullable, primary_key, serial_sequence = row
        columns.append(Column(name, sql_type, bool(nullable), bool(primary_key)))
        if primary_key and serial_sequence and identity is None:
            identity = name
            sequence = serial_sequence
    return columns, identity, sequence


def _get_sqlite_metadata(cursor, table_name: str):
    """
    SQLite columns via PRAGMA table_info.

    SQLite has no sequences; INTEGER PRIMARY KEY columns are assigned by the
    engine, so no identity column is reported.
    """
    if not re.match(r'^[A-Za-z_][A-Za-z0-9_]*$', table_name):
        raise ValueError(f"Invalid SQLite table name: {table_name}")
    cursor.execute(f"PRAGMA table_info({table_name})")
    columns = []
    for row in cursor.fetchall():
        row = list(row.values()) if isinstance(row, Mapping) else row
        _, name, sql_type, notnull, _, pk = row
        columns.append(Column(name, sql_type or 'text', not notnull, bool(pk)))
    return columns, None, None
