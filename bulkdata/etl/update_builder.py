# bulkdata/etl/update_builder.py
import logging
from typing import Any, Dict, List, Optional

from ..errors import InvalidConfiguration
from ..quoting import cast_literal
from ..utils import RecordLike, quote_identifier
from .base_builder import BaseBuilder
from .batch import UPDATE_PHASE, UpdateBatch, normalize_update_rows, returning_clause
from .fragments import Assignments, ColumnMatch, SqlFragment, as_fragment

logger = logging.getLogger(__name__)


class UpdateBuilder(BaseBuilder):
    """
    Multi-row UPDATE builder.

    Each slice becomes one statement joining the target against a literal
    values-table::

        UPDATE employees SET salary = datatable.salary
        FROM (SELECT 1::integer AS id, 1000::numeric AS salary
              UNION SELECT 2, 2000) AS datatable
        WHERE employees.id = datatable.id

    The SET clause defaults to every row column except the identity and
    partition keys; the join predicate defaults to matching on the identity
    column. For (key_row, value_row) input they default to the first pair's
    value and key columns.
    """
    operation = 'update'
    phase = UPDATE_PHASE

    def __init__(self, db, schema, config=None, options=None):
        super().__init__(db, schema, config, options)
        self.set_clause: Optional[SqlFragment] = None
        self.join_predicate: Optional[SqlFragment] = None
        self.constraint_predicate: Optional[SqlFragment] = None

    @property
    def datatable(self) -> str:
        return self.config.datatable_alias

    def resolve_fragments(self, batch: UpdateBatch) -> None:
        """Settle the SET clause and predicates once for the whole call."""
        key_column = self.schema.identity or 'id'

        set_clause = as_fragment(self.options.set_clause, Assignments, 'set_clause')
        if set_clause is None:
            if batch.value_columns is not None:
                columns = batch.value_columns
            else:
                excluded = {key_column, *self.schema.partition_keys}
                columns = [col for col in batch.rows[0] if col not in excluded]
            if not columns:
                raise InvalidConfiguration(f"No columns to update in {self.schema.name}")
            set_clause = Assignments(columns)

        join_predicate = as_fragment(self.options.join_predicate, ColumnMatch, 'join_predicate')
        if join_predicate is None:
            join_predicate = ColumnMatch(batch.key_columns or [key_column])

        constraint = as_fragment(self.options.constraint_predicate, ColumnMatch, 'constraint_predicate')

        for fragment in (set_clause, join_predicate, constraint):
            if fragment is not None:
                fragment.validate(self.schema)

        self.set_clause = set_clause
        self.join_predicate = join_predicate
        self.constraint_predicate = constraint

    def build_datatable(self, columns: List[str], rows: List[RecordLike]) -> str:
        """SELECT ... UNION SELECT ... with the first row typed and aliased."""
        selects = []
        for i, row in enumerate(rows):
            if i == 0:
                items = []
                for col in columns:
                    column = self.schema.column(col)
                    literal = cast_literal(self.quote(row, col), column.sql_type if column else None,
                                           self.server_type)
                    items.append(f"{literal} AS {quote_identifier(col)}")
            else:
                items = [self.quote(row, col) for col in columns]
            selects.append(', '.join(items))
        return '\n UNION SELECT '.join(selects)

    def build_statement(self, table_name: str, columns: List[str], rows: List[RecordLike]) -> str:
        table = quote_identifier(table_name)
        where = self.join_predicate.render(table, self.datatable)
        if self.constraint_predicate is not None:
            where += f" AND ({self.constraint_predicate.render(table, self.datatable)})"
        return (f"UPDATE {table} SET {self.set_clause.render(table, self.datatable)}\n"
                f"FROM (SELECT {self.build_datatable(columns, rows)}) AS {self.datatable}\n"
                f"WHERE {where}"
                f"{returning_clause(self.options.returning, table_name)}")

    def build_and_execute(self, rows) -> List[Dict[str, Any]]:
        batch = rows if isinstance(rows, UpdateBatch) else normalize_update_rows(rows)
        if not batch.rows:
            return []
        self.resolve_fragments(batch)
        returned = []
        for table_name, columns, rows_slice in self.groups(batch.rows):
            returned.extend(self._execute(self.build_statement(table_name, columns, rows_slice), table_name))
            self.rows_processed += len(rows_slice)
        return returned
