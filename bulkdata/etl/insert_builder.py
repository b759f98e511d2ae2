# bulkdata/etl/insert_builder.py
import logging
from typing import Any, Dict, List

from ..utils import RecordLike, quote_identifier
from .base_builder import BaseBuilder
from .batch import INSERT_PHASE, returning_clause

logger = logging.getLogger(__name__)


class InsertBuilder(BaseBuilder):
    """
    Multi-row INSERT builder.

    Missing identity values are reserved from the table's sequence in one
    round trip, timestamp columns are filled with the call time, then every
    partition is written in slices of at most ``slice_size`` rows::

        INSERT INTO employees (company_id, created_at, id, name) VALUES
        (1, '2024-01-01 00:00:00+00:00', 101, 'Keith'), (...) RETURNING id

    Example
    -------
    ::

        builder = InsertBuilder(db, schema, config, options)
        returned = builder.build_and_execute(rows)
    """
    operation = 'insert'
    phase = INSERT_PHASE

    def prepare_rows(self, rows: List[RecordLike]) -> List[Dict[str, Any]]:
        """Copy the rows and fill identity and timestamp defaults."""
        rows = [dict(row) for row in rows]
        self.assign_identities(rows)
        self.fill_timestamps(rows)
        return rows

    def assign_identities(self, rows: List[Dict[str, Any]]) -> int:
        """
        Give rows without an identity value one from a single batch reservation.

        Returns:
            Number of ids reserved
        """
        identity = self.schema.identity
        if not identity or not self.schema.sequence_name:
            return 0
        missing = [row for row in rows if row.get(identity) in (None, '')]
        if not missing:
            return 0
        if self.server_type != 'postgres':
            # sqlite fills an INTEGER PRIMARY KEY itself
            logger.debug(f"{len(missing)} rows without {identity} left to {self.server_type} to number")
            return 0
        ids = self.db.reserve_ids(self.schema.sequence_name, len(missing))
        if len(ids) != len(missing):
            raise RuntimeError(
                f"Sequence {self.schema.sequence_name} returned {len(ids)} ids, {len(missing)} requested"
            )
        for row, new_id in zip(missing, ids):
            row[identity] = new_id
        return len(ids)

    def fill_timestamps(self, rows: List[Dict[str, Any]]) -> None:
        """Set missing timestamp columns to one instant shared by the whole call."""
        columns = [col for col in self.config.timestamp_columns if self.schema.column(col) is not None]
        if not columns:
            return
        now = self.config.clock()
        for row in rows:
            for col in columns:
                if row.get(col) is None:
                    row[col] = now

    def build_statement(self, table_name: str, columns: List[str], rows: List[RecordLike]) -> str:
        values = ',\n'.join(
            '(' + ', '.join(self.quote(row, col) for col in columns) + ')'
            for row in rows
        )
        return (f"INSERT INTO {quote_identifier(table_name)} ({self.column_list(columns)}) VALUES\n"
                f"{values}{returning_clause(self.options.returning)}")

    def build_and_execute(self, rows) -> List[Dict[str, Any]]:
        rows = self.prepare_rows(rows)
        if not rows:
            return []
        returned = []
        for table_name, columns, rows_slice in self.groups(rows):
            returned.extend(self._execute(self.build_statement(table_name, columns, rows_slice), table_name))
            self.rows_processed += len(rows_slice)
        return returned
