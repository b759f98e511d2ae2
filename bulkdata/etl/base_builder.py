# bulkdata/etl/base_builder.py
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from ..database import CursorType
from ..quoting import quote_value
from ..utils import RecordLike, quote_identifier
from .batch import check_consistency, partition_rows, slice_rows
from .options import BulkConfig, BulkOptions

logger = logging.getLogger(__name__)


class BaseBuilder(ABC):
    """
    Shared plumbing of the statement builders.

    A builder turns one batch into statements for one table, executes them in
    order on a single dict cursor and collects whatever they return. Driver
    errors are logged and re-raised unchanged; statements already executed
    stay executed.
    """
    operation = None
    phase = None

    def __init__(self, db, schema, config: Optional[BulkConfig] = None,
                 options: Optional[BulkOptions] = None):
        self.db = db
        self.schema = schema
        self.config = config or BulkConfig()
        self.options = options or BulkOptions.resolve(self.config)
        self.cursor = db.cursor(CursorType.DICT)
        # stats
        self.statements_executed = 0
        self.rows_processed = 0
        self.rows_returned = 0

    @property
    def server_type(self) -> str:
        return self.db.server_type

    def quote(self, row: RecordLike, column: str) -> str:
        return quote_value(row.get(column), self.schema.column(column), self.server_type)

    def column_list(self, columns: Iterable[str]) -> str:
        return ', '.join(quote_identifier(col) for col in columns)

    def groups(self, rows: List[RecordLike]):
        """
        Yield (table_name, columns, slice) for every slice of every partition.

        Each partition is validated before its first slice is yielded, so an
        inconsistent partition is rejected before any of its statements run.
        """
        for table_name, group in partition_rows(self.schema, rows):
            if self.options.check_consistency:
                columns = check_consistency(table_name, group, self.phase)
            else:
                columns = sorted(group[0])
            for rows_slice in slice_rows(group, self.options.slice_size):
                yield table_name, columns, rows_slice

    def _execute(self, sql: str, table_name: str) -> List[Dict[str, Any]]:
        """Execute one statement and return its result rows (if any)."""
        logger.debug(f"{self.operation.upper()} {table_name}:\n{sql}")
        try:
            self.cursor.execute(sql)
        except self.db.interface.DatabaseError as e:
            logger.error(f"{self.operation.capitalize()} statement failed for {table_name}: {e}")
            raise
        self.statements_executed += 1
        if self.cursor.has_results:
            results = self.cursor.fetchall()
            self.rows_returned += len(results)
            return results
        return []

    @abstractmethod
    def build_and_execute(self, rows) -> List[Dict[str, Any]]:
        """Write the batch, returning the rows produced by RETURNING."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            logger.info(
                f"{self.__class__.__name__} [{self.operation.upper()}]: "
                f"{self.rows_processed:,} rows in {self.statements_executed:,} statements "
                f"-> {self.schema.name}"
            )
        self.cursor.close()
        return None
