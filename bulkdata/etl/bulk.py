# bulkdata/etl/bulk.py

"""
Bulk write operations for a single table.

Provides the BulkTable class, the entry point for multi-row INSERT, UPDATE
and file COPY. Each call resolves its options against a :class:`BulkConfig`,
picks a builder and returns the rows produced by RETURNING (if requested).
"""

import logging
import os
from typing import Any, Dict, List, Optional, Union

from ..errors import InvalidConfiguration
from .copy_builder import CopyBuilder
from .insert_builder import InsertBuilder
from .options import BulkConfig, BulkOptions, StatementBuilder
from .update_builder import UpdateBuilder

logger = logging.getLogger(__name__)

BUILDERS = {
    StatementBuilder.INSERT: InsertBuilder,
    StatementBuilder.UPDATE: UpdateBuilder,
    StatementBuilder.COPY: CopyBuilder,
}


class BulkTable:
    """
    Bulk writer bound to one table.

    Example
    -------
    ::

        db = bulkdata.connect('warehouse')
        schema = TableSchema.from_db(db.cursor(), 'employees')
        employees = BulkTable(db, schema)

        ids = employees.create_many(rows, returning=['id'], slice_size=500)
        employees.update_many({(('id', 1),): {'salary': 1200}})
        employees.copy_from('/data/employees.csv', file_format='csv', header=True)
    """

    def __init__(self, db, schema, config: Optional[BulkConfig] = None):
        """
        Args:
            db: Database connection
            schema: TableSchema of the target table
            config: Defaults for every call (default: ``BulkConfig()``)
        """
        self.db = db
        self.schema = schema
        self.config = config or BulkConfig()

    def __repr__(self) -> str:
        return f"BulkTable({self.schema.name})"

    def _run(self, builder_tag: str, batch, options: BulkOptions) -> List[Dict[str, Any]]:
        builder_cls = BUILDERS[builder_tag]
        with builder_cls(self.db, self.schema, self.config, options) as builder:
            return builder.build_and_execute(batch)

    def create_many(self, rows: Union[List[Dict[str, Any]], str, os.PathLike], **options) -> List[Dict[str, Any]]:
        """
        Insert many rows, or load a file when ``statement_builder='copy'``.

        Args:
            rows: Rows to insert (dicts of column -> value) or a file path for COPY
            **options: slice_size, check_consistency, returning, statement_builder
                and the COPY options (see :meth:`copy_from`)

        Returns:
            Rows produced by RETURNING, in statement order ([] when not requested)

        Raises:
            InconsistentBatch: Rows of one partition define different columns
            InvalidConfiguration: Invalid options
        """
        if not isinstance(rows, (str, bytes, os.PathLike)) and not rows:
            return []
        opts = BulkOptions.resolve(self.config, **options)
        if opts.statement_builder == StatementBuilder.UPDATE:
            raise InvalidConfiguration("create_many cannot use the update builder; call update_many")
        if opts.statement_builder == StatementBuilder.COPY:
            if not isinstance(rows, (str, os.PathLike)):
                raise InvalidConfiguration("The copy builder expects a file path")
            return self._run(StatementBuilder.COPY, rows, opts)
        if isinstance(rows, (str, bytes, os.PathLike)):
            raise InvalidConfiguration("The insert builder expects a sequence of rows")
        return self._run(StatementBuilder.INSERT, rows, opts)

    def update_many(self, rows, **options) -> List[Dict[str, Any]]:
        """
        Update many rows with one statement per slice.

        Args:
            rows: Merged rows, a list of (key_row, value_row) pairs or a dict
                keyed by tuples of (column, value) pairs
            **options: set_clause, join_predicate, constraint_predicate,
                slice_size, check_consistency, returning

        Returns:
            Rows produced by RETURNING, in statement order ([] when not requested)
        """
        if not rows:
            return []
        options.setdefault('statement_builder', StatementBuilder.UPDATE)
        opts = BulkOptions.resolve(self.config, **options)
        if opts.statement_builder != StatementBuilder.UPDATE:
            raise InvalidConfiguration(f"update_many cannot use the {opts.statement_builder} builder")
        return self._run(StatementBuilder.UPDATE, rows, opts)

    def copy_from(self, path: Union[str, os.PathLike], **options) -> List[Dict[str, Any]]:
        """
        Load a file with COPY inside a transaction.

        Args:
            path: CSV or TEXT file
            **options: file_format, column_names, delimiter, null, header,
                quote, escape, force_not_null, encoding, stdin

        Returns:
            Always [] (a missing file or a failed COPY is logged, not raised)
        """
        options['statement_builder'] = StatementBuilder.COPY
        opts = BulkOptions.resolve(self.config, **options)
        return self._run(StatementBuilder.COPY, path, opts)
