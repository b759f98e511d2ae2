# bulkdata/errors.py
"""
Exceptions raised by the bulk write builders.

Driver errors (constraint violations, type mismatches, malformed raw SQL
fragments) are never wrapped; they reach the caller as the driver's own
``DatabaseError`` subclasses.
"""

from typing import Iterable


class BulkDataError(Exception):
    """Base class for bulkdata errors."""


class InconsistentBatch(BulkDataError):
    """
    Rows in a single create_many/update_many call do not define the same columns.

    Raised by the consistency check before any statement for the offending
    partition is executed. Disable the check with ``check_consistency=False``
    to push the batch through as-is.
    """

    def __init__(self, table_name: str, expected_columns: Iterable[str],
                 found_columns: Iterable[str], while_doing: str):
        self.table_name = table_name
        self.expected_columns = list(expected_columns)
        self.found_columns = list(found_columns)
        self.while_doing = while_doing
        super().__init__(
            f"for table: {table_name}; {self.expected_columns} != {self.found_columns}; {while_doing}"
        )


class InvalidConfiguration(BulkDataError, ValueError):
    """An option or configuration value has the wrong shape or an illegal value."""
