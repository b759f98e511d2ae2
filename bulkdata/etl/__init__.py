"""
Bulk write operations and their building blocks.

- BulkTable: create_many, update_many and copy_from for one table
- InsertBuilder / UpdateBuilder / CopyBuilder: the statement builders
- BulkConfig / BulkOptions: defaults and per-call options
- Assignments / ColumnMatch / Raw: SET and WHERE fragments for updates

Example
-------
::

    from bulkdata.etl import BulkTable, Raw

    employees = BulkTable(db, schema)
    employees.create_many(rows, returning=['id'])
    employees.update_many(rows, constraint_predicate=Raw('{table}.active'))
"""

from .bulk import BulkTable, BUILDERS
from .insert_builder import InsertBuilder
from .update_builder import UpdateBuilder
from .copy_builder import CopyBuilder
from .options import BulkConfig, BulkOptions, StatementBuilder, FileFormat
from .fragments import SqlFragment, Raw, Assignments, ColumnMatch

__all__ = ['BulkTable', 'BUILDERS', 'InsertBuilder', 'UpdateBuilder', 'CopyBuilder',
           'BulkConfig', 'BulkOptions', 'StatementBuilder', 'FileFormat',
           'SqlFragment', 'Raw', 'Assignments', 'ColumnMatch']
