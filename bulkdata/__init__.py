"""
bulkdata - bulk writes for relational tables

Turns large batches of rows into as few SQL statements as possible:
- create_many: multi-row INSERT with batch identity reservation, timestamp
  defaults, partition routing and RETURNING
- update_many: one UPDATE ... FROM (SELECT ... UNION SELECT ...) per slice
- copy_from: PostgreSQL COPY of a CSV or TEXT file
- YAML-based configuration with password encryption

Basic usage::

    import bulkdata
    from bulkdata import BulkTable, TableSchema

    with bulkdata.connect('warehouse') as db:
        schema = TableSchema.from_db(db.cursor(), 'employees')
        employees = BulkTable(db, schema, bulkdata.get_bulk_config())
        ids = employees.create_many(rows, returning=['id'])
        db.commit()
"""

__version__ = '0.1.0'

from .database import Database
from .config import connect, set_config_file, get_bulk_config
from .cursors import Cursor, DictCursor
from .errors import BulkDataError, InconsistentBatch, InvalidConfiguration
from .schema import Column, TableSchema
from .etl import BulkTable, BulkConfig, BulkOptions, StatementBuilder, Raw, Assignments, ColumnMatch
from .logging_utils import setup_logging, errors_logged, cleanup_old_logs

__all__ = [
    'connect',
    'config',
    'set_config_file',
    'get_bulk_config',
    'Database',
    'Cursor',
    'DictCursor',
    'BulkDataError',
    'InconsistentBatch',
    'InvalidConfiguration',
    'Column',
    'TableSchema',
    'BulkTable',
    'BulkConfig',
    'BulkOptions',
    'StatementBuilder',
    'Raw',
    'Assignments',
    'ColumnMatch',
    'etl',
    'setup_logging',
    'errors_logged',
    'cleanup_old_logs'
]
