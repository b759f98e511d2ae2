# bulkdata/defaults.py
"""Default settings - no imports to avoid circular dependencies."""

settings = {
    'default_slice_size': 1000,
    'check_consistency': True,
    'returning': None,
    'file_format': 'TEXT',
    'statement_builder': 'insert',
    'timestamp_columns': ['created_at', 'updated_at'],
    'datatable_alias': 'datatable',
    'default_cursor_type': 'dict',
    'default_column_case': 'lower',
    'default_db_type': 'postgres',
    'logging': {
        'directory': './logs',
        'level': 'INFO',
        'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        'timestamp_format': '%Y-%m-%d %H:%M:%S',
        'filename_format': '%Y%m%d_%H%M%S',  # Set to '' for single log file (no timestamp)
        'split_errors': True,
        'console': True,
        'retention_days': 30,
    }
}
