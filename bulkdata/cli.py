# bulkdata/cli.py

import argparse
import importlib.util
import sys
from importlib import metadata

from . import config
from .database import get_all_drivers
from .etl import BulkTable
from .logging_utils import errors_logged, setup_logging
from .schema import TableSchema


def _name_cleanup(name):
    """Cleanup module names for search and display"""
    return name.lower().replace('-', '_')


def checkup():
    """Show installed database drivers and config health."""
    installed = {_name_cleanup(d.metadata['Name']): d.version for d in metadata.distributions()}

    print("DB Drivers           Priority* Status   Version")
    print("-" * 56)
    by_type = {}
    for name, info in get_all_drivers().items():
        by_type.setdefault(info['database_type'], []).append((info['priority'], name, info))

    for db_type in sorted(by_type):
        print(f"{db_type}")
        for pri, name, info in sorted(by_type[db_type], key=lambda x: x[0]):
            module_name = info.get('module', name)
            status = "✓" if importlib.util.find_spec(module_name) else "✗"
            version = installed.get(_name_cleanup(module_name), '--')
            print(f"  {name:<18} {pri:<9} {status:<8} {version}")

    print("\n* Lower priority = preferred")

    print("\nConfig Health")
    print("-" * 40)
    for status, msg in config.diagnose_config():
        print(f"{status} {msg}")


def copy_file(args) -> int:
    """Load a file into a table with COPY. Returns a process exit code."""
    if args.config:
        config.set_config_file(args.config)
    setup_logging('bulkdata_copy', level=args.log_level, console=True)

    options = {
        'file_format': args.format,
        'header': args.header or None,
        'delimiter': args.delimiter,
        'null': args.null,
        'quote': args.quote,
        'escape': args.escape,
        'force_not_null': args.force_not_null,
        'encoding': args.encoding,
        'column_names': args.columns,
        'stdin': args.stdin,
    }
    with config.connect(args.connection) as db:
        schema = TableSchema.from_db(db.cursor(), args.table)
        table = BulkTable(db, schema, config.get_bulk_config())
        table.copy_from(args.path, **{key: val for key, val in options.items() if val is not None})

    error_log = errors_logged()
    if error_log:
        print(f"COPY failed, see {error_log}", file=sys.stderr)
        return 1
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(prog='bulkdata', description='bulkdata command-line utilities')
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('checkup', help='Check database drivers and configuration')

    subparsers.add_parser('generate-key', help='Generate encryption key')

    pwd_parser = subparsers.add_parser('encrypt-password', help='Encrypt a password')
    pwd_parser.add_argument('password', nargs='?', help='Password to encrypt')

    copy_parser = subparsers.add_parser('copy', help='Load a CSV or TEXT file into a table with COPY')
    copy_parser.add_argument('connection', help='Connection name from bulkdata.yml')
    copy_parser.add_argument('table', help='Target table (schema.table allowed)')
    copy_parser.add_argument('path', help='File to load')
    copy_parser.add_argument('--config', help='Config file path')
    copy_parser.add_argument('--format', choices=['csv', 'text'], type=str.lower, help='File format (default TEXT)')
    copy_parser.add_argument('--header', action='store_true', help='Skip the header line (CSV)')
    copy_parser.add_argument('--delimiter', help='Column delimiter')
    copy_parser.add_argument('--null', help='String representing NULL')
    copy_parser.add_argument('--quote', help='Quote character (CSV)')
    copy_parser.add_argument('--escape', help='Escape character (CSV)')
    copy_parser.add_argument('--force-not-null', nargs='+', metavar='COLUMN',
                             help='Columns never matched against the NULL string (CSV)')
    copy_parser.add_argument('--encoding', help='File encoding')
    copy_parser.add_argument('--columns', nargs='+', metavar='COLUMN', help='Columns in file order')
    copy_parser.add_argument('--stdin', action='store_true',
                             help='Stream the file from this machine instead of reading it on the server')
    copy_parser.add_argument('--log-level', default='INFO', help='Logging level')

    args = parser.parse_args(argv)

    if args.command == 'checkup':
        checkup()
        return 0
    elif args.command == 'generate-key':
        key = config.generate_encryption_key()
        print(key)
        print(f"Store the key in the {config.ENCRYPTION_KEY_VAR} environment variable", file=sys.stderr)
        return 0
    elif args.command == 'encrypt-password':
        encrypted = config.encrypt_password(args.password)
        print(encrypted)
        return 0
    elif args.command == 'copy':
        return copy_file(args)


if __name__ == '__main__':
    sys.exit(main())
