# bulkdata/database.py
"""
Database connection wrapper that provides a uniform interface
to different database adapters.
"""

import importlib
import importlib.util
import os
import logging
from typing import Any, List, Optional, Type, Union
from contextlib import contextmanager

from .cursors import Cursor, DictCursor
from .defaults import settings
from .quoting import quote_value

logger = logging.getLogger(__name__)

# users can define their own drivers in the config file
_user_drivers = {}


class CursorType:
    DICT = 'dict'
    LIST = 'list'

    @classmethod
    def values(cls):
        return [getattr(cls, attr) for attr in dir(cls) if not attr.startswith('_')]


DRIVERS = {
    'psycopg2': {
        'database_type': 'postgres',
        'priority': 11,
        'param_map': {'database': 'dbname'},
        'required_params': [{'host', 'database', 'user'}],
        'optional_params': {'port', 'password', 'sslmode', 'connect_timeout', 'application_name',
                            'client_encoding', 'options', 'sslcert', 'sslkey', 'sslrootcert'},
        'connection_method': 'connection_string',
        'default_port': 5432,
    },
    'psycopg': {  # psycopg3
        'database_type': 'postgres',
        'priority': 12,
        'param_map': {'database': 'dbname'},
        'required_params': [{'host', 'database', 'user'}],
        'optional_params': {'port', 'password', 'sslmode', 'connect_timeout', 'application_name',
                            'client_encoding', 'options', 'sslcert', 'sslkey', 'sslrootcert'},
        'connection_method': 'connection_string',
        'default_port': 5432,
    },
    'sqlite3': {
        'database_type': 'sqlite',
        'priority': 1,
        'param_map': {},
        'required_params': [{'database'}],
        'optional_params': {'timeout', 'detect_types', 'isolation_level', 'check_same_thread',
                            'cached_statements', 'uri'},
        'connection_method': 'kwargs'
    }
}


def register_user_drivers(drivers_config: dict) -> None:
    """Register drivers from config file."""
    _user_drivers.update(drivers_config)


def get_all_drivers() -> dict:
    """Get combined built-in and user drivers."""
    return {**DRIVERS, **_user_drivers}


def get_drivers_for_database(db_type: str, valid_only: bool = True) -> List[str]:
    """
    Get the drivers available for a database type, best first.

    Parameters:
        db_type (str): The type of database for which to retrieve drivers.
        valid_only (bool): Only include drivers that are importable (default True).

    Returns:
        List[str]: Driver names sorted by priority.
    """
    all_drivers = get_all_drivers()
    available_drivers = []

    for driver_name, info in all_drivers.items():
        if info['database_type'] != db_type:
            continue
        if valid_only and importlib.util.find_spec(info.get('module', driver_name)) is None:
            continue
        available_drivers.append(driver_name)

    def sort_key(driver_name):
        priority = all_drivers[driver_name]['priority']
        # User drivers get slight priority boost for tie-breaking
        if driver_name in _user_drivers:
            priority -= 0.5
        return priority

    available_drivers.sort(key=sort_key)
    return available_drivers


def get_params_for_database(db_type: str, driver: str = None) -> set:
    """Get all valid parameters for a database type from DRIVERS metadata."""
    valid_params = set()

    for driver_name, driver_info in get_all_drivers().items():
        if driver_info['database_type'] == db_type:
            if driver and driver_name != driver:
                continue
            for param_set in driver_info['required_params']:
                valid_params.update(param_set)
            valid_params.update(driver_info.get('optional_params', set()))

    return valid_params


def validate_connection_params(driver_name: str, **params) -> dict:
    """
    Validate connection parameters against driver requirements.

    Args:
        driver_name: Name of the database driver
        **params: Connection parameters

    Returns:
        Dict of validated parameters with extras removed and names mapped
        to what the driver expects

    Raises:
        ValueError: If the driver is unknown or required parameters are missing
    """
    all_drivers = get_all_drivers()
    if driver_name not in all_drivers:
        raise ValueError(f"Unknown driver: {driver_name}")

    driver_info = all_drivers[driver_name]

    if 'port' not in params:
        default_port = driver_info.get('default_port')
        if default_port:
            params['port'] = default_port

    if not any(required_set.issubset(params.keys()) for required_set in driver_info['required_params']):
        raise ValueError(f"Missing required parameters. Need one of: {driver_info['required_params']}")

    param_map = driver_info.get('param_map', {})
    all_valid_params = set()
    for req_set in driver_info['required_params']:
        all_valid_params.update(req_set)
    all_valid_params.update(driver_info.get('optional_params', set()))

    return {param_map.get(key, key): value
            for key, value in params.items()
            if key in all_valid_params and value is not None}


def get_connection_string(**kwargs) -> str:
    """ Get connection string from keyword arguments."""
    return " ".join([f"{key}={value}" for key, value in kwargs.items()])


class Database:
    """
    Database connection wrapper that provides uniform interface
    across different database adapters.

    Besides cursors and transactions, it provides the identity reservation
    the insert builder relies on (:meth:`reserve_ids`).
    """

    # Attributes stored locally, others delegated to _connection
    _local_attrs = [
        '_connection', 'server_type', 'database_name', 'interface',
        'name'
    ]

    CURSOR_TYPES = {
        CursorType.DICT: DictCursor,
        CursorType.LIST: Cursor
    }

    def __init__(self, connection, interface, database_name: Optional[str] = None):
        """
        Initialize Database wrapper.

        Args:
            connection: Underlying database connection object
            interface: Database adapter module (psycopg2, sqlite3, etc.)
            database_name: Name of the database
        """
        self._connection = connection
        self.interface = interface
        self.database_name = database_name
        self.name = None


        driver_info = get_all_drivers().get(interface.__name__)
        self.server_type = driver_info['database_type'] if driver_info else 'unknown'

    def __getattr__(self, key: str) -> Any:
        """Delegate attribute access to underlying connection."""
        return getattr(self._connection, key)

    def __setattr__(self, key: str, value: Any) -> None:
        """Set attributes locally or delegate to connection."""
        if key in self._local_attrs:
            self.__dict__[key] = value
        else:
            setattr(self._connection, key, value)

    def __str__(self) -> str:
        if self.database_name:
            return f'Database({self.database_name}:{self.server_type})'
        return f'Database({self.server_type})'

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def cursor(self, cursor_type: Union[str, Type] = None, **kwargs) -> Cursor:
        """
        Create a cursor of the specified type.

        Args:
            cursor_type: Type of cursor ('dict', 'list') or cursor class
            **kwargs: Additional arguments passed to cursor

        Examples:
            cursor = db.cursor()  # DictCursor by default
            cursor = db.cursor('list')
        """
        if cursor_type is None:
            cursor_type = settings.get('default_cursor_type', CursorType.DICT)
        if isinstance(cursor_type, str):
            if cursor_type not in CursorType.values():
                raise ValueError(
                    f"Invalid cursor type '{cursor_type}'. "
                    f"Must be one of: {CursorType.values()}"
                )
            cursor_class = self.CURSOR_TYPES[cursor_type]
        elif isinstance(cursor_type, type) and issubclass(cursor_type, Cursor):
            cursor_class = cursor_type
        else:
            raise ValueError(f"Invalid cursor type: {cursor_type}")

        return cursor_class(self, **kwargs)

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions.

        Example:
            with db.transaction():
                cursor = db.cursor()
                cursor.execute("COPY ...")
                # Auto-commit on success, rollback on exception
        """
        try:
            yield self
            self.commit()
        except Exception:
            self.rollback()
            raise

    def next_sequence_value(self, sequence_name: str) -> int:
        """
        Get the next value of a sequence.

        Used when the identity must be known before the INSERT, for example
        when the table is partitioned by id.
        """
        return self.reserve_ids(sequence_name, 1)[0]

    def reserve_ids(self, sequence_name: str, count: int) -> List[int]:
        """
        Reserve ``count`` values from a sequence in a single round trip.

        Args:
            sequence_name: Name of the sequence to draw from
            count: Number of values wanted

        Returns:
            The reserved values in ascending order

        Raises:
            NotImplementedError: If the server has no sequences
        """
        if count <= 0:
            return []
        if self.server_type != 'postgres':
            raise NotImplementedError(f"Sequence reservation is not supported for {self.server_type}")
        cursor = self.cursor(CursorType.LIST)
        cursor.execute(
            f"SELECT NEXTVAL({quote_value(sequence_name)}) FROM GENERATE_SERIES(1, {int(count)})"
        )
        ids = sorted(int(row[0]) for row in cursor.fetchall())
        logger.debug(f"Reserved {len(ids)} ids from {sequence_name}")
        return ids

    @classmethod
    def create(cls, db_type: str, driver: str = None, **kwargs) -> 'Database':
        """
        Factory method to create database connections.

        Args:
            db_type: Database type ('postgres', 'sqlite')
            driver: Specific driver to use, otherwise the best available one
            **kwargs: Connection parameters

        Returns:
            Database instance
        """
        all_drivers = get_all_drivers()
        db_driver = None
        driver_name = None
        if driver:
            if driver not in all_drivers:
                raise ValueError(f"Unknown driver: {driver}")
            if all_drivers[driver]['database_type'] != db_type:
                raise ValueError(f"Driver '{driver}' is not compatible with database type '{db_type}'")
            try:
                db_driver = importlib.import_module(all_drivers[driver].get('module', driver))
                driver_name = driver
            except ImportError:
                logger.warning(f"Driver '{driver}' not available, falling back to default")

        if db_driver is None:
            for candidate in get_drivers_for_database(db_type):
                try:
                    db_driver = importlib.import_module(all_drivers[candidate].get('module', candidate))
                    driver_name = candidate
                    break
                except ImportError:
                    pass

        if db_driver is None:
            raise ImportError(f"No database driver found for database type '{db_type}'")

        params = validate_connection_params(driver_name, **kwargs)
        if not params:
            raise ValueError("The connection parameters were not valid.")

        if all_drivers[driver_name]['connection_method'] == 'connection_string':
            connection = db_driver.connect(get_connection_string(**params))
        else:
            connection = db_driver.connect(**params)

        return cls(connection, db_driver, kwargs.get('database'))


def postgres(user: str, password: Optional[str] = None, database: str = 'postgres',
             host: str = 'localhost', port: int = 5432, driver: str = None, **kwargs) -> Database:
    """Create PostgreSQL connection."""
    return Database.create('postgres', user=user, password=password, database=database,
                           host=host, port=port, driver=driver, **kwargs)


def sqlite(database: str, **kwargs) -> Database:
    """Create SQLite connection."""
    import sqlite3

    connection = sqlite3.connect(database, **kwargs)
    return Database(connection, sqlite3, os.path.basename(database))
