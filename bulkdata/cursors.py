# bulkdata/cursors.py
"""
Cursor wrappers used by the builders and by schema introspection.

Both cursors delegate to the driver cursor stored in _cursor, so driver
extensions such as psycopg2's ``copy_expert`` remain available.
"""

import logging
from typing import Any, List, Optional

from .utils import sanitize_identifier
from .defaults import settings

logger = logging.getLogger(__name__)
__all__ = ['Cursor', 'DictCursor', 'ColumnCase']


class ColumnCase:
    """
    Column name case of result rows.

    - UPPER: USER_ID
    - LOWER: user_id [default]
    - PRESERVE: as reported by the database
    """
    UPPER = 'upper'
    LOWER = 'lower'
    PRESERVE = 'preserve'
    DEFAULT = LOWER

    @classmethod
    def values(cls):
        return [getattr(cls, attr) for attr in dir(cls) if not attr.startswith('_')]


class Cursor:
    """
    Cursor returning result rows as lists.

    Attributes
    ----------
    connection : Database
        The database connection this cursor belongs to
    column_case : str
        Case applied to column names ('lower', 'upper' or 'preserve')
    """
    _local_attrs = ['connection', 'column_case', 'record_factory', '_cursor']

    def __init__(self, connection, column_case: Optional[str] = None, **kwargs):
        self.connection = connection
        self.record_factory = None
        if column_case is None:
            column_case = settings.get('default_column_case', ColumnCase.DEFAULT)
        self.column_case = column_case
        try:
            self._cursor = connection._connection.cursor(**kwargs)
        except AttributeError as e:
            raise TypeError(f'First argument must be a Database: {e}')

    def __getattr__(self, key: str) -> Any:
        """Delegate attribute access to the driver cursor."""
        return getattr(self._cursor, key)

    def __setattr__(self, key: str, value: Any) -> None:
        if key in self._local_attrs:
            self.__dict__[key] = value
        else:
            setattr(self._cursor, key, value)

    def _create_record_factory(self) -> None:
        def factory(*args):
            return list(args)

        self.record_factory = factory

    def columns(self) -> List[str]:
        """Column names of the current result set, in ``column_case``."""
        if not self._cursor.description:
            return []
        names = [c[0] for c in self._cursor.description]
        if self.column_case == ColumnCase.PRESERVE:
            return names
        if self.column_case == ColumnCase.UPPER:
            return [name.upper() for name in names]
        return [sanitize_identifier(name, i) for i, name in enumerate(names)]

    @property
    def has_results(self) -> bool:
        """True when the last statement produced a result set (SELECT or RETURNING)."""
        return self._cursor.description is not None

    def execute(self, query: str, bind_vars=()) -> None:
        """Execute a statement; literal SQL goes alone so drivers do not read % as a placeholder."""
        self.record_factory = None
        if bind_vars:
            self._cursor.execute(query, bind_vars)
        else:
            self._cursor.execute(query)

    def fetchall(self) -> List[Any]:
        """Fetch all remaining rows."""
        if not self.has_results:
            raise RuntimeError('Statement has not been run or produced no result set.')
        if self.record_factory is None:
            self._create_record_factory()
        return [self.record_factory(*row) for row in self._cursor.fetchall()]


class DictCursor(Cursor):
    """Cursor returning dict rows keyed by column name."""

    def _create_record_factory(self) -> None:
        columns = self.columns()

        def factory(*args):
            return dict(zip(columns, args))

        self.record_factory = factory
