# bulkdata/etl/fragments.py
"""
SQL fragments used to customize UPDATE statements.

The SET clause, the join predicate matching target rows to datatable rows and
the optional constraint predicate are fragment objects rendered once per
partition table:

- :class:`Assignments` renders ``col = datatable.col`` for each column
- :class:`ColumnMatch` renders ``table.col = datatable.col AND ...``
- :class:`Raw` is caller supplied SQL, used verbatim apart from the
  ``{table}`` and ``{datatable}`` tokens

Example
-------
::

    table.update_many(rows,
                      set_clause=Assignments(['salary']),
                      join_predicate=ColumnMatch(['company_id', 'id']),
                      constraint_predicate=Raw('{table}.salary <> {datatable}.salary'))
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Type

from ..errors import InvalidConfiguration
from ..utils import quote_identifier, validate_identifier

__all__ = ['SqlFragment', 'Raw', 'Assignments', 'ColumnMatch', 'as_fragment']


class SqlFragment(ABC):
    """A piece of SQL placed in a SET or WHERE position."""

    @abstractmethod
    def render(self, table: str, datatable: str) -> str:
        """Render for the given target table and values-table alias."""

    def validate(self, schema) -> None:
        """Check the fragment against the target schema. Raw SQL is not checked."""

    def __str__(self) -> str:
        return self.render('{table}', '{datatable}')


class Raw(SqlFragment):
    """Caller supplied SQL text."""

    def __init__(self, text: str):
        if not isinstance(text, str) or not text.strip():
            raise InvalidConfiguration(f"Raw fragment must be a non-empty string, got {text!r}")
        self.text = text.strip()

    def __repr__(self) -> str:
        return f"Raw({self.text!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Raw) and other.text == self.text

    def render(self, table: str, datatable: str) -> str:
        # str.format would choke on braces inside literals such as '{1,2}'
        return self.text.replace('{table}', table).replace('{datatable}', datatable)


class _ColumnFragment(SqlFragment):
    separator = ', '

    def __init__(self, columns: Iterable[str]):
        if isinstance(columns, str):
            columns = [columns]
        try:
            self.columns: List[str] = [validate_identifier(col) for col in columns]
        except ValueError as e:
            raise InvalidConfiguration(f"{self.__class__.__name__}: {e}") from e
        if not self.columns:
            raise InvalidConfiguration(f"{self.__class__.__name__} requires at least one column")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.columns!r})"

    def __eq__(self, other) -> bool:
        return type(other) is type(self) and other.columns == self.columns

    def validate(self, schema) -> None:
        unknown = [col for col in self.columns if schema.column(col) is None]
        if unknown:
            raise InvalidConfiguration(
                f"{self.__class__.__name__} references columns not in {schema.name}: {unknown}"
            )

    def render(self, table: str, datatable: str) -> str:
        return self.separator.join(self._render_column(quote_identifier(col), table, datatable)
                                   for col in self.columns)

    @abstractmethod
    def _render_column(self, column: str, table: str, datatable: str) -> str:
        pass


class Assignments(_ColumnFragment):
    """SET list copying each column from the datatable."""

    def _render_column(self, column: str, table: str, datatable: str) -> str:
        return f"{column} = {datatable}.{column}"


class ColumnMatch(_ColumnFragment):
    """Equality join between the target table and the datatable."""
    separator = ' AND '

    def _render_column(self, column: str, table: str, datatable: str) -> str:
        return f"{table}.{column} = {datatable}.{column}"


def as_fragment(value, default_cls: Type[_ColumnFragment], name: str = 'fragment') -> Optional[SqlFragment]:
    """
    Coerce an option value to a fragment.

    Strings become :class:`Raw`, lists of column names become ``default_cls``
    and fragments pass through.
    """
    if value is None or isinstance(value, SqlFragment):
        return value
    if isinstance(value, str):
        return Raw(value)
    if isinstance(value, (list, tuple)):
        return default_cls(value)
    raise InvalidConfiguration(f"{name}: unsupported fragment type {type(value).__name__}")
