# bulkdata/etl/batch.py
"""
Row batch handling shared by the insert and update builders:
normalization of update input, column consistency checks, partitioning
and slicing.
"""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from ..errors import InconsistentBatch, InvalidConfiguration
from ..utils import RecordLike, batch_iterable, quote_identifier

logger = logging.getLogger(__name__)

INSERT_PHASE = 'while attempting to build insert statement'
UPDATE_PHASE = 'while attempting to build update statement'


class UpdateBatch(NamedTuple):
    """Merged update rows plus the key/value columns of the first pair (pair input only)."""
    rows: List[Dict[str, Any]]
    key_columns: Optional[List[str]] = None
    value_columns: Optional[List[str]] = None


def _is_pair(item) -> bool:
    return (isinstance(item, (tuple, list)) and len(item) == 2
            and isinstance(item[0], Mapping) and isinstance(item[1], Mapping))


def normalize_update_rows(rows) -> UpdateBatch:
    """
    Normalize update input to merged rows.

    Accepts:
        - a sequence of rows: ``[{'id': 1, 'name': 'X'}, ...]``
        - a sequence of (key_row, value_row) pairs: ``[({'id': 1}, {'name': 'X'}), ...]``
        - a dict of key to value rows where the keys are tuples of (column, value)
          pairs: ``{(('id', 1),): {'name': 'X'}}``

    Pair input is merged as ``{**key_row, **value_row}`` in input order.
    """
    if isinstance(rows, Mapping):
        pairs = []
        for key, value in rows.items():
            try:
                key_row = dict(key)
            except (TypeError, ValueError) as e:
                raise InvalidConfiguration(
                    f"Update keys must be tuples of (column, value) pairs, got {key!r}"
                ) from e
            if not isinstance(value, Mapping):
                raise InvalidConfiguration(f"Update values must be mappings, got {type(value).__name__}")
            pairs.append((key_row, value))
    else:
        rows = list(rows)
        if not rows or not _is_pair(rows[0]):
            for row in rows:
                if not isinstance(row, Mapping):
                    raise InvalidConfiguration(
                        f"Update rows must be mappings or (key, value) pairs, got {type(row).__name__}"
                    )
            return UpdateBatch([dict(row) for row in rows])
        for item in rows:
            if not _is_pair(item):
                raise InvalidConfiguration("Cannot mix (key, value) pairs and plain rows in one update")
        pairs = rows

    merged = [{**key_row, **value_row} for key_row, value_row in pairs]
    if not pairs:
        return UpdateBatch(merged)
    first_key, first_value = pairs[0]
    return UpdateBatch(merged, list(first_key), list(first_value))


def check_consistency(table_name: str, rows: Sequence[RecordLike], while_doing: str) -> List[str]:
    """
    Verify every row defines the same set of columns as the first.

    Returns:
        The sorted column names of the first row

    Raises:
        InconsistentBatch: On the first row whose columns differ
    """
    expected = sorted(rows[0])
    for row in rows[1:]:
        found = sorted(row)
        if found != expected:
            raise InconsistentBatch(table_name, expected, found, while_doing)
    return expected


def partition_rows(schema, rows: Iterable[RecordLike]) -> List[Tuple[str, List[RecordLike]]]:
    """
    Group rows by destination table.

    Groups come out in order of first occurrence and keep the relative order
    of their rows. Unpartitioned tables yield a single group.
    """
    rows = list(rows)
    if not schema.partitioned:
        return [(schema.name, rows)] if rows else []
    groups: Dict[str, List[RecordLike]] = {}
    for row in rows:
        groups.setdefault(schema.table_name_for(row), []).append(row)
    logger.debug(f"Partitioned {len(rows)} rows of {schema.name} into {len(groups)} tables")
    return list(groups.items())


def slice_rows(rows: Sequence[RecordLike], slice_size: int) -> Iterator[List[RecordLike]]:
    """Yield consecutive slices of at most ``slice_size`` rows."""
    if isinstance(slice_size, bool) or not isinstance(slice_size, int) or slice_size <= 0:
        raise InvalidConfiguration(f"slice_size must be a positive integer, got {slice_size!r}")
    return batch_iterable(rows, slice_size)


def returning_clause(returning, table_name: Optional[str] = None) -> str:
    """
    RETURNING clause for a statement, or '' when nothing is requested.

    A list of columns is qualified with ``table_name`` when given; strings are
    used as-is.
    """
    if not returning:
        return ''
    if isinstance(returning, str):
        return f" RETURNING {returning}"
    if table_name:
        prefix = quote_identifier(table_name) + '.'
    else:
        prefix = ''
    return " RETURNING " + ', '.join(prefix + quote_identifier(col) for col in returning)
