# bulkdata/etl/options.py
"""
Configuration for bulk writes.

:class:`BulkConfig` holds the process defaults and is built once, usually from
the ``settings`` section of bulkdata.yml (see :func:`bulkdata.config.get_bulk_config`).
:class:`BulkOptions` holds the options of a single call, resolved against a
config so the builders never consult global state.
"""

import datetime as dt
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from ..defaults import settings
from ..errors import InvalidConfiguration
from ..utils import validate_identifier
from .fragments import SqlFragment

logger = logging.getLogger(__name__)


class StatementBuilder:
    """
    Statement builders selectable with the ``statement_builder`` option.

    - INSERT: multi-row INSERT ... VALUES
    - UPDATE: UPDATE ... FROM (SELECT ... UNION SELECT ...) AS datatable
    - COPY: PostgreSQL COPY from a file
    """
    INSERT = 'insert'
    UPDATE = 'update'
    COPY = 'copy'

    @classmethod
    def values(cls):
        return [getattr(cls, attr) for attr in dir(cls) if not attr.startswith('_') and attr.isupper()]

    @classmethod
    def validate(cls, value: str) -> str:
        tag = str(value).lower()
        if tag not in cls.values():
            raise InvalidConfiguration(
                f"Invalid statement builder '{value}'. Must be one of: {cls.values()}"
            )
        return tag


class FileFormat:
    CSV = 'CSV'
    TEXT = 'TEXT'

    @classmethod
    def values(cls):
        return [getattr(cls, attr) for attr in dir(cls) if not attr.startswith('_') and attr.isupper()]

    @classmethod
    def normalize(cls, value: Optional[str]) -> str:
        """Upper-cased format name; anything unrecognized falls back to TEXT."""
        fmt = str(value or '').upper()
        if fmt not in cls.values():
            if value:
                logger.warning(f"Unrecognized file format '{value}', using {cls.TEXT}")
            return cls.TEXT
        return fmt


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _validate_slice_size(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidConfiguration(f"slice_size must be a positive integer, got {value!r}")
    return value


def _validate_returning(value):
    if value is None:
        return None
    if isinstance(value, str):
        if not value.strip():
            raise InvalidConfiguration("returning cannot be an empty string")
        return value
    if isinstance(value, (list, tuple)):
        if not value:
            raise InvalidConfiguration("returning list cannot be empty")
        try:
            return [validate_identifier(col) for col in value]
        except ValueError as e:
            raise InvalidConfiguration(f"Invalid returning column: {e}") from e
    raise InvalidConfiguration(
        f"returning must be None, a string or a list of column names, got {type(value).__name__}"
    )


@dataclass
class BulkConfig:
    """
    Defaults applied to every bulk call.

    Attributes:
        slice_size: Maximum rows per generated statement
        check_consistency: Verify every row of a partition defines the same columns
        returning: Default RETURNING projection
        file_format: Default COPY format (CSV or TEXT)
        statement_builder: Builder used by create_many ('insert' or 'copy')
        timestamp_columns: Columns filled with the call time on insert when missing
        datatable_alias: Alias of the values-table in UPDATE statements
        clock: Zero argument callable returning the current time
    """
    slice_size: int = 1000
    check_consistency: bool = True
    returning: Any = None
    file_format: str = FileFormat.TEXT
    statement_builder: str = StatementBuilder.INSERT
    timestamp_columns: Sequence[str] = ('created_at', 'updated_at')
    datatable_alias: str = 'datatable'
    clock: Callable[[], Any] = utc_now

    def __post_init__(self):
        self.slice_size = _validate_slice_size(self.slice_size)
        self.returning = _validate_returning(self.returning)
        self.statement_builder = StatementBuilder.validate(self.statement_builder)
        self.file_format = FileFormat.normalize(self.file_format)
        self.timestamp_columns = tuple(self.timestamp_columns or ())
        try:
            validate_identifier(self.datatable_alias)
        except ValueError as e:
            raise InvalidConfiguration(f"Invalid datatable alias: {e}") from e
        if not callable(self.clock):
            raise InvalidConfiguration("clock must be callable")

    @classmethod
    def from_settings(cls, values: Optional[Mapping[str, Any]] = None, **overrides) -> 'BulkConfig':
        """
        Build a config from a settings mapping (defaults to the built-in settings).

        Example
        -------
        ::

            config = BulkConfig.from_settings({'default_slice_size': 500})
        """
        if values is None:
            values = settings
        kwargs = {
            'slice_size': values.get('default_slice_size', 1000),
            'check_consistency': values.get('check_consistency', True),
            'returning': values.get('returning'),
            'file_format': values.get('file_format', FileFormat.TEXT),
            'statement_builder': values.get('statement_builder', StatementBuilder.INSERT),
            'timestamp_columns': values.get('timestamp_columns', ('created_at', 'updated_at')),
            'datatable_alias': values.get('datatable_alias', 'datatable'),
        }
        kwargs.update(overrides)
        return cls(**kwargs)


FragmentLike = Union[str, Sequence[str], SqlFragment, None]


@dataclass
class BulkOptions:
    """
    Options of one create_many / update_many / copy_from call.

    Unset values (None) fall back to the :class:`BulkConfig` in :meth:`resolve`.
    """
    slice_size: Optional[int] = None
    check_consistency: Optional[bool] = None
    returning: Any = None
    statement_builder: Optional[str] = None
    # update
    set_clause: FragmentLike = None
    join_predicate: FragmentLike = None
    constraint_predicate: FragmentLike = None
    # copy
    file_format: Optional[str] = None
    column_names: Optional[List[str]] = None
    delimiter: Optional[str] = None
    null: Optional[str] = None
    header: Optional[bool] = None
    quote: Optional[str] = None
    escape: Optional[str] = None
    force_not_null: Optional[List[str]] = None
    encoding: Optional[str] = None
    stdin: bool = False

    # alternate spellings accepted as keyword options
    ALIASES = {
        'batch_size': 'slice_size',
        'null_token': 'null',
        'quote_char': 'quote',
        'escape_char': 'escape',
        'force_not_null_columns': 'force_not_null',
        'where_constraint': 'constraint_predicate',
        'where_datatable': 'join_predicate',
        'set_array': 'set_clause',
    }

    @classmethod
    def resolve(cls, config: BulkConfig, **options) -> 'BulkOptions':
        """
        Merge keyword options with the config defaults and validate the result.

        Raises:
            InvalidConfiguration: For unknown options or invalid values
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in options.items():
            name = cls.ALIASES.get(key, key)
            if name not in known:
                raise InvalidConfiguration(f"Unknown bulk option: {key}")
            kwargs[name] = value

        opts = cls(**kwargs)
        if opts.slice_size is None:
            opts.slice_size = config.slice_size
        if opts.check_consistency is None:
            opts.check_consistency = config.check_consistency
        if opts.returning is None:
            opts.returning = config.returning
        if opts.statement_builder is None:
            opts.statement_builder = config.statement_builder
        opts.file_format = FileFormat.normalize(opts.file_format or config.file_format)
        opts.validate()
        return opts

    def validate(self) -> None:
        self.slice_size = _validate_slice_size(self.slice_size)
        self.returning = _validate_returning(self.returning)
        self.statement_builder = StatementBuilder.validate(self.statement_builder)
        self.check_consistency = bool(self.check_consistency)
        for name in ('set_clause', 'join_predicate', 'constraint_predicate'):
            value = getattr(self, name)
            if value is None or isinstance(value, (str, SqlFragment)):
                continue
            if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
                continue
            raise InvalidConfiguration(
                f"{name} must be a string, a list of column names or a SqlFragment, "
                f"got {type(value).__name__}"
            )
        for name in ('column_names', 'force_not_null'):
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, str):
                value = [value]
            try:
                setattr(self, name, [validate_identifier(col) for col in value])
            except (TypeError, ValueError) as e:
                raise InvalidConfiguration(f"Invalid {name}: {e}") from e
        for name in ('delimiter', 'quote', 'escape'):
            value = getattr(self, name)
            if value is not None and (not isinstance(value, str) or len(value) != 1):
                raise InvalidConfiguration(f"{name} must be a single character, got {value!r}")
