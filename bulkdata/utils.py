# bulkdata/utils.py
"""
Identifier and batching helpers shared by the builders.
"""

import itertools
import re
from typing import Any, Dict, Iterable, List, Mapping, Union

RecordLike = Union[Dict[str, Any], Mapping]

# lower case names postgres and sqlite accept without quotes
_BARE_IDENTIFIER = re.compile(r'^[a-z_][a-z0-9_]*$')

# sequences that would end the identifier or the statement early
_FORBIDDEN_IN_IDENTIFIER = ['\x00', '\n', '\r', '"', ';', '\x1a', '--', '/*', '*/']


def validate_identifier(identifier: str, max_length: int = 64) -> str:
    """
    Check a table or column name before it is written into SQL.

    Dotted names are checked part by part. Mixed case and spaces inside the
    name are allowed, since :func:`quote_identifier` quotes them.

    Returns:
        The identifier unchanged

    Raises:
        ValueError: If the name is empty, too long, or could break out of quotes
    """
    if not isinstance(identifier, str):
        raise ValueError(f"Invalid identifier: must be a string, got {type(identifier).__name__}")
    if '.' in identifier:
        return '.'.join(validate_identifier(part, max_length) for part in identifier.split('.'))

    if not identifier:
        raise ValueError("Invalid identifier: cannot be empty")
    if len(identifier) > max_length:
        raise ValueError(f"Invalid identifier: exceeds max length of {max_length}")
    if not (identifier[0].isalpha() or identifier[0] == '_'):
        raise ValueError(f"Invalid identifier: must start with a letter: {identifier}")
    if identifier != identifier.strip(' '):
        raise ValueError(f"Invalid identifier: has leading/trailing spaces: {identifier}")
    for pattern in _FORBIDDEN_IN_IDENTIFIER:
        if pattern in identifier:
            raise ValueError(f"Invalid identifier: contains dangerous pattern '{pattern}': {identifier}")
    return identifier


def quote_identifier(identifier: str) -> str:
    """Double quote each part of a dotted name unless it is a bare lower case word."""
    return '.'.join(part if _BARE_IDENTIFIER.match(part) else f'"{part}"'
                    for part in identifier.split('.'))


def sanitize_identifier(name: str, idx: int = 0) -> str:
    """Turn a result column label into a lower case key, ``col_<n>`` when blank."""
    if not name:
        return f'col_{idx + 1}'
    sanitized = re.sub(r'[^a-z0-9_]+', '_', name.lower())
    if not sanitized[0].isalpha():
        sanitized = 'col_' + sanitized
    return sanitized.rstrip('_')


def batch_iterable(iterable: Iterable[Any], batch_size: int) -> Iterable[List[Any]]:
    """Yield lists of at most ``batch_size`` items."""
    iterator = iter(iterable)
    while batch := list(itertools.islice(iterator, batch_size)):
        yield batch
