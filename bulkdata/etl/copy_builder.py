# bulkdata/etl/copy_builder.py
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Union

from ..quoting import quote_string
from ..utils import quote_identifier
from .base_builder import BaseBuilder
from .options import FileFormat

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 64 * 1024


class CopyBuilder(BaseBuilder):
    """
    Native PostgreSQL bulk load of a CSV or TEXT file with COPY.

    By default the server reads the file itself, so the path must be visible
    to the database server::

        COPY employees (name, salary) FROM '/data/employees.csv'
        WITH (FORMAT csv, HEADER true, DELIMITER ',')

    With ``stdin=True`` the file is streamed from the client instead
    (``copy_expert`` on psycopg2, ``cursor.copy()`` on psycopg 3).

    A missing or unreadable file or a failed COPY is logged and reported as
    an empty result.
    """
    operation = 'copy'

    def copy_columns(self) -> List[str]:
        if self.options.column_names:
            return list(self.options.column_names)
        return [col for col in self.schema.column_names if col != self.schema.identity]

    def copy_options(self) -> str:
        fmt = FileFormat.normalize(self.options.file_format)
        opts = [f"FORMAT {fmt.lower()}"]
        csv_only = {
            'header': self.options.header,
            'quote': self.options.quote,
            'escape': self.options.escape,
            'force_not_null': self.options.force_not_null,
        }
        if fmt == FileFormat.CSV:
            if self.options.header:
                opts.append('HEADER true')
            if self.options.quote:
                opts.append(f"QUOTE {quote_string(self.options.quote)}")
            if self.options.escape:
                opts.append(f"ESCAPE {quote_string(self.options.escape)}")
            if self.options.force_not_null:
                opts.append(f"FORCE_NOT_NULL ({self.column_list(self.options.force_not_null)})")
        else:
            ignored = [name for name, value in csv_only.items() if value]
            if ignored:
                logger.warning(f"COPY options {ignored} only apply to CSV files; ignored for {fmt}")
        if self.options.delimiter:
            opts.append(f"DELIMITER {quote_string(self.options.delimiter)}")
        if self.options.null is not None:
            opts.append(f"NULL {quote_string(self.options.null)}")
        if self.options.encoding:
            opts.append(f"ENCODING {quote_string(self.options.encoding)}")
        return ', '.join(opts)

    def build_statement(self, path: Path) -> str:
        source = 'STDIN' if self.options.stdin else quote_string(str(path))
        return (f"COPY {quote_identifier(self.schema.name)} ({self.column_list(self.copy_columns())}) "
                f"FROM {source} WITH ({self.copy_options()})")

    def _copy_from_client(self, sql: str, path: Path) -> None:
        driver = self.db.interface.__name__
        with open(path, 'rb') as fp:
            if driver == 'psycopg2':
                self.cursor.copy_expert(sql, fp, size=COPY_CHUNK_SIZE)
            elif driver == 'psycopg':
                with self.cursor.copy(sql) as copy:
                    while data := fp.read(COPY_CHUNK_SIZE):
                        copy.write(data)
            else:
                raise NotImplementedError(f"COPY FROM STDIN is not supported by driver {driver}")

    def build_and_execute(self, path: Union[str, os.PathLike]) -> List[Dict[str, Any]]:
        path = Path(path)
        if not path.is_file():
            logger.warning(f"COPY source {path} does not exist; nothing loaded into {self.schema.name}")
            return []
        if self.server_type != 'postgres':
            raise NotImplementedError(f"COPY is not supported for {self.server_type}")

        sql = self.build_statement(path.resolve())
        logger.debug(f"COPY {self.schema.name}:\n{sql}")
        try:
            with self.db.transaction():
                if self.options.stdin:
                    self._copy_from_client(sql, path)
                else:
                    self.cursor.execute(sql)
        except (self.db.interface.DatabaseError, OSError) as e:
            logger.error(f"COPY into {self.schema.name} from {path} failed: {e}")
            return []

        self.statements_executed += 1
        rowcount = self.cursor.rowcount
        if rowcount is not None and rowcount > 0:
            self.rows_processed += rowcount
        logger.info(f"Copied {self.rows_processed:,} rows from {path} into {self.schema.name}")
        return []
