"""
Flat feed parser.

GTFS text files are comma-delimited with a header row. This is a simplified
reader: a quote character toggles an "inside quotes" state in which the
delimiter is literal text, and quote characters are dropped. Doubled-quote
escapes ("") are not interpreted.
"""

import logging
from typing import Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)


def parse_line(line: str, delimiter: str = ',', quote: str = '"') -> List[str]:
    """Split one delimited line into its raw field values."""
    fields = []
    current = []
    in_quotes = False

    for char in line:
        if char == quote:
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            fields.append(''.join(current))
            current = []
        else:
            current.append(char)
    fields.append(''.join(current))

    return fields


def header_indexes(header: List[str]) -> Dict[str, int]:
    """Map column name -> position. First occurrence wins on duplicate names."""
    indexes = {}
    for position, name in enumerate(header):
        name = name.strip()
        if name not in indexes:
            indexes[name] = position
    return indexes


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def read_feed(path: str, columns: Optional[List[str]] = None) -> Iterator[Dict[str, Optional[str]]]:
    """
    Stream the data rows of a feed file as dictionaries.

    Args:
        path: Feed file path
        columns: Column names to extract (default: every header column).
            Columns absent from the header are omitted from the rows.

    Yields:
        One {column: value} dict per non-blank data row. Values are trimmed;
        empty values and fields missing from short rows are None.
    """
    with open(path, 'r', encoding='utf-8-sig', errors='replace', newline='') as handle:
        header_line = handle.readline()
        if not header_line.strip():
            logger.warning(f"Feed file {path} has no header")
            return

        indexes = header_indexes(parse_line(header_line.rstrip('\r\n')))
        if columns is not None:
            indexes = {name: indexes[name] for name in columns if name in indexes}

        for line in handle:
            line = line.strip()
            if not line:
                continue

            fields = parse_line(line)
            yield {
                name: _clean(fields[index]) if index < len(fields) else None
                for name, index in indexes.items()
            }


def read_header(path: str) -> List[str]:
    """Return the trimmed column names of a feed file."""
    with open(path, 'r', encoding='utf-8-sig', errors='replace', newline='') as handle:
        header_line = handle.readline().rstrip('\r\n')
    if not header_line.strip():
        return []
    return [name.strip() for name in parse_line(header_line)]
