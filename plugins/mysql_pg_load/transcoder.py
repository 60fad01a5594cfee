"""
Dump Transcoding Module

Converts between the MySQL tab-delimited dump format (``SELECT ... INTO
OUTFILE`` / ``mysqldump --tab``) and the PostgreSQL text COPY format.

Forward direction (load): a single pass over the dump, one physical line
at a time:
1. Line-continuation folding: the dump writes an embedded newline as a
   backslash at the end of a physical line. A line ending in an odd number
   of backslashes is joined to the next one with a ``\\n`` escape.
2. Carriage-return escaping: a literal CR becomes ``\\r``.
3. Zero-date normalization: ``0000-00-00`` (optionally ``00:00:00``) in a
   field of its own becomes the NULL marker ``\\N``.

Inverse direction (export): each COPY TO line is decoded field by field
and re-encoded with the dump's escaping so it can be compared with the
source file. Boolean ``t``/``f`` tokens can be rewritten to ``1``/``0``.

A tab inside a dump value is written as a backslash followed by the tab,
so dump fields are split only on unescaped tabs.

Nothing here reads a whole file; every function works on lines.
"""

from typing import Dict, Iterable, Iterator, List, Optional
from io import TextIOBase
import logging
import re

logger = logging.getLogger(__name__)

NULL_MARKER = '\\N'

# Zero date or datetime filling a whole field, optionally with a zero fraction
ZERO_DATE_PATTERN = re.compile(r'0000-00-00(?: 00:00:00(?:\.0+)?)?')

BOOLEAN_TOKENS = {'t': '1', 'f': '0'}

_ESCAPE_PATTERN = re.compile(r'\\(.)', re.DOTALL)

_COPY_DECODE = {
    'b': '\b',
    'f': '\f',
    'n': '\n',
    'r': '\r',
    't': '\t',
    'v': '\v',
    '\\': '\\',
}

_DUMP_DECODE = {
    '0': '\0',
    'b': '\b',
    'n': '\n',
    '\n': '\n',
    'r': '\r',
    't': '\t',
    'Z': '\x1a',
    '\\': '\\',
}

_DUMP_ENCODE = str.maketrans({
    '\\': '\\\\',
    '\0': '\\0',
    '\n': '\\\n',
    '\t': '\\\t',
})


def _trailing_backslashes(text: str) -> int:
    return len(text) - len(text.rstrip('\\'))


def _strip_newline(line: str) -> str:
    return line[:-1] if line.endswith('\n') else line


def is_continued(line: str) -> bool:
    """
    Return True if a physical dump line continues on the next line.

    Only an odd number of trailing backslashes is an escaped newline; an
    even number is a run of escaped literal backslashes.

    Examples:
        >>> is_continued('a\\\\')
        True
        >>> is_continued('a\\\\\\\\')
        False
    """
    return _trailing_backslashes(_strip_newline(line)) % 2 == 1


def split_fields(line: str) -> List[str]:
    """
    Split a dump line on its field separators.

    A tab preceded by a backslash is part of the value, not a separator.

    Examples:
        >>> split_fields('1\\ta\\\\\\tb')
        ['1', 'a\\\\\\tb']
    """
    fields = []
    start = 0
    position = 0
    while position < len(line):
        char = line[position]
        if char == '\\':
            position += 2
            continue
        if char == '\t':
            fields.append(line[start:position])
            start = position + 1
        position += 1
    fields.append(line[start:])
    return fields


def normalize_zero_dates(line: str) -> str:
    """Replace MySQL zero dates that fill a whole field with the NULL marker."""
    return '\t'.join(
        NULL_MARKER if ZERO_DATE_PATTERN.fullmatch(field) else field
        for field in split_fields(line)
    )


def _transcode_row(row: str) -> str:
    row = row.replace('\r', '\\r')
    return normalize_zero_dates(row) + '\n'


def transcode_lines(lines: Iterable[str]) -> Iterator[str]:
    """
    Transcode physical dump lines into COPY text rows.

    Args:
        lines: Physical lines of a dump file, opened with ``newline='\\n'``
            so carriage returns stay inside their line

    Yields:
        One newline-terminated COPY row per logical dump row
    """
    pending: List[str] = []
    for line in lines:
        line = _strip_newline(line)
        if is_continued(line):
            pending.append(line[:-1])
            pending.append('\\n')
            continue
        pending.append(line)
        yield _transcode_row(''.join(pending))
        pending = []

    # File ended inside a continuation
    if pending:
        yield _transcode_row(''.join(pending))


def iter_logical_rows(lines: Iterable[str]) -> Iterator[str]:
    """
    Group physical dump lines into logical rows, keeping the dump escaping.

    Continuation lines stay joined with their backslash-newline so the
    row's bytes are unchanged; the row terminator itself is removed.
    """
    pending: List[str] = []
    for line in lines:
        line = _strip_newline(line)
        if is_continued(line):
            pending.append(line + '\n')
            continue
        pending.append(line)
        yield ''.join(pending)
        pending = []

    if pending:
        yield ''.join(pending)


def unescape_copy_value(text: str) -> str:
    """Decode a PostgreSQL text COPY field into its raw value."""
    return _ESCAPE_PATTERN.sub(lambda m: _COPY_DECODE.get(m.group(1), m.group(1)), text)


def escape_dump_value(value: str) -> str:
    """Encode a raw value the way the MySQL dump writes it."""
    return value.translate(_DUMP_ENCODE)


def unescape_dump_value(text: str) -> str:
    """Decode a MySQL dump field into its raw value."""
    return _ESCAPE_PATTERN.sub(lambda m: _DUMP_DECODE.get(m.group(1), m.group(1)), text)


def rewrite_boolean_tokens(line: str) -> str:
    """
    Rewrite bare ``t``/``f`` fields of a dump line to ``1``/``0``.

    Only whole fields are rewritten, so text containing a ``t`` is left
    alone. The rewrite does not know column types: a text column holding
    exactly ``t`` or ``f`` is rewritten as well. Rewriting an already
    rewritten line is a no-op.
    """
    return '\t'.join(BOOLEAN_TOKENS.get(field, field) for field in split_fields(line))


def export_line(copy_line: str, rewrite_booleans: bool = False) -> str:
    """
    Convert one COPY TO text line into the dump's encoding.

    Args:
        copy_line: A line produced by ``COPY ... TO STDOUT`` (text format)
        rewrite_booleans: Whether bare ``t``/``f`` fields become ``1``/``0``

    Returns:
        Newline-terminated line in dump encoding
    """
    # COPY output escapes data tabs, so every tab here is a separator
    line = '\t'.join(
        field if field == NULL_MARKER else escape_dump_value(unescape_copy_value(field))
        for field in _strip_newline(copy_line).split('\t')
    )
    if rewrite_booleans:
        line = rewrite_boolean_tokens(line)
    return line + '\n'


def _trim_padding(field: str, declared_length: int) -> str:
    # PostgreSQL truncates over-length varchar input when the excess is all spaces
    value = unescape_dump_value(field)
    if len(value) > declared_length and not value[declared_length:].strip(' '):
        return escape_dump_value(value[:declared_length])
    return field


def normalize_source_row(
    row: str,
    rewrite_booleans: bool = False,
    varchar_lengths: Optional[Dict[int, int]] = None,
) -> str:
    """
    Normalize one logical dump row for comparison with an export file.

    Args:
        row: Logical row from ``iter_logical_rows``
        rewrite_booleans: Whether bare ``t``/``f`` fields become ``1``/``0``
        varchar_lengths: Declared lengths keyed by zero-based field position

    Returns:
        Newline-terminated normalized row
    """
    row = normalize_zero_dates(row)
    if varchar_lengths:
        fields = split_fields(row)
        for position, declared_length in varchar_lengths.items():
            if position < len(fields) and fields[position] != NULL_MARKER:
                fields[position] = _trim_padding(fields[position], declared_length)
        row = '\t'.join(fields)
    if rewrite_booleans:
        row = rewrite_boolean_tokens(row)
    return row + '\n'


def normalize_source_lines(
    lines: Iterable[str],
    rewrite_booleans: bool = False,
    varchar_lengths: Optional[Dict[int, int]] = None,
) -> Iterator[str]:
    """Stream a dump file's lines through ``normalize_source_row``."""
    for row in iter_logical_rows(lines):
        yield normalize_source_row(row, rewrite_booleans, varchar_lengths)


class DumpTranscodingStream(TextIOBase):
    """Lazy text stream that feeds COPY FROM without large buffers."""

    def __init__(self, lines: Iterable[str]):
        self._iterator = transcode_lines(lines)
        self._buffer = ''
        self._exhausted = False
        self.rows_read = 0

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> str:
        while (size is None or size < 0 or len(self._buffer) < size) and not self._exhausted:
            try:
                row = next(self._iterator)
            except StopIteration:
                self._exhausted = True
                break
            self.rows_read += 1
            self._buffer += row

        if size is None or size < 0:
            data = self._buffer
            self._buffer = ''
            return data

        data = self._buffer[:size]
        self._buffer = self._buffer[size:]
        return data

    def readline(self, size: int = -1) -> str:
        while '\n' not in self._buffer and not self._exhausted:
            try:
                row = next(self._iterator)
            except StopIteration:
                self._exhausted = True
                break
            self.rows_read += 1
            self._buffer += row

        end = self._buffer.find('\n') + 1 or len(self._buffer)
        data = self._buffer[:end]
        self._buffer = self._buffer[end:]
        return data


class ExportTranscodingWriter(TextIOBase):
    """
    Writable text stream for COPY TO that re-encodes each line into a file.

    COPY output arrives in arbitrary chunks; partial lines are held back
    until their terminator is seen.
    """

    def __init__(self, target, rewrite_booleans: bool = False):
        self._target = target
        self._rewrite_booleans = rewrite_booleans
        self._partial = ''
        self.rows_written = 0

    def writable(self) -> bool:
        return True

    def write(self, data: str) -> int:
        if isinstance(data, bytes):
            data = data.decode('utf-8', errors='surrogateescape')
        chunk = self._partial + data
        lines = chunk.split('\n')
        self._partial = lines.pop()
        for line in lines:
            self._target.write(export_line(line, self._rewrite_booleans))
            self.rows_written += 1
        return len(data)

    def finish(self) -> int:
        """Flush a trailing unterminated line and return rows written."""
        if self._partial:
            self._target.write(export_line(self._partial, self._rewrite_booleans))
            self.rows_written += 1
            self._partial = ''
        return self.rows_written
