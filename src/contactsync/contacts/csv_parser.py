"""
Streaming CSV parsing and header validation for contact uploads.

The parser reads a chunked source (bytes or text, sync or async) and only ever
holds the current incomplete record in memory while scanning. The header line
is checked against an agreed column list before any row is looked at; a
mismatch rejects the whole stream.
"""

import codecs
import csv
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from contactsync.contacts.schemas import CSVRowError
from contactsync.shared.exceptions import (
    AppError,
    InvalidFormatError,
    PrematureEndError,
    StreamError,
)
from contactsync.shared.logging import get_logger

logger = get_logger(__name__)

Chunk = Union[bytes, str]
ChunkSource = Union[AsyncIterable[Chunk], Iterable[Chunk]]


@dataclass
class CSVParseResult:
    """Accumulated output of one parsed stream."""

    count: int = 0
    records: list[dict[str, str]] = field(default_factory=list)
    errors: list[CSVRowError] = field(default_factory=list)


def split_header_line(line: str, delimiter: str = ",") -> list[str]:
    """Split a header line on the delimiter and trim every name."""
    return [name.strip() for name in line.rstrip("\r\n").split(delimiter)]


def validate_headers(
    line: str,
    expected_headers: Sequence[str],
    delimiter: str = ",",
) -> None:
    """Check a header line against the expected columns, by count and position.

    Raises:
        InvalidFormatError: On any difference.
    """
    actual = split_header_line(line, delimiter)
    if len(actual) != len(expected_headers):
        raise InvalidFormatError(
            message=(
                f"Invalid CSV file: expected {len(expected_headers)} columns, "
                f"got {len(actual)}"
            ),
            details={"expected": list(expected_headers), "actual": actual},
        )
    for index, (got, expected) in enumerate(zip(actual, expected_headers)):
        if got != expected:
            raise InvalidFormatError(
                message=(
                    f"Invalid CSV file: column {index + 1} must be '{expected}', "
                    f"got '{got}'"
                ),
                details={"expected": list(expected_headers), "actual": actual},
            )


async def _iterate(source: ChunkSource) -> AsyncIterator[Chunk]:
    if isinstance(source, (bytes, str)):
        yield source
    elif hasattr(source, "__aiter__"):
        async for chunk in source:  # type: ignore[union-attr]
            yield chunk
    else:
        for chunk in source:  # type: ignore[union-attr]
            yield chunk


class _RecordSplitter:
    """Cuts incoming text into complete CSV records.

    Quote state follows the CSV grammar: a quote opens a quoted field only as
    the first character of a field, ``""`` inside a quoted field is an escaped
    quote, and a quote anywhere else is an ordinary character. A newline ends
    the record unless it falls inside a quoted field.
    """

    _FIELD_START, _UNQUOTED, _QUOTED, _QUOTE_IN_QUOTED = range(4)

    def __init__(self, delimiter: str = ",", quotechar: str = '"') -> None:
        self._delimiter = delimiter
        self._quotechar = quotechar
        self._partial_line = ""
        self._record: list[str] = []
        self._state = self._FIELD_START
        self.line_number = 1
        self.record_start = 2

    def feed(self, text: str) -> list[tuple[int, str]]:
        if not text:
            return []
        # Only "\n" ends a line; a trailing "\r" stays on the line for csv to eat.
        *lines, self._partial_line = (self._partial_line + text).split("\n")
        records = []
        for line in lines:
            record = self._push_line(line + "\n")
            if record is not None:
                records.append(record)
        return records

    def close(self) -> list[tuple[int, str]]:
        records: list[tuple[int, str]] = []
        if self._partial_line:
            line, self._partial_line = self._partial_line, ""
            record = self._push_line(line)
            if record is not None:
                records.append(record)
        if self._record:
            raise InvalidFormatError(
                message=(
                    f"Invalid CSV file: unterminated quoted field starting on line "
                    f"{self.record_start}"
                ),
            )
        return records

    def _scan(self, line: str) -> None:
        state = self._state
        for ch in line.rstrip("\n"):
            if state == self._QUOTED:
                if ch == self._quotechar:
                    state = self._QUOTE_IN_QUOTED
            elif state == self._QUOTE_IN_QUOTED:
                if ch == self._quotechar:
                    state = self._QUOTED
                elif ch == self._delimiter:
                    state = self._FIELD_START
                else:
                    state = self._UNQUOTED
            elif ch == self._delimiter:
                state = self._FIELD_START
            elif state == self._FIELD_START and ch == self._quotechar:
                state = self._QUOTED
            else:
                state = self._UNQUOTED
        self._state = state

    def _push_line(self, line: str) -> tuple[int, str] | None:
        self.line_number += 1
        if not self._record:
            self.record_start = self.line_number
        self._record.append(line)
        self._scan(line)
        if self._state == self._QUOTED:
            return None
        text = "".join(self._record)
        self._record = []
        self._state = self._FIELD_START
        return self.record_start, text


class CSVParser:
    """Streaming parser for CSV uploads bound to a fixed header contract."""

    def __init__(
        self,
        delimiter: str = ",",
        encoding: str = "utf-8-sig",
        row_model: type[BaseModel] | None = None,
    ) -> None:
        """Initialize CSV parser.

        Args:
            delimiter: CSV field delimiter.
            encoding: Encoding used for byte chunks; the default strips a BOM.
            row_model: Optional model every row must validate against; rows
                that do not are reported instead of returned.
        """
        self.delimiter = delimiter
        self.encoding = encoding
        self.row_model = row_model

    async def parse_stream(
        self,
        source: ChunkSource,
        expected_headers: Sequence[str],
    ) -> CSVParseResult:
        """Validate the header and parse every data row of a chunked source.

        Args:
            source: Sync or async iterable of ``bytes``/``str`` chunks.
            expected_headers: Ordered column names the header must match.

        Returns:
            All parsed records, their count and the rows that were skipped.

        Raises:
            InvalidFormatError: Header mismatch, bad encoding or an unterminated
                quoted field.
            PrematureEndError: The source ended before a header line arrived.
            StreamError: Reading from the source failed.
        """
        headers = list(expected_headers)
        decoder = codecs.getincrementaldecoder(self.encoding)()
        splitter = _RecordSplitter(self.delimiter)
        result = CSVParseResult()
        header_buffer: str | None = ""

        try:
            async for chunk in _iterate(source):
                text = self._decode(decoder, chunk)
                if header_buffer is not None:
                    header_buffer += text
                    newline = header_buffer.find("\n")
                    if newline == -1:
                        continue
                    validate_headers(header_buffer[:newline], headers, self.delimiter)
                    text = header_buffer[newline + 1:]
                    header_buffer = None
                self._collect(splitter.feed(text), headers, result)

            tail = self._decode(decoder, b"", final=True)
            if header_buffer is not None:
                header_buffer += tail
                if not header_buffer.strip():
                    raise PrematureEndError(
                        message="CSV stream ended before the header line was received",
                    )
                newline = header_buffer.find("\n")
                header_line = header_buffer if newline == -1 else header_buffer[:newline]
                validate_headers(header_line, headers, self.delimiter)
                tail = "" if newline == -1 else header_buffer[newline + 1:]
            self._collect(splitter.feed(tail), headers, result)
            self._collect(splitter.close(), headers, result)
        except AppError:
            raise
        except Exception as exc:
            logger.warning(
                "CSV stream read failed",
                extra={"error": str(exc), "records_discarded": result.count},
            )
            raise StreamError(message=f"Failed to read CSV stream: {exc}") from exc

        logger.debug(
            "CSV stream parsed",
            extra={"count": result.count, "rejected": len(result.errors)},
        )
        return result

    def _decode(self, decoder: codecs.IncrementalDecoder, chunk: Chunk, final: bool = False) -> str:
        if isinstance(chunk, str):
            return chunk
        try:
            return decoder.decode(chunk, final)
        except UnicodeDecodeError as e:
            raise InvalidFormatError(message=f"File encoding error: {e}") from e

    def _collect(
        self,
        records: list[tuple[int, str]],
        headers: list[str],
        result: CSVParseResult,
    ) -> None:
        for line_number, text in records:
            if not text.strip():
                continue
            try:
                values = next(csv.reader([text], delimiter=self.delimiter, strict=True))
            except csv.Error as e:
                result.errors.append(
                    CSVRowError(line_number=line_number, error=f"Malformed row: {e}")
                )
                continue
            if len(values) != len(headers):
                result.errors.append(
                    CSVRowError(
                        line_number=line_number,
                        error=f"Expected {len(headers)} fields, got {len(values)}",
                        value=text.rstrip("\r\n")[:200],
                    )
                )
                continue
            row = dict(zip(headers, values))
            if self.row_model is not None:
                error = self._validate_row(line_number, row)
                if error is not None:
                    result.errors.append(error)
                    continue
            result.records.append(row)
            result.count += 1

    def _validate_row(self, line_number: int, row: dict[str, str]) -> CSVRowError | None:
        try:
            self.row_model.model_validate(row)  # type: ignore[union-attr]
        except PydanticValidationError as e:
            first = e.errors()[0]
            name = ".".join(str(part) for part in first["loc"]) or None
            value = row.get(name) if name else None
            return CSVRowError(
                line_number=line_number,
                field=name,
                error=first["msg"],
                value=value[:200] if value else None,
            )
        return None


async def parse_csv_stream(
    source: ChunkSource,
    expected_headers: Sequence[str],
    delimiter: str = ",",
) -> CSVParseResult:
    """Parse a chunked CSV source with a default :class:`CSVParser`."""
    return await CSVParser(delimiter=delimiter).parse_stream(source, expected_headers)
