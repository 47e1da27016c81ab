"""
csvimporter.lines - Line sources for the importer.

This module turns a CSV source into a sequence of decoded text lines:
  • LineEnding / detect_line_ending: pick CRLF, LF or CR from a data prefix.
  • ChunkedLineReader: lazily read a binary stream in fixed-size chunks and
    yield lines split on the encoded line ending.
  • StringLineSource: split a string that is already in memory.
  • FileSource / StreamSource: open a path or a binary stream and hand out
    a ChunkedLineReader, detecting the line ending first when needed.

Every source exposes ``open(on_diagnostic=None)``, a context manager yielding
``(line_number, line)`` pairs. Leaving the ``with`` block releases the
underlying file handle, whichever way the block is left.
"""

from __future__ import annotations

import codecs
import enum
import logging
import os
import threading
from contextlib import contextmanager

from csvimporter.config import CHUNK_SIZE, DEFAULT_ENCODING
from csvimporter.diagnostics import Diagnostic, DiagnosticKind, emit
from csvimporter.errors import SourceUnavailableError

logger = logging.getLogger(__name__)

BOM = "\ufeff"

# -------------------------
# 1. Line endings
# -------------------------

class LineEnding(enum.Enum):
    LF = "\n"
    CR = "\r"
    CRLF = "\r\n"
    UNKNOWN = ""

    @classmethod
    def parse(cls, value):
        """
        Accept a LineEnding, its name ('crlf', 'lf', ...), its raw sequence,
        or None / 'auto' for UNKNOWN.
        """
        if isinstance(value, cls):
            return value
        if value is None or value == "auto":
            return cls.UNKNOWN
        try:
            return cls[value.upper()]
        except KeyError:
            pass
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unsupported line ending: {value!r}") from None


# CRLF must be tested before LF, which is a substring of it.
_DETECTION_ORDER = (LineEnding.CRLF, LineEnding.LF, LineEnding.CR)


def detect_line_ending_in_text(text):
    """Return the first line ending found in text (CRLF, LF, CR priority), LF when none."""
    for line_ending in _DETECTION_ORDER:
        if line_ending.value in text:
            return line_ending
    return LineEnding.LF


def detect_line_ending(sample, encoding=DEFAULT_ENCODING):
    """
    Sniff the line ending from the first bytes of a source.
    Parameters:
      sample  : Prefix of the source (bytes, usually one chunk) or text.
      encoding: Encoding of the sample. A multi-byte character cut at the
                end of the sample is ignored.
    Returns:
      LineEnding.CRLF, LF or CR; LF if the sample contains no terminator.
    """
    if isinstance(sample, (bytes, bytearray)):
        sample = bytes(sample).decode(encoding, errors="ignore")
    return detect_line_ending_in_text(sample)


# Codecs without a fixed byte order; the decoder follows the byte order mark.
_BYTE_ORDER_MARKS = {
    "utf-16": ((codecs.BOM_UTF16_BE, "utf-16-be"), (codecs.BOM_UTF16_LE, "utf-16-le")),
    "utf-32": ((codecs.BOM_UTF32_BE, "utf-32-be"), (codecs.BOM_UTF32_LE, "utf-32-le")),
}
_BOM_PEEK = 4


def _encoded_terminator(line_ending, encoding, head=b""):
    """
    Return (terminator bytes, code unit width) for line_ending in encoding.
    head is the start of the stream, used to pick the byte order of utf-16
    and utf-32 from their byte order mark.
    """
    for bom, ordered in _BYTE_ORDER_MARKS.get(codecs.lookup(encoding).name, ()):
        if head.startswith(bom):
            encoding = ordered
            break
    encoder = codecs.getincrementalencoder(encoding)()
    # BOM-writing codecs emit their mark on the first call only.
    encoder.encode("")
    unit = len(encoder.encode("a")) or 1
    return encoder.encode(line_ending.value), unit

# -------------------------
# 2. Chunked streaming reader
# -------------------------

class ChunkedLineReader:
    """
    Iterate over the lines of a binary stream without loading it in memory.

    Parameters:
      stream       : Binary file-like object with a read(size) method. The reader
                     owns it and closes it at end of stream or on close().
      line_ending  : Resolved LineEnding (not UNKNOWN).
      encoding     : Text encoding used to find the terminator and decode lines.
      chunk_size   : Number of bytes per read call.
      initial      : Bytes already read from stream (e.g. the detection sample).
      on_diagnostic: Handler for DECODE_FAILURE diagnostics.
    Lines that cannot be decoded are skipped, reported as a diagnostic.
    """

    def __init__(self, stream, line_ending, encoding=DEFAULT_ENCODING, chunk_size=CHUNK_SIZE,
                 initial=b"", on_diagnostic=None, name=None):
        if line_ending is LineEnding.UNKNOWN:
            raise ValueError("ChunkedLineReader needs a resolved line ending")
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.line_ending = line_ending
        self.encoding = encoding
        self.chunk_size = chunk_size
        self.name = name if name is not None else getattr(stream, "name", repr(stream))
        self.line_number = 0
        self._stream = stream
        self._on_diagnostic = on_diagnostic
        if codecs.lookup(encoding).name in _BYTE_ORDER_MARKS:
            # Resolved on the first read, once the byte order mark can be seen.
            self._terminator, self._unit = None, 1
        else:
            self._terminator, self._unit = _encoded_terminator(line_ending, encoding)
        self._decoder = codecs.getincrementaldecoder(encoding)()
        self._buffer = bytearray(initial)
        self._at_eof = False
        self._closed = False

    def __iter__(self):
        return self

    def __next__(self):
        try:
            while True:
                data = self._next_raw_line()
                if data is None:
                    self.close()
                    raise StopIteration
                self.line_number += 1
                line = self._decode(data)
                if line is not None:
                    return line
        except OSError as exc:
            self.close()
            raise SourceUnavailableError(self.name, f"read failed: {exc}") from exc

    def numbered(self):
        """Yield (line_number, line) pairs; skipped lines keep their number."""
        for line in self:
            yield self.line_number, line

    def close(self):
        if not self._closed:
            self._closed = True
            self._buffer.clear()
            self._stream.close()

    @property
    def closed(self):
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _find_terminator(self, start):
        # Matches must sit on a code unit boundary (UTF-16/32).
        start -= start % self._unit
        while True:
            index = self._buffer.find(self._terminator, start)
            if index < 0 or index % self._unit == 0:
                return index
            start = index + 1

    def _resolve_terminator(self):
        while len(self._buffer) < _BOM_PEEK:
            chunk = self._stream.read(self.chunk_size)
            if not chunk:
                break
            self._buffer += chunk
        self._terminator, self._unit = _encoded_terminator(self.line_ending, self.encoding,
                                                           bytes(self._buffer[:_BOM_PEEK]))

    def _next_raw_line(self):
        """Return the bytes of the next line, or None once the stream is exhausted."""
        if self._at_eof or self._closed:
            return None
        if self._terminator is None:
            self._resolve_terminator()
        index = self._find_terminator(0)
        while index < 0:
            chunk = self._stream.read(self.chunk_size)
            if not chunk:
                self._at_eof = True
                if self._buffer:
                    # Last line of the stream, not terminated.
                    data = bytes(self._buffer)
                    self._buffer.clear()
                    return data
                return None
            searched = len(self._buffer)
            self._buffer += chunk
            index = self._find_terminator(max(0, searched - len(self._terminator) + 1))
        data = bytes(self._buffer[:index])
        del self._buffer[:index + len(self._terminator)]
        return data

    def _decode(self, data):
        try:
            line = self._decoder.decode(data, final=True)
        except UnicodeDecodeError as exc:
            emit(Diagnostic(DiagnosticKind.DECODE_FAILURE,
                            f"cannot decode line as {self.encoding}: {exc.reason}",
                            self.line_number),
                 self._on_diagnostic)
            return None
        if self.line_number == 1 and line.startswith(BOM):
            line = line[1:]
        return line


def open_reader(stream, line_ending=LineEnding.UNKNOWN, encoding=DEFAULT_ENCODING,
                chunk_size=CHUNK_SIZE, on_diagnostic=None, name=None):
    """
    Wrap stream in a ChunkedLineReader, sniffing the first chunk if line_ending is UNKNOWN.
    The stream is closed if the reader can't be set up.
    """
    name = name if name is not None else getattr(stream, "name", repr(stream))
    initial = b""
    try:
        if line_ending is LineEnding.UNKNOWN:
            initial = stream.read(chunk_size)
            line_ending = detect_line_ending(initial, encoding)
            logger.debug("Detected %s line endings in %s", line_ending.name, name)
        return ChunkedLineReader(stream, line_ending, encoding, chunk_size,
                                 initial=initial, on_diagnostic=on_diagnostic, name=name)
    except OSError as exc:
        stream.close()
        raise SourceUnavailableError(name, f"read failed: {exc}") from exc
    except BaseException:
        stream.close()
        raise

# -------------------------
# 3. In-memory string
# -------------------------

class StringLineSource:
    """
    Lines of a CSV document that is already in memory.

    The split happens once, up front, so iterating is restartable. A final
    line ending does not produce an extra empty line, and an empty string has
    no lines, matching what ChunkedLineReader yields for the same bytes.
    """

    def __init__(self, content, line_ending=LineEnding.UNKNOWN):
        line_ending = LineEnding.parse(line_ending)
        if line_ending is LineEnding.UNKNOWN:
            line_ending = detect_line_ending_in_text(content)
        self.line_ending = line_ending
        if content.startswith(BOM):
            content = content[1:]
        lines = content.split(line_ending.value) if content else []
        if lines and lines[-1] == "":
            lines.pop()
        self.lines = lines

    def __iter__(self):
        return iter(self.lines)

    def __len__(self):
        return len(self.lines)

    @contextmanager
    def open(self, on_diagnostic=None):
        yield enumerate(self.lines, start=1)

    def __repr__(self):
        return f"<StringLineSource {len(self.lines)} lines, {self.line_ending.name}>"

# -------------------------
# 4. Files and streams
# -------------------------

class FileSource:
    """A CSV file on the local file system, read in chunks. An unknown encoding raises LookupError."""

    def __init__(self, path, line_ending=LineEnding.UNKNOWN, encoding=DEFAULT_ENCODING,
                 chunk_size=CHUNK_SIZE):
        self.path = os.fspath(path)
        self.line_ending = LineEnding.parse(line_ending)
        codecs.lookup(encoding)
        self.encoding = encoding
        self.chunk_size = chunk_size

    @contextmanager
    def open(self, on_diagnostic=None):
        try:
            handle = open(self.path, "rb")
        except OSError as exc:
            raise SourceUnavailableError(self.path, exc.strerror or str(exc)) from exc
        reader = open_reader(handle, self.line_ending, self.encoding, self.chunk_size,
                             on_diagnostic, name=self.path)
        with reader:
            yield reader.numbered()

    def __repr__(self):
        return f"<FileSource {self.path!r}>"


class StreamSource:
    """
    An already open binary stream (socket file, pipe, BytesIO...).

    A stream can only be consumed once: opening it a second time raises
    SourceUnavailableError.
    """

    def __init__(self, stream, line_ending=LineEnding.UNKNOWN, encoding=DEFAULT_ENCODING,
                 chunk_size=CHUNK_SIZE):
        self.stream = stream
        self.line_ending = LineEnding.parse(line_ending)
        self.encoding = encoding
        self.chunk_size = chunk_size
        self._consumed = False
        self._lock = threading.Lock()

    @contextmanager
    def open(self, on_diagnostic=None):
        with self._lock:
            if self._consumed or getattr(self.stream, "closed", False):
                raise SourceUnavailableError(self.stream, "stream already consumed")
            self._consumed = True
        reader = open_reader(self.stream, self.line_ending, self.encoding, self.chunk_size,
                             on_diagnostic)
        with reader:
            yield reader.numbered()

    def __repr__(self):
        return f"<StreamSource {getattr(self.stream, 'name', type(self.stream).__name__)!r}>"
