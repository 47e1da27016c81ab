"""
csvimporter.fields - Split a CSV line into fields and key them by header.

Quoting follows RFC 4180: a field containing the delimiter or a quote is
wrapped in double quotes, and a literal quote inside it is doubled.
"""

from __future__ import annotations

import functools
import re
from typing import Dict, List, Optional, Sequence

from csvimporter.config import DEFAULT_DELIMITER
from csvimporter.diagnostics import Diagnostic, DiagnosticHandler, DiagnosticKind, emit

QUOTE = '"'
ESCAPED_QUOTE = '""'
# Stands in for escaped quotes while the quoting syntax is resolved.
SUBSTITUTE = "\x1a"

_START_PART = re.compile(r'"[^"]*')
_MIDDLE_PART = re.compile(r'[^"]*')
_END_PART = re.compile(r'[^"]*"')


class FieldSplitter:
    """
    Turn one line into its ordered list of field values for a fixed delimiter.

    The delimiter may be any non-empty string; it is matched literally.
    Malformed quoting never raises: an opening quote without a closing one is
    reported as an UNTERMINATED_QUOTE diagnostic and the affected components
    are returned unmerged.
    """

    def __init__(self, delimiter=DEFAULT_DELIMITER, on_diagnostic: Optional[DiagnosticHandler] = None):
        if not delimiter:
            raise ValueError("delimiter must be a non-empty string")
        self.delimiter = delimiter
        self.on_diagnostic = on_diagnostic
        self._delimiter_quote_delimiter = f"{delimiter}{ESCAPED_QUOTE}{delimiter}"
        self._delimiter_delimiter = delimiter + delimiter
        self._quote_delimiter = ESCAPED_QUOTE + delimiter
        self._delimiter_quote = delimiter + ESCAPED_QUOTE

    def split(self, line: str, line_number: Optional[int] = None) -> List[str]:
        """
        Return the fields of line.
        Parameters:
          line       : One decoded line, without its line ending.
          line_number: Only used to locate diagnostics.
        Returns:
          The list of unquoted field values; an empty line gives [""].
        """
        corrected = line
        # Quoted empty fields between delimiters become plain empty fields.
        # Adjacent ones overlap (',"","",'), hence the loop.
        while self._delimiter_quote_delimiter in corrected:
            corrected = corrected.replace(self._delimiter_quote_delimiter, self._delimiter_delimiter)

        if corrected.startswith(self._quote_delimiter):
            corrected = corrected[2:]
        if corrected.endswith(self._delimiter_quote):
            corrected = corrected[:-2]

        corrected = corrected.replace(ESCAPED_QUOTE, SUBSTITUTE)
        components = self._merge_quoted(corrected.split(self.delimiter), line, line_number)

        return [c.replace(QUOTE, "").replace(SUBSTITUTE, QUOTE) for c in components]

    def _merge_quoted(self, components, line, line_number):
        """Rejoin components that were split on a delimiter inside a quoted field."""
        merged = []
        count = len(components)
        index = 0
        while index < count:
            component = components[index]
            if index < count - 1 and _START_PART.fullmatch(component):
                end = index + 1
                while end < count and _MIDDLE_PART.fullmatch(components[end]):
                    end += 1
                if end < count and _END_PART.fullmatch(components[end]):
                    merged.append(self.delimiter.join(components[index:end + 1]))
                    index = end + 1
                    continue
                emit(Diagnostic(DiagnosticKind.UNTERMINATED_QUOTE,
                                'invalid CSV format, opening " is never closed',
                                line_number, line),
                     self.on_diagnostic)
            merged.append(component)
            index += 1
        return merged

    def __call__(self, line, line_number=None):
        return self.split(line, line_number)

    def __repr__(self):
        return f"FieldSplitter(delimiter={self.delimiter!r})"


@functools.lru_cache(maxsize=16)
def _splitter_for(delimiter):
    return FieldSplitter(delimiter)


def split_fields(line, delimiter=DEFAULT_DELIMITER):
    """Split a single line with a shared FieldSplitter for delimiter."""
    return _splitter_for(delimiter).split(line)


def structure_record(header: Sequence[str], values: Sequence[str], line_number: Optional[int] = None,
                     on_diagnostic: Optional[DiagnosticHandler] = None) -> Optional[Dict[str, str]]:
    """
    Key the values of a data line by the header line.
    Parameters:
      header       : Field names captured from the first line.
      values       : Fields of one data line.
      line_number  : Only used to locate diagnostics.
      on_diagnostic: Handler for the STRUCTURE_MISMATCH diagnostic.
    Returns:
      A dict mapping header[i] to values[i], or None if the counts differ.
      With duplicate header names the later column wins.
    """
    if len(header) != len(values):
        emit(Diagnostic(DiagnosticKind.STRUCTURE_MISMATCH,
                        f"couldn't structure line, expected {len(header)} fields but found {len(values)}",
                        line_number),
             on_diagnostic)
        return None
    return dict(zip(header, values))
