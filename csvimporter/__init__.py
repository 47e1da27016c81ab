"""
csvimporter – A streaming CSV importer mapping each line to your own records.

This package provides:
    - CSVImporter (from_path / from_url / from_string / from_stream)
    - FieldSplitter / split_fields / structure_record
    - ChunkedLineReader / StringLineSource / detect_line_ending
    - ImportCallbacks / ImportHandle / CancellationToken
    - read_dataframe / records_to_dataframe
... and the diagnostics and errors raised along the way.
"""

from .diagnostics import Diagnostic, DiagnosticCollector, DiagnosticKind
from .errors import CSVImporterError, ImportCancelled, SourceUnavailableError
from .fields import FieldSplitter, split_fields, structure_record
from .frames import read_dataframe, records_to_dataframe
from .importer import CSVImporter, CancellationToken, ImportCallbacks, ImportHandle, ImportRun
from .lines import (
    ChunkedLineReader,
    FileSource,
    LineEnding,
    StreamSource,
    StringLineSource,
    detect_line_ending,
    detect_line_ending_in_text,
)

from types import ModuleType as _ModuleType

# Export every public name imported above, but not the submodules themselves.
__all__ = [name for name, value in globals().items()
           if not name.startswith("_") and not isinstance(value, _ModuleType)]
