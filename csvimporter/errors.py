"""
csvimporter.errors - Exceptions raised by the importer.

Per-line anomalies never raise; see csvimporter.diagnostics for those.
"""


class CSVImporterError(Exception):
    """Base class for all importer errors."""
    pass


class SourceUnavailableError(CSVImporterError):
    """Raised when the file, URL or stream cannot be opened for reading."""

    def __init__(self, source, reason):
        super().__init__(f"Cannot read CSV source {source!r}: {reason}")
        self.source = source
        self.reason = reason


class ImportCancelled(CSVImporterError):
    """Raised by ImportHandle.result() for a run stopped through its cancel token."""
    pass
