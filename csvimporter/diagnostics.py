"""
csvimporter.diagnostics - Structured events for recoverable per-line anomalies.

Malformed lines never stop an import. Each anomaly becomes a Diagnostic which
is logged on the ``csvimporter.diagnostics`` logger (with the event attached
as ``record.diagnostic``) and handed to the optional ``on_diagnostic``
handler configured on the importer.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class DiagnosticKind(enum.Enum):
    UNTERMINATED_QUOTE = "unterminated_quote"
    STRUCTURE_MISMATCH = "structure_mismatch"
    DECODE_FAILURE = "decode_failure"


@dataclass(frozen=True)
class Diagnostic:
    kind: DiagnosticKind
    message: str
    line_number: Optional[int] = None
    line: Optional[str] = None

    def __str__(self):
        if self.line_number is None:
            return self.message
        return f"line {self.line_number}: {self.message}"


DiagnosticHandler = Callable[[Diagnostic], None]


def emit(diagnostic: Diagnostic, handler: Optional[DiagnosticHandler] = None) -> None:
    """Log the diagnostic and forward it to handler, if any."""
    logger.warning("%s", diagnostic, extra={"diagnostic": diagnostic})
    if handler is not None:
        handler(diagnostic)


class DiagnosticCollector:
    """
    An on_diagnostic handler that keeps every event it receives.

    Handy for callers that want to report all skipped or best-effort lines
    after a run, e.g. ``importer = CSVImporter.from_path(p, on_diagnostic=collector)``.
    """

    def __init__(self):
        self.diagnostics: List[Diagnostic] = []

    def __call__(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)

    def of_kind(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.kind is kind]

    def __len__(self):
        return len(self.diagnostics)
