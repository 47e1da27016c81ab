"""
csvimporter.importer - Top-level orchestrator.

Coordinates a line source → FieldSplitter → structure_record → caller mapper
and collects the mapped records, either synchronously or on a background
worker with progress, fail and finish callbacks.
"""

from __future__ import annotations

import logging
import threading
import time
import urllib.parse
import urllib.request
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, List, Optional, TypeVar

import humanize

from csvimporter.config import CHUNK_SIZE, DEFAULT_DELIMITER, DEFAULT_ENCODING, PROGRESS_INTERVAL
from csvimporter.diagnostics import DiagnosticHandler
from csvimporter.errors import ImportCancelled, SourceUnavailableError
from csvimporter.fields import FieldSplitter, structure_record
from csvimporter.lines import FileSource, LineEnding, StreamSource, StringLineSource

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mapper = Callable[[List[str]], T]
RecordMapper = Callable[[Dict[str, str]], T]
StructureObserver = Callable[[List[str]], None]

# -------------------------
# Callback delivery
# -------------------------

_callback_executor = None
_callback_executor_lock = threading.Lock()


def default_callback_executor() -> Executor:
    """
    Process-wide single-thread executor that runs callbacks in submission order,
    away from the workers that scan the files.
    """
    global _callback_executor
    with _callback_executor_lock:
        if _callback_executor is None:
            _callback_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="csvimporter-callbacks")
        return _callback_executor


def _log_callback_error(future):
    exc = future.exception()
    if exc is not None:
        logger.error("Import callback raised", exc_info=(type(exc), exc, exc.__traceback__))


@dataclass(frozen=True)
class ImportCallbacks(Generic[T]):
    """
    Callbacks for an asynchronous import, all optional.

      on_fail    : Called with no arguments when the source can't be read.
      on_progress: Called with the number of records imported so far,
                   at most once per PROGRESS_INTERVAL seconds.
      on_finish  : Called with the list of all imported records.
    on_fail and on_finish are mutually exclusive and each fires at most once.
    """
    on_fail: Optional[Callable[[], None]] = None
    on_progress: Optional[Callable[[int], None]] = None
    on_finish: Optional[Callable[[List[T]], None]] = None


class CancellationToken:
    """Cooperative stop flag, checked by the worker between two lines."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self):
        return self._event.is_set()


@dataclass
class ImportRun(Generic[T]):
    """State of one import invocation. Owned by the task running that import only."""
    callbacks: ImportCallbacks = field(default_factory=ImportCallbacks)
    callback_executor: Optional[Executor] = None
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    progress_interval: float = PROGRESS_INTERVAL
    records: List[T] = field(default_factory=list)
    structure: Optional[List[str]] = None
    lines_read: int = 0
    last_progress_report: Optional[float] = None

    def add(self, record):
        self.records.append(record)
        self.report_progress_if_needed()

    @property
    def should_report_progress(self):
        if self.callbacks.on_progress is None:
            return False
        return (self.last_progress_report is None
                or time.monotonic() - self.last_progress_report > self.progress_interval)

    def report_progress_if_needed(self):
        if self.should_report_progress:
            self.last_progress_report = time.monotonic()
            self._deliver(self.callbacks.on_progress, len(self.records))

    def report_fail(self):
        if self.callbacks.on_fail is not None:
            self._deliver(self.callbacks.on_fail)

    def report_finish(self):
        if self.callbacks.on_finish is not None:
            self._deliver(self.callbacks.on_finish, self.records)

    def _deliver(self, callback, *args):
        future = self.callback_executor.submit(callback, *args)
        future.add_done_callback(_log_callback_error)


class ImportHandle(Generic[T]):
    """
    Handle on an asynchronous import.

    result() waits for the worker, not for the callbacks, which are delivered
    separately on the callback executor.
    """

    def __init__(self, future: Future, cancel_token: CancellationToken):
        self._future = future
        self._cancel_token = cancel_token

    def result(self, timeout=None) -> List[T]:
        """Return the imported records, or raise SourceUnavailableError / ImportCancelled."""
        return self._future.result(timeout)

    def exception(self, timeout=None):
        return self._future.exception(timeout)

    def done(self):
        return self._future.done()

    def cancel(self):
        """Ask the worker to stop after the current line. No finish or fail callback fires."""
        self._cancel_token.cancel()

    @property
    def cancelled(self):
        return self._cancel_token.cancelled

# -------------------------
# Importer
# -------------------------

class CSVImporter(Generic[T]):
    """
    Importer for CSV data that maps each line to a value of your choice.

    Build one with from_path, from_url, from_string or from_stream. The
    configuration is read-only afterwards, so a single importer may start
    several independent imports (a stream source can only be read once).

    Parameters:
      source           : FileSource, StreamSource or StringLineSource.
      delimiter        : Field delimiter (default ",").
      work_executor    : Executor running the scan. Default: a new one-thread
                         pool per import.
      callback_executor: Executor running the callbacks. Default: the shared
                         csvimporter callbacks thread.
      on_diagnostic    : Handler receiving a Diagnostic per malformed line.
      progress_interval: Minimum seconds between two progress callbacks.
    """

    def __init__(self, source, delimiter=DEFAULT_DELIMITER, *, work_executor: Optional[Executor] = None,
                 callback_executor: Optional[Executor] = None, on_diagnostic: Optional[DiagnosticHandler] = None,
                 progress_interval=PROGRESS_INTERVAL):
        self._source = source
        self._splitter = FieldSplitter(delimiter, on_diagnostic)
        self._work_executor = work_executor
        self._callback_executor = callback_executor
        self._on_diagnostic = on_diagnostic
        self._progress_interval = progress_interval

    # -------------------------
    # Construction
    # -------------------------

    @classmethod
    def from_path(cls, path, delimiter=DEFAULT_DELIMITER, line_ending=LineEnding.UNKNOWN,
                  encoding=DEFAULT_ENCODING, chunk_size=CHUNK_SIZE, **options) -> "CSVImporter":
        """Import a local file, read lazily in chunk_size blocks."""
        return cls(FileSource(path, line_ending, encoding, chunk_size), delimiter, **options)

    @classmethod
    def from_url(cls, url, delimiter=DEFAULT_DELIMITER, line_ending=LineEnding.UNKNOWN,
                 encoding=DEFAULT_ENCODING, chunk_size=CHUNK_SIZE, **options) -> "CSVImporter":
        """
        Import the file a file:// URL points to.
        Raises SourceUnavailableError right away for any non-local URL.
        """
        return cls.from_path(_local_path(url), delimiter, line_ending, encoding, chunk_size, **options)

    @classmethod
    def from_string(cls, content, delimiter=DEFAULT_DELIMITER, line_ending=LineEnding.UNKNOWN,
                    **options) -> "CSVImporter":
        """
        Import CSV content that is already in memory.
        This saves no memory; prefer from_path for large files.
        """
        return cls(StringLineSource(content, line_ending), delimiter, **options)

    @classmethod
    def from_stream(cls, stream, delimiter=DEFAULT_DELIMITER, line_ending=LineEnding.UNKNOWN,
                    encoding=DEFAULT_ENCODING, chunk_size=CHUNK_SIZE, **options) -> "CSVImporter":
        """Import from an open binary stream. The importer closes it once read."""
        return cls(StreamSource(stream, line_ending, encoding, chunk_size), delimiter, **options)

    @property
    def source(self):
        return self._source

    @property
    def delimiter(self):
        return self._splitter.delimiter

    # -------------------------
    # Asynchronous import
    # -------------------------

    def start_importing_records(self, mapper: Mapper, callbacks: Optional[ImportCallbacks] = None,
                                cancel_token: Optional[CancellationToken] = None) -> ImportHandle[T]:
        """
        Start importing every line in the background.
        Parameters:
          mapper      : Maps the fields of a line to a record.
          callbacks   : ImportCallbacks with on_fail / on_progress / on_finish.
          cancel_token: Optional CancellationToken shared with other code.
        Returns:
          An ImportHandle.
        """
        run = self._new_run(callbacks, cancel_token)
        return self._start(run, self._plain_consumer(run, mapper))

    def start_importing_structured_records(self, structure: StructureObserver, record_mapper: RecordMapper,
                                           callbacks: Optional[ImportCallbacks] = None,
                                           cancel_token: Optional[CancellationToken] = None) -> ImportHandle[T]:
        """
        Start importing in the background, reading the first line as the header.
        Parameters:
          structure    : Called with the header fields before any record is mapped.
          record_mapper: Maps a {header: value} dict of a data line to a record.
          callbacks    : ImportCallbacks with on_fail / on_progress / on_finish.
          cancel_token : Optional CancellationToken shared with other code.
        Returns:
          An ImportHandle.
        """
        run = self._new_run(callbacks, cancel_token)
        return self._start(run, self._structured_consumer(run, structure, record_mapper))

    # -------------------------
    # Synchronous import
    # -------------------------

    def import_records(self, mapper: Mapper) -> List[T]:
        """
        Import every line and return the mapped records.
        Raises SourceUnavailableError if the source can't be read; an empty
        source returns [].
        """
        run = self._new_run(None, None, asynchronous=False)
        self.import_lines(self._plain_consumer(run, mapper))
        return run.records

    def import_structured_records(self, structure: StructureObserver, record_mapper: RecordMapper) -> List[T]:
        """
        Import the data lines keyed by the header line and return the mapped records.
        Raises SourceUnavailableError if the source can't be read.
        """
        run = self._new_run(None, None, asynchronous=False)
        self.import_lines(self._structured_consumer(run, structure, record_mapper))
        return run.records

    # -------------------------
    # Engine
    # -------------------------

    def import_lines(self, consumer, cancel_token: Optional[CancellationToken] = None) -> int:
        """
        Split each line of the source and pass (fields, line_number) to consumer.
        Returns:
          The number of lines read.
        Raises SourceUnavailableError, or ImportCancelled once cancel_token is set.
        """
        count = 0
        with self._source.open(self._on_diagnostic) as lines:
            for line_number, line in lines:
                if cancel_token is not None and cancel_token.cancelled:
                    raise ImportCancelled(f"Import of {self._source!r} cancelled after {count} lines")
                consumer(self._splitter.split(line, line_number), line_number)
                count += 1
        return count

    def _new_run(self, callbacks, cancel_token, asynchronous=True):
        # Synchronous runs deliver no callbacks.
        callback_executor = None
        if asynchronous:
            callback_executor = self._callback_executor or default_callback_executor()
        return ImportRun(
            callbacks=callbacks if callbacks is not None else ImportCallbacks(),
            callback_executor=callback_executor,
            cancel_token=cancel_token if cancel_token is not None else CancellationToken(),
            progress_interval=self._progress_interval,
        )

    @staticmethod
    def _plain_consumer(run, mapper):
        def consume(values, line_number):
            run.lines_read += 1
            run.add(mapper(values))
        return consume

    def _structured_consumer(self, run, structure, record_mapper):
        def consume(values, line_number):
            run.lines_read += 1
            if run.structure is None:
                run.structure = values
                structure(values)
                return
            record = structure_record(run.structure, values, line_number, self._on_diagnostic)
            if record is not None:
                run.add(record_mapper(record))
        return consume

    def _start(self, run, consumer):
        executor = self._work_executor
        owned = executor is None
        if owned:
            executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="csvimporter-worker")
        try:
            future = executor.submit(self._execute, run, consumer)
        finally:
            if owned:
                # Lets the submitted import finish, then frees the thread.
                executor.shutdown(wait=False)
        return ImportHandle(future, run.cancel_token)

    def _execute(self, run, consumer):
        started = time.monotonic()
        logger.debug("Starting import of %r", self._source)
        try:
            self.import_lines(consumer, run.cancel_token)
        except ImportCancelled:
            logger.info("Import of %r cancelled after %s records",
                        self._source, humanize.intcomma(len(run.records)))
            raise
        except SourceUnavailableError as exc:
            logger.warning("Import failed: %s", exc)
            run.report_fail()
            raise
        except Exception:
            logger.exception("Import of %r aborted after %s records",
                             self._source, humanize.intcomma(len(run.records)))
            run.report_fail()
            raise
        logger.info("Imported %s records from %s lines of %r in %s",
                    humanize.intcomma(len(run.records)), humanize.intcomma(run.lines_read), self._source,
                    humanize.naturaldelta(time.monotonic() - started, minimum_unit="milliseconds"))
        run.report_finish()
        return run.records

    def __repr__(self):
        return f"<CSVImporter {self._source!r} delimiter={self.delimiter!r}>"


def _local_path(url):
    """Return the file system path of a file:// URL (or plain path), else raise."""
    url = str(url)
    parsed = urllib.parse.urlparse(url)
    # Single letter schemes are Windows drive letters.
    if parsed.scheme == "" or len(parsed.scheme) == 1:
        return url
    if parsed.scheme != "file" or parsed.netloc not in ("", "localhost"):
        raise SourceUnavailableError(url, "only local file URLs can be imported")
    return urllib.request.url2pathname(parsed.path)
