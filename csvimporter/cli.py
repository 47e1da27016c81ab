"""
csvimporter.cli - Command line entry point.

Imports a CSV file with a progress bar, prints a summary, and optionally
writes the parsed data back out as a normalized CSV:

    python -m csvimporter data/teams.csv --delimiter ";" --output data/clean.csv
"""

from __future__ import annotations

import argparse
import logging
from concurrent.futures import ThreadPoolExecutor

import humanize

from csvimporter.config import DEFAULT_DELIMITER, DEFAULT_ENCODING
from csvimporter.diagnostics import DiagnosticCollector
from csvimporter.errors import SourceUnavailableError
from csvimporter.frames import records_to_dataframe
from csvimporter.importer import CSVImporter, ImportCallbacks
from csvimporter.progress import RecordProgressTqdm, tqdm_progress


def build_parser():
    parser = argparse.ArgumentParser(prog="csvimporter", description="Stream-import a CSV file.")
    parser.add_argument("input", help="CSV file path or file:// URL")
    parser.add_argument("-d", "--delimiter", default=DEFAULT_DELIMITER, help="field delimiter (default: %(default)r)")
    parser.add_argument("-l", "--line-ending", default="auto", choices=["auto", "lf", "cr", "crlf"])
    parser.add_argument("-e", "--encoding", default=DEFAULT_ENCODING)
    parser.add_argument("--no-header", action="store_true", help="don't treat the first line as column names")
    parser.add_argument("-o", "--output", help="write the parsed records to this CSV file")
    parser.add_argument("-q", "--quiet", action="store_true", help="hide the progress bar and warnings")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.ERROR if args.quiet else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    collector = DiagnosticCollector()
    header = []
    # Own callbacks thread so every progress update is flushed before the bar closes.
    callbacks_thread = ThreadPoolExecutor(max_workers=1, thread_name_prefix="csvimporter-cli")
    try:
        importer = CSVImporter.from_url(args.input, args.delimiter, args.line_ending, args.encoding,
                                        callback_executor=callbacks_thread, on_diagnostic=collector)
        with RecordProgressTqdm(desc="Importing records", unit="record", ncols=100, disable=args.quiet) as pbar:
            callbacks = ImportCallbacks(on_progress=tqdm_progress(pbar))
            if args.no_header:
                handle = importer.start_importing_records(lambda values: values, callbacks)
            else:
                handle = importer.start_importing_structured_records(header.extend, lambda record: record,
                                                                     callbacks)
            records = handle.result()
            callbacks_thread.shutdown(wait=True)
            pbar.update(len(records) - pbar.n)
    except (SourceUnavailableError, LookupError) as exc:
        print(f"Error: {exc}")
        return 1
    finally:
        callbacks_thread.shutdown(wait=True)

    print(f"Imported {humanize.intcomma(len(records))} records from {args.input}")
    if collector:
        print(f"  {humanize.intcomma(len(collector))} lines had problems (first 10):")
        for diagnostic in collector.diagnostics[:10]:
            print(f"    {diagnostic}")

    if args.output:
        columns = None if args.no_header else list(dict.fromkeys(header))
        records_to_dataframe(records, columns=columns).to_csv(args.output, index=False, sep=args.delimiter)
        print(f"Parsed CSV saved as: {args.output}")
    return 0
