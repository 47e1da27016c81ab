"""
csvimporter.frames - pandas helpers on top of the importer.
"""

from __future__ import annotations

import pandas as pd

from csvimporter.config import DEFAULT_DELIMITER
from csvimporter.importer import CSVImporter


def records_to_dataframe(records, columns=None):
    """
    Build a DataFrame from imported records.
    Parameters:
      records: List of field lists or of {header: value} dicts.
      columns: (Optional) Column names. Field lists shorter than the widest
               one are padded with missing values.
    Returns:
      A pandas DataFrame of strings.
    """
    if records and isinstance(records[0], dict):
        return pd.DataFrame.from_records(records, columns=columns)
    return pd.DataFrame(list(records), columns=columns, dtype=object)


def read_dataframe(source, delimiter=DEFAULT_DELIMITER, header=True, **importer_options):
    """
    Import a CSV file straight into a DataFrame.
    Parameters:
      source          : Path to the CSV file or a configured CSVImporter.
      delimiter       : Field delimiter, ignored when source is an importer.
      header          : If True, the first line names the columns and data lines
                        whose field count differs are skipped.
      importer_options: Extra keyword arguments for CSVImporter.from_path.
    Returns:
      A pandas DataFrame.
    """
    if isinstance(source, CSVImporter):
        importer = source
    else:
        importer = CSVImporter.from_path(source, delimiter, **importer_options)

    if not header:
        return records_to_dataframe(importer.import_records(lambda values: values))

    columns = []
    records = importer.import_structured_records(columns.extend, lambda record: record)
    # Repeated header names collapse into one column, the later one wins.
    return records_to_dataframe(records, columns=list(dict.fromkeys(columns)))
