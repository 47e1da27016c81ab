import logging

import pytest

from csvimporter.diagnostics import DiagnosticCollector, DiagnosticKind
from csvimporter.fields import FieldSplitter, split_fields, structure_record


@pytest.mark.parametrize("line, expected", [
    ('a,"b,c",d', ["a", "b,c", "d"]),
    (',"",', ["", "", ""]),
    ('"x""y",z', ['x"y', "z"]),
    ("", [""]),
    ('"",a,b', ["", "a", "b"]),
    ('a,b,""', ["a", "b", ""]),
    ('a,"","",b', ["a", "", "", "b"]),
    ('1,"say ""hi"", bob",2', ["1", 'say "hi", bob', "2"]),
    ('"a,b,c,d",e', ["a,b,c,d", "e"]),
    ("plain,,text", ["plain", "", "text"]),
])
def test_split_quoted_lines(line, expected):
    """Quoted fields keep their delimiters and doubled quotes become literal quotes."""
    assert split_fields(line) == expected


def test_split_semicolon_line_with_commas_and_quotes():
    """A semicolon file whose text fields contain commas, semicolons and quotes."""
    line = (';"Text, with ""comma""; and \'semicolon\'.";"";'
            '"Another text with ""comma""; and \'semicolon\'!";Text without special chars.;""')
    assert FieldSplitter(";").split(line) == [
        "",
        "Text, with \"comma\"; and 'semicolon'.",
        "",
        "Another text with \"comma\"; and 'semicolon'!",
        "Text without special chars.",
        "",
    ]


def test_split_multi_character_delimiter():
    """The delimiter is matched as a literal substring."""
    assert FieldSplitter("||").split('a||"b||c"||d') == ["a", "b||c", "d"]


def test_unterminated_quote_is_reported_and_left_unmerged():
    """An opening quote without a closing one keeps the line, unmerged."""
    collector = DiagnosticCollector()
    splitter = FieldSplitter(",", on_diagnostic=collector)

    assert splitter.split('a,"b,c', line_number=7) == ["a", "b", "c"]

    assert len(collector) == 1
    diagnostic = collector.diagnostics[0]
    assert diagnostic.kind is DiagnosticKind.UNTERMINATED_QUOTE
    assert diagnostic.line_number == 7
    assert diagnostic.line == 'a,"b,c'


def test_quote_in_last_component_is_just_stripped():
    collector = DiagnosticCollector()
    assert FieldSplitter(",", on_diagnostic=collector).split('a,"b') == ["a", "b"]
    assert len(collector) == 0


def test_diagnostics_are_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="csvimporter.diagnostics"):
        split_fields('"open,never,closed')
    assert len(caplog.records) == 1
    assert caplog.records[0].diagnostic.kind is DiagnosticKind.UNTERMINATED_QUOTE


@pytest.mark.parametrize("fields", [
    ["a", "b", "c"],
    ["1871", "NA", "BS1", "Boston Red Stockings"],
    ["", "", ""],
    ["only"],
    ["with space", " padded ", "dots.and-dashes"],
])
@pytest.mark.parametrize("delimiter", [",", ";", "\t", "::"])
def test_plain_fields_survive_join_and_split(fields, delimiter):
    """Fields without delimiters or quotes come back exactly."""
    assert FieldSplitter(delimiter).split(delimiter.join(fields)) == fields


@pytest.mark.parametrize("line", [
    'a,"b,c",d',
    "x,y,z",
    ',"",',
    "",
])
def test_split_is_idempotent_on_its_output(line):
    splitter = FieldSplitter(",")
    fields = splitter.split(line)
    rejoined = ",".join(f'"{f}"' if "," in f else f for f in fields)
    assert splitter.split(rejoined) == fields


def test_empty_delimiter_is_rejected():
    with pytest.raises(ValueError):
        FieldSplitter("")


def test_structure_record_zips_header_and_values():
    record = structure_record(["id", "name"], ["1", "Alice"])
    assert record == {"id": "1", "name": "Alice"}


def test_structure_record_mismatch_returns_none():
    collector = DiagnosticCollector()
    assert structure_record(["id", "name"], ["1"], line_number=2, on_diagnostic=collector) is None
    assert collector.of_kind(DiagnosticKind.STRUCTURE_MISMATCH)[0].line_number == 2


def test_structure_record_duplicate_header_later_wins():
    record = structure_record(["a", "b", "a"], ["1", "2", "3"])
    assert record == {"a": "3", "b": "2"}
