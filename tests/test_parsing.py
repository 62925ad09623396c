"""
Tests for parsing module.

These tests verify delimiter detection, quote handling and the structural
errors raised for unusable files.
"""

import io

import pandas as pd
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from labourcharts.errors import EmptyFileError, PipelineError, StructureError
from labourcharts.parsing import (
    detect_delimiter,
    discover_measure_columns,
    parse_delimited_line,
    parse_table,
    read_csv_text,
    read_parquet_bytes,
    split_lines,
)


class TestDetectDelimiter:
    """Tests for header-based delimiter detection."""

    def test_tab_wins(self):
        """A tab anywhere in the header means tab-separated."""
        assert detect_delimiter("Title\tUS;UAE,Qatar") == "\t"

    def test_semicolon_before_comma(self):
        """Semicolon is preferred over comma."""
        assert detect_delimiter("Year;Share,Total") == ";"

    def test_comma_default(self):
        """Plain headers fall back to comma."""
        assert detect_delimiter("Year,Share") == ","
        assert detect_delimiter("Year") == ","


class TestSplitLines:
    """Tests for line splitting and the empty-file check."""

    def test_drops_blank_lines(self):
        """Blank and whitespace-only lines are ignored."""
        assert split_lines("a,b\r\n\r\n1,2\n   \n3,4\n") == ["a,b", "1,2", "3,4"]

    def test_header_only_is_empty(self):
        """A header without data rows is an empty file."""
        with pytest.raises(EmptyFileError, match="CSV file appears to be empty"):
            split_lines("Year,Share\n\n")

    def test_empty_text_is_empty(self):
        """None and empty strings raise the same error."""
        with pytest.raises(EmptyFileError):
            split_lines("")
        with pytest.raises(EmptyFileError):
            split_lines(None)


class TestParseDelimitedLine:
    """Tests for the quote-aware line splitter."""

    def test_quoted_delimiter_stays_in_cell(self):
        """Commas inside quotes do not split."""
        assert parse_delimited_line('"Nurse, registered",80,3.0', ",") == [
            "Nurse, registered", "80", "3.0"
        ]

    def test_doubled_quote_is_literal(self):
        """A doubled quote inside quotes is one quote character."""
        assert parse_delimited_line('"say ""hi""",x', ",") == ['say "hi"', "x"]

    def test_trailing_empty_cell(self):
        """A trailing delimiter yields an empty last cell."""
        assert parse_delimited_line("a;b;", ";") == ["a", "b", ""]


class TestParseTable:
    """Tests for the delimited-text table parser."""

    def test_header_columns_and_trimming(self):
        """Header names become columns and cells are trimmed."""
        df = parse_table("Title , US\n Dev , 1.5\n\nQA,2\n")
        assert list(df.columns) == ["Title", "US"]
        assert df["Title"].tolist() == ["Dev", "QA"]
        assert df["US"].tolist() == ["1.5", "2"]

    def test_short_rows_padded_under_header(self):
        """Rows shorter than the header are padded with empty cells."""
        df = parse_table("a,b,c\n1,2\n")
        assert df.iloc[0].tolist() == ["1", "2", ""]

    def test_positional_columns_without_header(self):
        """header=False numbers the columns and still skips the first line."""
        df = parse_table("Year;Share\n2021;4,5\n2022;5,0\n", header=False)
        assert list(df.columns) == [0, 1]
        assert df[0].tolist() == ["2021", "2022"]
        assert df[1].tolist() == ["4,5", "5,0"]

    def test_min_columns_drops_and_counts(self):
        """Rows below min_columns are dropped and counted in attrs."""
        df = parse_table("a;b;c\n2021;x;1\n2022;y\n", header=False, min_columns=3)
        assert len(df) == 1
        assert df.attrs["dropped"] == 1

    def test_naive_split_ignores_quotes(self):
        """Without quote awareness a quoted comma splits the cell."""
        text = 'Title,US\n"Nurse, registered",3\n'
        naive = parse_table(text)
        aware = parse_table(text, quote_aware=True)
        assert naive["Title"].iloc[0] == '"Nurse'
        assert aware["Title"].iloc[0] == "Nurse, registered"

    def test_header_only_raises(self):
        """Header-only files raise EmptyFileError."""
        with pytest.raises(EmptyFileError):
            parse_table("Year;Share\n")


class TestReadCsvText:
    """Tests for the pandas-backed structured CSV reader."""

    def test_keeps_strings(self):
        """All cells stay strings, including numeric-looking ones."""
        df = read_csv_text('Soft Skill,Standardized Count US\n"Listening, active",0.50\n')
        assert df["Soft Skill"].iloc[0] == "Listening, active"
        assert df["Standardized Count US"].iloc[0] == "0.50"

    def test_empty_cells_are_empty_strings(self):
        """Missing cells are '' rather than NaN."""
        df = read_csv_text("skill,title,count\nPython,,3\n")
        assert df["title"].iloc[0] == ""

    def test_header_only_raises(self):
        """A header with no rows is empty."""
        with pytest.raises(EmptyFileError, match="appears to be empty"):
            read_csv_text("skill,title,count\n")

    def test_blank_text_raises(self):
        """Blank input is empty, not a parser crash."""
        with pytest.raises(EmptyFileError):
            read_csv_text("")


class TestReadParquet:
    """Tests for Parquet loading."""

    def test_column_subset(self):
        """Only requested columns are read."""
        buf = io.BytesIO()
        pd.DataFrame({"Country": ["Qatar"], "labels": ['{"Green Label": 1}'], "x": [1]}).to_parquet(buf)
        df = read_parquet_bytes(buf.getvalue(), columns=["Country", "labels"])
        assert list(df.columns) == ["Country", "labels"]
        assert df["Country"].tolist() == ["Qatar"]

    def test_garbage_is_structure_error(self):
        """Bytes that are not Parquet raise a pipeline error."""
        with pytest.raises(StructureError):
            read_parquet_bytes(b"not a parquet file")

    def test_no_bytes_is_empty(self):
        """Zero bytes is an empty file."""
        with pytest.raises(EmptyFileError):
            read_parquet_bytes(b"")


class TestDiscoverMeasureColumns:
    """Tests for regex-driven measure column discovery."""

    def test_finds_markets_in_order(self):
        """Capture group becomes the market key, column order is kept."""
        columns = ["Soft Skill", "Standardized Count US",
                   "Standardized Count United Arab Emirates", "Category"]
        found = discover_measure_columns(columns, r"^Standardized Count\s+(.+)$")
        assert list(found) == ["US", "United Arab Emirates"]
        assert found["US"] == "Standardized Count US"

    def test_prefix_pattern(self):
        """count_in_ columns map to their suffix."""
        found = discover_measure_columns(["Skill", "count_in_US", "count_in_Qatar"], r"^count_in_(.+)$")
        assert found == {"US": "count_in_US", "Qatar": "count_in_Qatar"}

    def test_no_match_raises(self):
        """No matching column is a structure error."""
        with pytest.raises(StructureError):
            discover_measure_columns(["Skill", "Category"], r"^count_in_(.+)$")

    def test_errors_share_base(self):
        """Structural errors are pipeline errors and value errors."""
        assert issubclass(StructureError, PipelineError)
        assert issubclass(EmptyFileError, ValueError)
