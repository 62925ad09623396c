import io
import re

import pandas as pd

from labourcharts.errors import EmptyFileError, StructureError

_LINE_RE = re.compile(r"\r?\n")


def detect_delimiter(header_line: str) -> str:
    if "\t" in header_line:
        return "\t"
    if ";" in header_line:
        return ";"
    return ","


def split_lines(text: str) -> list[str]:
    lines = [line for line in _LINE_RE.split((text or "").strip()) if line.strip()]
    if len(lines) < 2:
        raise EmptyFileError("CSV file appears to be empty")
    return lines


def parse_delimited_line(line: str, delimiter: str) -> list[str]:
    """Split one line on ``delimiter``, honouring double-quoted cells.

    A doubled quote inside a quoted cell is a literal quote.
    """
    cells = []
    current = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            cells.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1
    cells.append("".join(current))
    return cells


def parse_table(
    text: str,
    delimiter: str | None = None,
    header: bool = True,
    quote_aware: bool = False,
    min_columns: int = 0,
) -> pd.DataFrame:
    """Parse delimited text into a DataFrame of trimmed strings.

    With ``header=True`` the first line names the columns; otherwise columns
    are positional (0, 1, ...) and the first line is skipped. Naive splitting
    (``quote_aware=False``) is only safe for files without quoted cells.
    Rows shorter than ``min_columns`` are dropped; the shortfall between the
    number of data lines and the returned rows is the caller's to count.
    """
    lines = split_lines(text)
    header_line = lines[0]
    delimiter = delimiter or detect_delimiter(header_line)

    def _split(line):
        if quote_aware:
            return parse_delimited_line(line, delimiter)
        return line.split(delimiter)

    rows = []
    for line in lines[1:]:
        cells = [cell.strip() for cell in _split(line)]
        if len(cells) < min_columns:
            continue
        rows.append(cells)

    if header:
        columns = [h.strip() for h in _split(header_line)]
        width = len(columns)
        rows = [(r + [""] * width)[:width] for r in rows]
    else:
        width = max((len(r) for r in rows), default=0)
        rows = [r + [""] * (width - len(r)) for r in rows]
        columns = list(range(width))
    df = pd.DataFrame(rows, columns=columns, dtype=object)
    df.attrs["dropped"] = len(lines) - 1 - len(rows)
    return df


def read_csv_text(text: str) -> pd.DataFrame:
    """Structured CSV (quoted cells, embedded commas) through pandas."""
    try:
        df = pd.read_csv(
            io.StringIO(text or ""),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError as exc:
        raise EmptyFileError("CSV file appears to be empty") from exc
    except pd.errors.ParserError as exc:
        raise StructureError(f"Malformed CSV: {exc}") from exc
    if df.empty:
        raise EmptyFileError("CSV file appears to be empty")
    df.columns = [str(c).strip() for c in df.columns]
    return df


def read_parquet_bytes(data: bytes, columns: list[str] | None = None) -> pd.DataFrame:
    if not data:
        raise EmptyFileError("Parquet file appears to be empty")
    try:
        df = pd.read_parquet(io.BytesIO(data), columns=columns)
    except (ValueError, OSError) as exc:
        raise StructureError(f"Unreadable Parquet data: {exc}") from exc
    if df.empty:
        raise EmptyFileError("Parquet file appears to be empty")
    return df


def discover_measure_columns(columns, pattern: str) -> dict[str, str]:
    """Map market key -> column name for headers matching ``pattern``.

    ``pattern`` must carry one capture group holding the market key, e.g.
    ``^Standardized Count\\s*(.+)$``. Column order is preserved.
    """
    regex = re.compile(pattern, re.I)
    found = {}
    for col in columns:
        m = regex.match(str(col).strip())
        if m and m.group(1).strip():
            found[m.group(1).strip()] = col
    if not found:
        raise StructureError(f"No measure columns matching '{pattern}' found")
    return found
