"""Turn parsed string tables into typed records.

A record is all-or-nothing: a row that misses a required text field or whose
required number does not parse is dropped whole. Dropped rows are counted on
the :class:`ValidationResult`, never reported one by one.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass

import pandas as pd

from labourcharts.errors import NoValidDataError, StructureError
from labourcharts.parsing import discover_measure_columns

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
_WS_RE = re.compile(r"\s")

NUMBER_STYLES = ("plain", "decimal_comma", "thousands")
FIELD_KINDS = ("text", "number", "raw")


@dataclass(frozen=True)
class FieldSpec:
    """How one typed field is read from a parsed row.

    ``source`` is a header name, or a column position when it is an int.
    Optional numbers fall back to ``default``; a ``None`` default leaves the
    value absent (NaN) so later stages can substitute an explicit zero.
    """

    name: str
    source: str | int
    kind: str = "text"
    required: bool = True
    default: object = None
    number_style: str = "plain"

    @classmethod
    def from_dict(cls, data: dict) -> "FieldSpec":
        kind = data.get("kind", "text")
        if kind not in FIELD_KINDS:
            raise ValueError(f"Unknown field kind '{kind}' for field '{data.get('name')}'")
        style = data.get("number_style", "plain")
        if style not in NUMBER_STYLES:
            raise ValueError(f"Unknown number style '{style}' for field '{data.get('name')}'")
        return cls(
            name=data["name"],
            source=data.get("source", data["name"]),
            kind=kind,
            required=data.get("required", True),
            default=data.get("default"),
            number_style=style,
        )


@dataclass
class ValidationResult:
    records: pd.DataFrame
    rejected: int = 0

    @property
    def accepted(self) -> int:
        return len(self.records)


def parse_number(value, style: str = "plain") -> float | None:
    """Parse ``value`` to a finite float, or return None.

    ``decimal_comma`` reads "12,5" as 12.5; ``thousands`` reads "61,200" and
    "61 200" as 61200. Spaces are ignored in every style.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if math.isfinite(value) else None
    text = _WS_RE.sub("", str(value))
    if style == "decimal_comma":
        text = text.replace(",", ".", 1)
    elif style == "thousands":
        text = text.replace(",", "")
    if not _NUMBER_RE.match(text):
        return None
    number = float(text)
    return number if math.isfinite(number) else None


def _clean_text(value) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def _column(frame: pd.DataFrame, spec: FieldSpec) -> pd.Series:
    if spec.source in frame.columns:
        return frame[spec.source]
    if isinstance(spec.source, int) and 0 <= spec.source < len(frame.columns):
        return frame.iloc[:, spec.source]
    if spec.required:
        if isinstance(spec.source, int):
            raise StructureError(f"Missing expected column: {spec.source}")
        raise StructureError(f"Missing expected column: '{spec.source}'")
    return pd.Series([None] * len(frame), index=frame.index, dtype=object)


def measure_fields(columns, pattern: str, required: bool = False, default=None,
                   number_style: str = "plain") -> list[FieldSpec]:
    """One numeric FieldSpec per market column discovered with ``pattern``."""
    return [
        FieldSpec(name=key, source=col, kind="number", required=required,
                  default=default, number_style=number_style)
        for key, col in discover_measure_columns(columns, pattern).items()
    ]


def validate(frame: pd.DataFrame, fields: list[FieldSpec],
             exclude: dict[str, str] | None = None) -> ValidationResult:
    total = len(frame)
    out = pd.DataFrame(index=frame.index)
    keep = pd.Series(True, index=frame.index)

    for spec in fields:
        raw = _column(frame, spec)
        if spec.kind == "raw":
            values = raw.astype(object)
            missing = raw.isna()
        elif spec.kind == "number":
            values = pd.to_numeric(
                raw.map(lambda v: parse_number(v, spec.number_style)), errors="coerce"
            ).astype(float)
            missing = values.isna()
            if not spec.required and spec.default is not None:
                values = values.fillna(float(spec.default))
        else:
            values = raw.map(_clean_text).astype(object)
            missing = values == ""
            if not spec.required:
                values = values.mask(missing, spec.default or "")
        if spec.required:
            keep &= ~missing
        out[spec.name] = values

    for name, pattern in (exclude or {}).items():
        if name not in out.columns:
            raise StructureError(f"Exclusion refers to unknown field '{name}'")
        regex = re.compile(pattern, re.I)
        keep &= ~out[name].map(lambda v: bool(regex.search(str(v))))

    records = out[keep].reset_index(drop=True)
    rejected = total - len(records)
    if rejected:
        logger.debug("Dropped %d of %d rows during validation", rejected, total)
    if records.empty:
        raise NoValidDataError("No valid data found")
    return ValidationResult(records=records, rejected=rejected)


_YEAR_RE = re.compile(r"^\s*([+-]?\d+)")

FILTER_OPS = ("gt", "ge", "lt", "le", "year_between")


def leading_year(value) -> int | None:
    """Integer prefix of ``value`` ("2023-05" -> 2023), or None."""
    m = _YEAR_RE.match(_clean_text(value))
    return int(m.group(1)) if m else None


def _filter_mask(records: pd.DataFrame, spec: dict) -> pd.Series:
    name, op, value = spec["field"], spec["op"], spec["value"]
    if name not in records.columns:
        raise StructureError(f"Filter refers to unknown field '{name}'")
    col = records[name]
    if op == "year_between":
        low, high = value
        years = col.map(leading_year)
        return years.map(lambda y: y is not None and low <= y <= high).astype(bool)
    values = col.astype(float)
    if op == "gt":
        return values > value
    if op == "ge":
        return values >= value
    if op == "lt":
        return values < value
    if op == "le":
        return values <= value
    raise ValueError(f"Unknown filter op '{op}'")


def apply_filters(result: ValidationResult, filters: list[dict] | None) -> ValidationResult:
    """Keep records passing every filter; the rest count as rejected."""
    if not filters:
        return result
    records = result.records
    keep = pd.Series(True, index=records.index)
    for spec in filters:
        keep &= _filter_mask(records, spec)
    kept = records[keep].reset_index(drop=True)
    if kept.empty:
        raise NoValidDataError("No valid rows parsed from CSV after filtering")
    return ValidationResult(records=kept, rejected=result.rejected + len(records) - len(kept))
