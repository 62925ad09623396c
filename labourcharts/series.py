"""Chart-ready output for the external renderer.

The contract is ``{"labels": [...], "datasets": [{"label", "data", ...}]}``.
Every ``data`` list is as long as ``labels``; a label missing from a
measure is an explicit 0.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import pandas as pd

DEFAULT_PALETTE = ("#3b82f6", "#ec4899", "#22c55e", "#f97316", "#a855f7", "#06b6d4")


@dataclass(frozen=True)
class Theme:
    palette: tuple = DEFAULT_PALETTE
    colors: dict = field(default_factory=dict)
    fill_alpha: str = "33"

    def color(self, key: str, index: int = 0) -> str:
        if key in self.colors:
            return self.colors[key]
        return self.palette[index % len(self.palette)]

    @classmethod
    def from_dict(cls, data: dict | None) -> "Theme":
        data = data or {}
        return cls(
            palette=tuple(data.get("palette") or DEFAULT_PALETTE),
            colors=dict(data.get("colors") or {}),
            fill_alpha=data.get("fill_alpha", "33"),
        )


def _number(value, scale: float) -> float:
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number * scale


def build_series(labels, measures: dict, visible=None, scale: float = 1.0,
                 theme: Theme | None = None, names: dict | None = None,
                 meta: dict | None = None) -> dict:
    """One dataset per visible measure, aligned to ``labels``.

    ``measures`` maps series key -> {label: value}, in display order.
    ``visible`` restricts the output to a subset of keys without touching the
    aggregated data. ``scale`` is applied here, never upstream.
    """
    theme = theme or Theme()
    names = names or {}
    meta = meta or {}
    labels = [str(label) for label in labels]
    keys = list(measures)
    shown = keys if visible is None else [k for k in keys if k in set(visible)]

    datasets = []
    for key in shown:
        source = measures[key] or {}
        color = theme.color(key, keys.index(key))
        datasets.append({
            "key": key,
            "label": names.get(key, key),
            "data": [_number(source.get(label), scale) for label in labels],
            "borderColor": color,
            "backgroundColor": color + theme.fill_alpha,
            **meta.get(key, {}),
        })
    return {"labels": labels, "datasets": datasets}


def frame_measures(frame: pd.DataFrame, key: str, columns) -> dict:
    """``{column: {key value: cell}}`` for each column of ``frame``."""
    out = {}
    for col in columns:
        if col in frame.columns:
            out[col] = dict(zip(frame[key].astype(str), frame[col]))
        else:
            out[col] = {}
    return out


def constant_dataset(label: str, value: float, length: int, **meta) -> dict:
    """A flat reference line, e.g. the average share across all rows."""
    return {"label": label, "data": [_number(value, 1.0)] * length, **meta}


def heatmap_cells(rows, columns, values: dict, absolute: dict | None = None) -> list[dict]:
    """Flat cell list for a heatmap; missing cells are 0."""
    absolute = absolute or {}
    cells = []
    for row in rows:
        for col in columns:
            cells.append({
                "row": row,
                "column": col,
                "value": _number(values.get((row, col)), 1.0),
                "absolute": _number(absolute.get((row, col)), 1.0),
            })
    return cells
