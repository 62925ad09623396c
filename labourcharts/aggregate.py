import json
import re

import pandas as pd

_WS_RE = re.compile(r"\s+")

UNCATEGORIZED = "Uncategorized"


def normalize_key(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return _WS_RE.sub(" ", str(value)).strip()


def aggregate(records: pd.DataFrame, by, measures: list[str],
              exclude=None, count_name: str = "count") -> pd.DataFrame:
    """Sum ``measures`` per distinct key of ``by``, in first-seen key order.

    Rows whose key is listed in ``exclude`` are removed before grouping, so a
    sentinel such as "Uncategorized" contributes to no group and to no total.
    Absent measure values count as zero.
    """
    keys = [by] if isinstance(by, str) else list(by)
    df = records.copy()
    for key in keys:
        df[key] = df[key].map(normalize_key)
    df = df[(df[keys] != "").all(axis=1)]
    if exclude:
        excluded = {normalize_key(e) for e in exclude}
        df = df[~df[keys[0]].isin(excluded)]

    if df.empty:
        return pd.DataFrame(columns=keys + list(measures) + [count_name])

    df = df.copy()
    for m in measures:
        df[m] = df[m].astype(float).fillna(0.0)
    df["_n"] = 1
    grouped = (df.groupby(keys, sort=False)
                 .agg(**{m: (m, "sum") for m in measures},
                      **{count_name: ("_n", "sum")})
                 .reset_index())
    return grouped[keys + list(measures) + [count_name]]


def add_percentages(groups: pd.DataFrame, measures: list[str],
                    suffix: str = "_pct") -> pd.DataFrame:
    """Second pass: each group's share of the measure's grand total, in %."""
    out = groups.copy()
    for m in measures:
        values = out[m].fillna(0.0).astype(float)
        total = float(values.sum())
        out[m + suffix] = values / total * 100.0 if total else 0.0
    return out


def percent_within(records: pd.DataFrame, by: str, measure: str,
                   name: str | None = None, scale: float = 100.0) -> pd.DataFrame:
    """Share of each record's ``measure`` within its ``by`` group."""
    out = records.copy()
    values = out[measure].fillna(0.0).astype(float)
    totals = values.groupby(out[by]).transform("sum")
    share = (values / totals.where(totals != 0)).fillna(0.0) * scale
    out[name or f"{measure}_pct"] = share
    return out


def rollup(groups: pd.DataFrame, mapping: dict[str, str], key: str,
           columns: list[str], default: str = "Other",
           group_name: str = "group") -> pd.DataFrame:
    """Sum ``columns`` of categories into their super-groups.

    ``mapping`` is category -> group; unmapped categories land in
    ``default``. Each output row remembers its member categories.
    """
    if groups.empty:
        return pd.DataFrame(columns=[group_name] + list(columns) + ["members"])
    df = groups.copy()
    df[group_name] = df[key].map(lambda c: mapping.get(normalize_key(c), default))
    out = (df.groupby(group_name, sort=False)
             .agg(**{c: (c, "sum") for c in columns},
                  members=(key, list))
             .reset_index())
    return out


def group_mapping(groups_doc) -> dict[str, str]:
    """Invert ``[{"group": ..., "categories": [...]}]`` into category -> group."""
    mapping = {}
    if not isinstance(groups_doc, list):
        return mapping
    for entry in groups_doc:
        if not isinstance(entry, dict):
            continue
        for cat in entry.get("categories") or []:
            cat = normalize_key(cat)
            if cat:
                mapping[cat] = entry.get("group")
    return mapping


def mean(values) -> float:
    values = [float(v) for v in values]
    return sum(values) / len(values) if values else 0.0


def _label_value(raw, label):
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return None
    if isinstance(raw, dict):
        return raw.get(label)
    return None


def label_counts(frame: pd.DataFrame, key: str, labels_column: str, label: str,
                 positive=1, total_name: str = "total",
                 positive_name: str = "positive") -> pd.DataFrame:
    """Per ``key``: number of rows, and rows whose labels carry ``label == positive``.

    The labels cell may hold a dict or a JSON object string; unreadable cells
    count towards the total only.
    """
    df = frame[[key, labels_column]].copy()
    df[key] = df[key].map(normalize_key)
    df = df[df[key] != ""]
    if df.empty:
        return pd.DataFrame(columns=[key, positive_name, total_name])
    df["_hit"] = df[labels_column].map(lambda raw: _label_value(raw, label) == positive)
    return (df.groupby(key, sort=False)
              .agg(**{positive_name: ("_hit", "sum"), total_name: ("_hit", "size")})
              .astype({positive_name: int, total_name: int})
              .reset_index())
