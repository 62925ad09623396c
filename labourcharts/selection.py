"""Ranking and unification of top-N lists.

Unification order and display order are separate steps: ``unified_top_n``
decides *which* entries are shown, ``display_order`` decides in what order.
"""

from functools import cmp_to_key

import pandas as pd

TIE_EPSILON = 1e-12


def top_n(frame: pd.DataFrame, measure: str, n: int = 10,
          skip_missing: bool = False) -> pd.DataFrame:
    """First ``n`` rows by ``measure`` descending; ties keep input order."""
    df = frame.reset_index(drop=True)
    if skip_missing:
        df = df[df[measure].notna()]
    ranked = df.assign(_rank_value=df[measure].fillna(0.0).astype(float),
                       _pos=range(len(df)))
    ranked = ranked.sort_values(["_rank_value", "_pos"], ascending=[False, True])
    return ranked.head(n).drop(columns=["_rank_value", "_pos"]).reset_index(drop=True)


def unify(*lists) -> list:
    """Concatenate identifier lists, skipping identifiers already present."""
    seen = set()
    unified = []
    for ids in lists:
        for ident in ids:
            if ident not in seen:
                seen.add(ident)
                unified.append(ident)
    return unified


def unified_top_n(frame: pd.DataFrame, key: str, measures: list[str], n: int = 10,
                  primary: str | None = None, skip_missing: bool = False) -> pd.DataFrame:
    """Rows of the union of the per-measure top-N lists, in unification order.

    The ``primary`` measure's list comes first (defaults to the first
    measure); the other lists follow in the order given.
    """
    if not measures:
        return frame.iloc[0:0].reset_index(drop=True)
    order = list(measures)
    if primary is not None:
        if primary not in order:
            raise ValueError(f"Primary measure '{primary}' is not among {order}")
        order.remove(primary)
        order.insert(0, primary)

    lists = [top_n(frame, m, n, skip_missing=skip_missing)[key].tolist() for m in order]
    ids = unify(*lists)
    first_rows = frame.drop_duplicates(subset=[key]).set_index(key, drop=False)
    return first_rows.loc[ids].reset_index(drop=True)


def display_order(frame: pd.DataFrame, key: str, measures: list[str]) -> pd.DataFrame:
    """Descending by each measure in turn, then ascending by ``key``.

    Differences within ``TIE_EPSILON`` count as ties and fall through to the
    next measure.
    """
    rows = frame.reset_index(drop=True)
    measures = list(measures)
    values = rows[measures].fillna(0.0).astype(float).to_dict("index") if measures else {}
    labels = rows[key].astype(str).tolist()

    # a plain multi-column sort would treat 1e-13 differences as meaningful
    def _compare(a, b):
        for m in measures:
            diff = values[b][m] - values[a][m]
            if abs(diff) > TIE_EPSILON:
                return -1 if diff < 0 else 1
        if labels[a] < labels[b]:
            return -1
        if labels[a] > labels[b]:
            return 1
        return 0

    indices = sorted(range(len(rows)), key=cmp_to_key(_compare))
    return rows.iloc[indices].reset_index(drop=True)


def common_keys(frames, key: str) -> list:
    """Sorted keys present in every frame; empty when any frame is empty."""
    frames = list(frames)
    if not frames or any(f is None or f.empty for f in frames):
        return []
    shared = set(frames[0][key])
    for f in frames[1:]:
        shared &= set(f[key])
    return sorted(shared)


def distinct(records: pd.DataFrame, field: str, sort: bool = False) -> list:
    """Option list for a selection UI: unique values of ``field``."""
    values = [v for v in records[field].drop_duplicates().tolist() if v not in ("", None)]
    return sorted(values) if sort else values
