"""Chart builders.

Each builder takes the records a chart loaded and the current selection
(country toggles, dropdown choices) and derives the chart from scratch.
Builders never fetch or parse; they only aggregate, select and shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import pandas as pd

from labourcharts.aggregate import (
    UNCATEGORIZED,
    add_percentages,
    aggregate,
    group_mapping,
    label_counts as count_labels,
    mean,
    normalize_key,
    percent_within,
    rollup,
)
from labourcharts.selection import (
    common_keys,
    display_order,
    distinct,
    top_n,
    unified_top_n,
    unify,
)
from labourcharts.series import Theme, build_series, constant_dataset, frame_measures, heatmap_cells
from labourcharts.validation import leading_year


@dataclass
class ChartData:
    """Everything a builder may read: loaded records plus chart options."""

    records: pd.DataFrame | None = None
    by_market: dict = field(default_factory=dict)
    markets: list = field(default_factory=list)
    options: dict = field(default_factory=dict)
    theme: Theme = field(default_factory=Theme)
    extras: dict = field(default_factory=dict)


# ---------- Markets ----------

def market_key(name: str, aliases: dict, space: str | None = None) -> str:
    if name in aliases:
        return aliases[name]
    return "_".join(name.split()) if space == "_" else name


def market_label(name: str, key: str, display_names: dict, space: str | None = None) -> str:
    if name in display_names:
        return display_names[name]
    if key in display_names:
        return display_names[key]
    return name.replace("_", " ") if space == "_" else name


def selected_markets(data: ChartData, selection: dict) -> list[tuple[str, str]]:
    """``(key, display name)`` for each requested market present in the data."""
    opts = data.options
    aliases = opts.get("aliases", {})
    display_names = opts.get("display_names", {})
    space = opts.get("key_space")
    names = selection.get("countries") or opts.get("countries") or list(data.markets)
    available = set(data.markets)

    out = []
    for name in names:
        key = market_key(name, aliases, space)
        if key in available and key not in [k for k, _ in out]:
            out.append((key, market_label(name, key, display_names, space)))
    return out


def visible_markets(markets, selection: dict) -> list[tuple[str, str]]:
    hidden = set(selection.get("hidden") or [])
    return [(k, d) for k, d in markets if k not in hidden and d not in hidden]


def primary_market(data: ChartData, selection: dict, keys: list[str]) -> str | None:
    """The explicitly requested primary market, else the first visible one."""
    opts = data.options
    wanted = selection.get("primary") or opts.get("primary")
    if wanted:
        wanted = market_key(wanted, opts.get("aliases", {}), opts.get("key_space"))
        if wanted in keys:
            return wanted
    return keys[0] if keys else None


def _names(markets, template: str = "{name}") -> dict:
    return {k: template.format(name=d) for k, d in markets}


def _empty_chart() -> dict:
    return {"labels": [], "datasets": []}


def _order(frame: pd.DataFrame, key: str, keys: list[str], primary: str | None, how: str):
    if frame.empty or not keys:
        return frame
    if how == "display":
        ranked = [primary] + [k for k in keys if k != primary]
        return display_order(frame, key, ranked)
    if how == "primary":
        return top_n(frame, primary, len(frame))
    return frame


# ---------- Builders ----------

def ranked_union(data: ChartData, selection: dict) -> dict:
    """Unified top-N entities across visible markets (job titles, skills)."""
    opts = data.options
    key = opts.get("key", "name")
    records = data.records
    n = int(opts.get("top_n", 10))
    scale = float(opts.get("scale", 1.0))
    selected = selected_markets(data, selection)
    visible = visible_markets(selected, selection)
    keys = [k for k, _ in visible]
    names = _names(selected, opts.get("series_label", "{name}"))
    entities = distinct(records, key, sort=opts.get("sort_options", False))

    result = {
        "markets": [{"key": k, "name": d, "visible": k in keys} for k, d in selected],
        "options": {"entities": entities},
    }

    if opts.get("per_market"):
        charts = {}
        for k in keys:
            top = top_n(records, k, n, skip_missing=opts.get("skip_missing", False))
            charts[k] = build_series(top[key], frame_measures(top, key, [k]),
                                     scale=scale, theme=data.theme, names=names)
        result["charts"] = charts
        ordered = top_n(records, keys[0], n) if keys else records.iloc[0:0]
    else:
        primary = primary_market(data, selection, keys)
        unified = unified_top_n(records, key, keys, n, primary=primary,
                                skip_missing=opts.get("skip_missing", False))
        ordered = _order(unified, key, keys, primary, opts.get("order", "display"))
        result["chart"] = build_series(
            ordered[key], frame_measures(ordered, key, [k for k, _ in selected]),
            visible=keys, scale=scale, theme=data.theme, names=names,
        )
        result["primary"] = primary

    entity = selection.get("entity")
    if entity not in entities:
        if len(ordered):
            entity = ordered[key].iloc[0]
        else:
            entity = entities[0] if entities else None
    detail = {}
    if entity is not None:
        row = records[records[key] == entity].iloc[0]
        for k, d in selected:
            value = row.get(k)
            detail[d] = None if pd.isna(value) else float(value) * scale
    result["entity"] = entity
    result["detail"] = detail
    return result


def category_share(data: ChartData, selection: dict) -> dict:
    """Category percentages per market, with an optional group rollup and a
    drill-down into one category's subcategories."""
    opts = data.options
    key = opts.get("key", "name")
    cat = opts.get("category_field", "category")
    sub = opts.get("subcategory_field", "subcategory")
    n = int(opts.get("top_n", 10))
    records = data.records
    selected = selected_markets(data, selection)
    visible = visible_markets(selected, selection)
    keys = [k for k, _ in visible]
    pct = {k: k + "_pct" for k in keys}
    names = _names(visible, opts.get("series_label", "{name} Percentage"))

    if not keys:
        return {"chart": _empty_chart(), "categories": [], "category": None,
                "skills": [], "subcategory_chart": _empty_chart()}

    primary = primary_market(data, selection, keys)
    groups = add_percentages(
        aggregate(records, cat, keys, exclude=opts.get("exclude", [UNCATEGORIZED])), keys)
    groups = top_n(groups, pct[primary], len(groups))

    def _pct_measures(frame, label_col):
        return {k: dict(zip(frame[label_col].astype(str), frame[pct[k]])) for k in keys}

    categories = groups[cat].tolist()
    result = {"primary": primary, "categories": categories,
              "options": {"categories": categories}}
    if opts.get("rollup"):
        mapping = group_mapping(data.extras.get("groups"))
        rolled = rollup(groups, mapping, cat, list(pct.values()),
                        default=opts.get("rollup_default", "Other"))
        rolled = top_n(rolled, pct[primary], len(rolled))
        if selection.get("top_only", True):
            rolled = rolled.head(int(opts.get("top_groups", 10)))
        result["chart"] = build_series(rolled["group"], _pct_measures(rolled, "group"),
                                       theme=data.theme, names=names)
        by_cat = groups.set_index(cat)
        result["members"] = {
            g: [{"category": c, **{d: float(by_cat.at[c, pct[k]]) for k, d in visible}}
                for c in members]
            for g, members in zip(rolled["group"], rolled["members"])
        }
    else:
        result["chart"] = build_series(groups[cat], _pct_measures(groups, cat),
                                       theme=data.theme, names=names)

    chosen = selection.get("category")
    if chosen not in categories:
        chosen = categories[0] if categories else None
    result["category"] = chosen

    in_cat = records[records[cat].map(normalize_key) == chosen]
    in_cat = top_n(in_cat, primary, len(in_cat))
    result["skills"] = [
        {"name": r[key], "subcategory": r.get(sub, ""),
         **{d: (0.0 if pd.isna(r[k]) else float(r[k])) for k, d in visible}}
        for _, r in in_cat.iterrows()
    ]

    if in_cat.empty or sub not in in_cat.columns:
        result["subcategory_chart"] = _empty_chart()
        return result
    subs = add_percentages(aggregate(in_cat, sub, keys), keys)
    unified = unified_top_n(subs, sub, [pct[k] for k in keys], n, primary=pct[primary])
    unified = top_n(unified, pct[primary], len(unified))
    result["subcategory_chart"] = build_series(
        unified[sub], _pct_measures(unified, sub), theme=data.theme,
        names=_names(visible, opts.get("subcategory_label", "{name} Subcategory %")),
    )
    return result


def title_share(data: ChartData, selection: dict) -> dict:
    """For one skill shared by every selected market: the job titles that
    account for the largest share of its postings in each market."""
    opts = data.options
    n = int(opts.get("top_n", 10))
    selected = selected_markets(data, selection)
    visible = visible_markets(selected, selection)
    keys = [k for k, _ in visible]
    frames = [data.by_market.get(k) for k, _ in selected]
    skills = common_keys(frames, "skill") if selected else []

    skill = selection.get("skill")
    if skill not in skills:
        skill = skills[0] if skills else None
    result = {"options": {"skills": skills}, "skill": skill}
    if skill is None or not keys:
        result.update(chart=_empty_chart(), stats={"total_titles": 0, "averages": {}})
        return result

    tops = {}
    for k in keys:
        rows = data.by_market[k]
        rows = percent_within(rows[rows["skill"] == skill], "skill", "count",
                              name="share", scale=1.0)
        tops[k] = top_n(rows, "share", n)
    titles = unify(*[tops[k]["title"].tolist() for k in keys])
    table = pd.DataFrame({"title": titles})
    for k in keys:
        shares = dict(zip(tops[k]["title"], tops[k]["share"]))
        table[k] = [float(shares.get(t, 0.0)) for t in titles]
    table = display_order(table, "title", keys)

    result["chart"] = build_series(
        table["title"], frame_measures(table, "title", keys), scale=100.0,
        theme=data.theme, names=_names(visible, opts.get("series_label", "{name}")),
    )
    averages = {}
    for k, d in visible:
        positive = [v * 100.0 for v in table[k] if v > 0]
        averages[d] = mean(positive)
    result["stats"] = {"total_titles": len(titles), "averages": averages}
    return result


def hierarchy_heatmap(data: ChartData, selection: dict) -> dict:
    """Share of each hierarchy level within a skill's postings, per market."""
    opts = data.options
    level_field = opts.get("level_field", "level")
    records = data.records
    selected = selected_markets(data, selection)
    visible = visible_markets(selected, selection)
    skills = distinct(records, "skill", sort=True)

    chosen = [s for s in (selection.get("skills") or []) if s in skills]
    if not chosen and selection.get("skills") is None:
        chosen = skills[: int(opts.get("default_skills", 3))]
    levels = sorted(distinct(records, level_field))

    rows, values, absolute = [], {}, {}
    for skill in chosen:
        skill_rows = records[records["skill"] == skill]
        firsts = skill_rows.drop_duplicates(subset=[level_field], keep="first").set_index(level_field)
        for k, d in visible:
            label = f"{skill} - {d}"
            rows.append(label)
            total = float(skill_rows[k].fillna(0.0).sum())
            for level in levels:
                if level not in firsts.index:
                    continue
                raw = firsts.at[level, k]
                raw = 0.0 if pd.isna(raw) else float(raw)
                absolute[(label, level)] = raw
                values[(label, level)] = raw / total * 100.0 if total > 0 else 0.0

    measures = {row: {level: values.get((row, level), 0.0) for level in levels} for row in rows}
    return {
        "options": {"skills": skills},
        "skills": chosen,
        "chart": build_series(levels, measures, theme=data.theme),
        "cells": heatmap_cells(rows, levels, values, absolute),
        "stats": {"hierarchy_levels": len(levels) if rows else 0,
                  "selected_skills": len(chosen)},
    }


def _plain_series(frame: pd.DataFrame, label_field: str, series: list[dict],
                  theme: Theme) -> dict:
    fields = [s["field"] for s in series]
    measures = frame_measures(frame, label_field, fields)
    names = {s["field"]: s.get("label", s["field"]) for s in series}
    return build_series(frame[label_field], measures, theme=theme, names=names,
                        meta={s["field"]: s.get("meta", {}) for s in series})


def timeseries(data: ChartData, selection: dict) -> dict:
    """Values over years, ascending by year."""
    opts = data.options
    label_field = opts.get("label_field", "year")
    df = data.records.copy()
    df["_year"] = df[label_field].map(leading_year)
    df = df.sort_values("_year", kind="mergesort").drop(columns=["_year"])
    return {"chart": _plain_series(df, label_field, opts["series"], data.theme)}


def threshold_share(data: ChartData, selection: dict) -> dict:
    """Per-market shares with an average reference line.

    Markets below the posting threshold are already filtered at load time.
    """
    opts = data.options
    label_field = opts.get("label_field", "country")
    value_field = opts.get("value_field", "share")
    df = data.records
    chart = _plain_series(df, label_field, opts["series"], data.theme)
    average = mean(df[value_field])
    chart["datasets"].append(
        constant_dataset(opts.get("average_label", "Average share"), average, len(df), type="line"))
    extra = opts.get("tooltip_fields", [])
    return {
        "chart": chart,
        "average": average,
        "tooltips": [{f: row[f] for f in [label_field] + extra} for _, row in df.iterrows()],
    }


def top_share(data: ChartData, selection: dict) -> dict:
    """Top rows by one value, optionally against the average of all rows."""
    opts = data.options
    label_field = opts.get("label_field", "title")
    value_field = opts.get("value_field", "share")
    df = data.records
    top = top_n(df, value_field, int(opts.get("top_n", 20)))
    chart = _plain_series(top, label_field, opts["series"], data.theme)
    result = {"chart": chart,
              "stats": {"max": float(top[value_field].max()) if len(top) else 0.0,
                        "total": float(top[value_field].sum())}}
    if opts.get("average_label"):
        average = mean(df[value_field])
        chart["datasets"].insert(
            0, constant_dataset(opts["average_label"], average, len(top), type="line"))
        result["average"] = average
    return result


def label_counts(data: ChartData, selection: dict) -> dict:
    """Positive-label counts per market from a labelled posting dump."""
    opts = data.options
    key = opts.get("label_field", "country")
    counts = count_labels(data.records, key, opts.get("labels_field", "labels"),
                          opts.get("label", "Green Label"), opts.get("positive", 1),
                          total_name="total", positive_name="positive")
    counts = counts.assign(share=[p / t * 100.0 if t else 0.0
                                  for p, t in zip(counts["positive"], counts["total"])])
    chart = build_series(
        counts[key], frame_measures(counts, key, ["positive", "total", "share"]),
        visible=selection.get("series") or ["positive", "total"], theme=data.theme,
        names={"positive": opts.get("positive_label", "Green jobs"),
               "total": opts.get("total_label", "Total jobs scraped"),
               "share": opts.get("share_label", "Green share (%)")},
    )
    stats = {row[key]: {"green_jobs": int(row["positive"]), "total_jobs": int(row["total"])}
             for _, row in counts.iterrows()}
    return {"chart": chart, "stats": stats}


BUILDERS = {
    "ranked_union": ranked_union,
    "category_share": category_share,
    "title_share": title_share,
    "hierarchy_heatmap": hierarchy_heatmap,
    "timeseries": timeseries,
    "threshold_share": threshold_share,
    "top_share": top_share,
    "label_counts": label_counts,
}
