import json
import os
import re
from pathlib import Path

from labourcharts.fetch import DEFAULT_DATA_DIR, DEFAULT_TIMEOUT
from labourcharts.validation import FIELD_KINDS, FILTER_OPS, NUMBER_STYLES

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG = BASE_DIR / "config" / "charts.json"
DEFAULT_OUTPUT_DIR = BASE_DIR / "data" / "processed" / "charts"

FORMATS = ("delimited", "csv", "parquet")

_CONFIG_CACHE = {}


def settings_from_env() -> dict:
    data_dir = os.getenv("CHARTS_DATA_DIR")
    output_dir = os.getenv("CHARTS_OUTPUT_DIR")
    return {
        "config": Path(os.getenv("CHARTS_CONFIG") or DEFAULT_CONFIG),
        "data_dir": Path(data_dir) if data_dir else DEFAULT_DATA_DIR,
        "base_url": os.getenv("CHARTS_BASE_URL") or None,
        "output_dir": Path(output_dir) if output_dir else DEFAULT_OUTPUT_DIR,
        "timeout": float(os.getenv("FETCH_TIMEOUT", DEFAULT_TIMEOUT)),
        "max_workers": int(os.getenv("LOADER_MAX_WORKERS", "4")),
    }


def _merge_defaults(entry: dict, defaults: dict) -> dict:
    merged = dict(entry)
    for section in ("options", "theme"):
        combined = dict(defaults.get(section) or {})
        combined.update(entry.get(section) or {})
        merged[section] = combined
    return merged


def load_chart_configs(path: Path | None = None) -> list[dict]:
    """Chart entries from the JSON config, with shared defaults merged in.

    The file is read once per path and cached for the process.
    """
    path = Path(path or DEFAULT_CONFIG).resolve()
    if path in _CONFIG_CACHE:
        return _CONFIG_CACHE[path]
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Missing chart config: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc

    defaults = data.get("defaults", {})
    charts = [_merge_defaults(entry, defaults) for entry in data.get("charts", [])]
    ids = [c.get("id") for c in charts]
    dupes = sorted({i for i in ids if ids.count(i) > 1})
    if dupes:
        raise ValueError(f"Duplicate chart ids in {path}: {', '.join(map(str, dupes))}")
    _CONFIG_CACHE[path] = charts
    return charts


def clear_cache():
    _CONFIG_CACHE.clear()


def _check_regex(pattern, where, problems):
    try:
        return re.compile(pattern)
    except (re.error, TypeError) as exc:
        problems.append(f"{where}: invalid regex '{pattern}': {exc}")
        return None


def check_chart(entry: dict, kinds) -> list[str]:
    """Problems with one chart entry; an empty list means it is usable."""
    problems = []
    cid = entry.get("id") or "<missing id>"
    if not entry.get("id"):
        problems.append("Chart entry without an 'id'.")
    if entry.get("kind") not in kinds:
        problems.append(f"{cid}: unknown kind '{entry.get('kind')}'")
    if not entry.get("file") and not entry.get("market_files"):
        problems.append(f"{cid}: needs 'file' or 'market_files'")
    if entry.get("format", "delimited") not in FORMATS:
        problems.append(f"{cid}: unknown format '{entry.get('format')}'")

    for spec in entry.get("fields", []):
        if "name" not in spec:
            problems.append(f"{cid}: field without 'name'")
        if spec.get("kind", "text") not in FIELD_KINDS:
            problems.append(f"{cid}: field '{spec.get('name')}' has unknown kind '{spec.get('kind')}'")
        if spec.get("number_style", "plain") not in NUMBER_STYLES:
            problems.append(f"{cid}: field '{spec.get('name')}' has unknown number style")

    measures = entry.get("measures")
    if measures:
        if "pattern" not in measures:
            problems.append(f"{cid}: 'measures' needs a 'pattern'")
        else:
            regex = _check_regex(measures["pattern"], cid, problems)
            if regex is not None and regex.groups != 1:
                problems.append(f"{cid}: measure pattern needs exactly one capture group")

    for name, pattern in (entry.get("exclude") or {}).items():
        _check_regex(pattern, f"{cid} exclude '{name}'", problems)

    for spec in entry.get("filters", []):
        if spec.get("op") not in FILTER_OPS:
            problems.append(f"{cid}: unknown filter op '{spec.get('op')}'")
    return problems
