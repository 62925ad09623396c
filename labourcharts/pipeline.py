"""Chart components and the batch entry point.

A component owns one chart: it fetches and validates the chart's files once
(``loading -> ready | error``) and afterwards renders any selection from the
stored records without touching the network again.
"""

from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

import pandas as pd
from dotenv import load_dotenv

from labourcharts.charts import BUILDERS, ChartData, market_key
from labourcharts.config import load_chart_configs, settings_from_env
from labourcharts.errors import PipelineError, StructureError
from labourcharts.fetch import fetch_bytes, fetch_json
from labourcharts.parsing import parse_table, read_csv_text, read_parquet_bytes
from labourcharts.series import Theme
from labourcharts.validation import FieldSpec, apply_filters, measure_fields, validate

logger = logging.getLogger(__name__)

LOADING = "loading"
READY = "ready"
ERROR = "error"


class ChartComponent:
    def __init__(self, config: dict, base_url: str | None = None,
                 data_dir: Path | None = None, timeout: float | None = None):
        if config.get("kind") not in BUILDERS:
            raise ValueError(f"Unknown chart kind '{config.get('kind')}' for {config.get('id')}")
        self.config = config
        self.id = config.get("id")
        self.base_url = base_url
        self.data_dir = data_dir
        self.timeout = timeout
        self.state = LOADING
        self.error = None
        self.rejected = 0
        self.data = None
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self):
        """Tear the component down; a load still in flight is discarded."""
        self._closed.set()

    def _fetch(self, name: str) -> bytes:
        return fetch_bytes(name, base_url=self.base_url, data_dir=self.data_dir,
                           timeout=self.timeout)

    def _frame(self, raw: bytes) -> tuple[pd.DataFrame, int]:
        fmt = self.config.get("format", "delimited")
        if fmt == "parquet":
            return read_parquet_bytes(raw, columns=self.config.get("columns")), 0
        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise StructureError(f"File is not valid UTF-8: {exc}") from exc
        if fmt == "csv":
            return read_csv_text(text), 0
        frame = parse_table(text, **(self.config.get("parse") or {}))
        return frame, frame.attrs.get("dropped", 0)

    def _records(self, raw: bytes) -> tuple[pd.DataFrame, list[str], int]:
        """Parse, validate and filter one file; returns records, market keys
        and the number of rows dropped on the way."""
        frame, dropped = self._frame(raw)
        fields = [FieldSpec.from_dict(f) for f in self.config.get("fields", [])]
        markets = []
        measures = self.config.get("measures")
        if measures:
            found = measure_fields(
                frame.columns, measures["pattern"],
                required=measures.get("required", False),
                default=measures.get("default"),
                number_style=measures.get("number_style", "plain"),
            )
            fields.extend(found)
            markets = [f.name for f in found]
        result = validate(frame, fields, exclude=self.config.get("exclude"))
        result = apply_filters(result, self.config.get("filters"))
        return result.records, markets, dropped + result.rejected

    def load(self) -> str:
        """Fetch and validate every declared file. Never retries."""
        if self.closed:
            return self.state
        self.state, self.error = LOADING, None
        try:
            data = self._load_data()
        except PipelineError as exc:
            if self.closed:
                logger.debug("Discarding failed load of closed chart %s", self.id)
                return self.state
            logger.warning("Chart %s failed to load: %s", self.id, exc)
            self.state, self.error = ERROR, str(exc)
            return self.state
        if self.closed:
            logger.debug("Discarding load of closed chart %s", self.id)
            return self.state
        self.data = data
        self.state = READY
        if self.rejected:
            logger.debug("Chart %s rejected %d rows", self.id, self.rejected)
        return self.state

    def _load_data(self) -> ChartData:
        cfg = self.config
        options = cfg.get("options") or {}
        data = ChartData(options=options, theme=Theme.from_dict(cfg.get("theme")))
        rejected = 0

        if cfg.get("market_files"):
            aliases = options.get("aliases", {})
            space = options.get("key_space")
            for name, filename in cfg["market_files"].items():
                raw = self._fetch(filename)
                if self.closed:
                    return data
                records, _, dropped = self._records(raw)
                key = market_key(name, aliases, space)
                data.by_market[key] = records
                data.markets.append(key)
                rejected += dropped
        else:
            raw = self._fetch(cfg["file"])
            if self.closed:
                return data
            data.records, data.markets, rejected = self._records(raw)

        for name, filename in (cfg.get("side_files") or {}).items():
            data.extras[name] = fetch_json(filename, base_url=self.base_url,
                                           data_dir=self.data_dir, timeout=self.timeout)
        self.rejected = rejected
        return data

    def render(self, selection: dict | None = None, **kwargs) -> dict:
        """Derive the chart for ``selection`` from the stored records."""
        if self.state != READY:
            raise RuntimeError(f"Chart {self.id} is not ready (state: {self.state})")
        selection = {**(selection or {}), **kwargs}
        return BUILDERS[self.config["kind"]](self.data, selection)

    def options(self, selection: dict | None = None) -> dict:
        """Dropdown option lists for the selection UI."""
        return self.render(selection).get("options", {})

    def status(self) -> dict:
        return {"id": self.id, "kind": self.config.get("kind"), "state": self.state,
                "error": self.error, "rejected": self.rejected}


def load_components(components: list[ChartComponent], max_workers: int = 4) -> list[ChartComponent]:
    """Load independent components in parallel threads."""
    if not components:
        return components
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        future_map = {pool.submit(c.load): c for c in components}
        for future in as_completed(future_map):
            component = future_map[future]
            future.result()
            logger.debug("Chart %s finished loading: %s", component.id, component.state)
    return components


def _json_default(value):
    if hasattr(value, "item"):
        return value.item()
    if hasattr(value, "tolist"):
        return value.tolist()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def write_json(path: Path, payload):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False, default=_json_default)


def main():
    load_dotenv()
    settings = settings_from_env()
    out_dir = Path(settings["output_dir"])
    out_dir.mkdir(parents=True, exist_ok=True)

    configs = load_chart_configs(settings["config"])
    components = [
        ChartComponent(cfg, base_url=settings["base_url"], data_dir=settings["data_dir"],
                       timeout=settings["timeout"])
        for cfg in configs
    ]
    load_components(components, settings["max_workers"])

    statuses = []
    for component in components:
        status = component.status()
        statuses.append(status)
        if component.state != READY:
            print(f"{component.id}: {component.error}")
            continue
        write_json(out_dir / f"{component.id}.json",
                   component.render(component.config.get("selection")))
        print(f"{component.id}: wrote chart ({component.rejected} rows rejected)")

    write_json(out_dir / "status.json", statuses)
    ready = sum(1 for s in statuses if s["state"] == READY)
    print(f"Charts ready: {ready}/{len(statuses)} -> {out_dir}")
    print("Chart pipeline complete.")


if __name__ == "__main__":
    main()
