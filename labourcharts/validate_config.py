"""Validate the chart configuration."""

import sys
from pathlib import Path

from labourcharts.charts import BUILDERS
from labourcharts.config import DEFAULT_CONFIG, check_chart, load_chart_configs


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    cfg_path = Path(argv[0]) if argv else DEFAULT_CONFIG
    try:
        charts = load_chart_configs(cfg_path)
    except (FileNotFoundError, ValueError) as exc:
        raise SystemExit(f"Invalid chart config: {exc}")

    problems = []
    for entry in charts:
        problems.extend(check_chart(entry, BUILDERS))

    if problems:
        raise SystemExit("Invalid chart config:\n- " + "\n- ".join(problems))
    print(f"OK: {cfg_path} defines {len(charts)} valid charts.")


if __name__ == "__main__":
    main()
