"""
Chart pipeline test configuration

Shared fixtures for testing pipeline components without network access.
"""

import json
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from labourcharts.config import clear_cache


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def scenario_frame() -> pd.DataFrame:
    """Three skills ranked differently by two measures."""
    return pd.DataFrame([
        {"skill": "Java", "A": 10.0, "B": 5.0},
        {"skill": "Python", "A": 8.0, "B": 12.0},
        {"skill": "SQL", "A": 6.0, "B": 6.0},
    ])


@pytest.fixture
def demand_records() -> pd.DataFrame:
    """Validated job-demand records with one missing UAE-only title value."""
    return pd.DataFrame({
        "title": ["Engineer", "Nurse", "Teacher", "Driver"],
        "US": [5.0, 3.0, 1.0, np.nan],
        "United Arab Emirates": [1.0, 2.0, 4.0, 3.0],
    })


@pytest.fixture
def demand_options() -> dict:
    return {
        "key": "title",
        "top_n": 2,
        "scale": 10,
        "countries": ["United States", "UAE"],
        "aliases": {"United States": "US", "UAE": "United Arab Emirates"},
        "display_names": {"US": "United States", "United Arab Emirates": "UAE"},
    }


@pytest.fixture
def category_records() -> pd.DataFrame:
    """Soft skills with categories, including the sentinel category."""
    return pd.DataFrame([
        {"skill": "Public speaking", "category": "Communication", "subcategory": "Speaking",
         "US": 4.0, "UAE": 1.0},
        {"skill": "Report writing", "category": "Communication ", "subcategory": "Writing",
         "US": 2.0, "UAE": 1.0},
        {"skill": "Coaching", "category": "Leadership", "subcategory": "Mentoring",
         "US": 2.0, "UAE": 6.0},
        {"skill": "Misc", "category": "Uncategorized", "subcategory": "",
         "US": 100.0, "UAE": 100.0},
    ])


@pytest.fixture
def fig12_text() -> str:
    """Job demand export: title followed by count/percentage pairs."""
    return (
        "Job Title,US Count,Standardized Percentage US,UAE Count,"
        "Standardized Percentage United Arab Emirates\n"
        "Software Engineer,120,5.0,10,1.0\n"
        "\"Nurse, registered\",80,3.0,20,2.0\n"
        "Teacher,30,1.0,40,4.0\n"
        "Répétiteur scolaire,5,9.9,5,9.9\n"
        "Driver,,,30,3.0\n"
        ",1,1,1,1\n"
    )


@pytest.fixture
def data_dir(tmp_path, fig12_text) -> Path:
    """Data directory with a handful of chart source files."""
    root = tmp_path / "data"
    root.mkdir()
    (root / "benchmarking_fig1_2.csv").write_text(fig12_text, encoding="utf-8")
    (root / "green_fig1.csv").write_text(
        "Year;Total;Green;Share\n"
        "2024;1000;50;5,0\n"
        "2020;900;30;3,3\n"
        "2022;950;40;4,2\n"
        "2023;980;45;n/a\n"
        "2021;920;35\n",
        encoding="utf-8",
    )
    (root / "header_only.csv").write_text("Year;Total;Green;Share\n", encoding="utf-8")
    return root


@pytest.fixture
def demand_chart_config() -> dict:
    """Config entry for the job demand chart."""
    return {
        "id": "job_demand",
        "kind": "ranked_union",
        "file": "benchmarking_fig1_2.csv",
        "parse": {"quote_aware": True, "min_columns": 2},
        "fields": [{"name": "title", "source": 0}],
        "measures": {"pattern": "^Standardized Percentage\\s*(.+)$"},
        "exclude": {"title": "répétiteur"},
        "options": {
            "key": "title",
            "top_n": 2,
            "scale": 10,
            "skip_missing": True,
            "countries": ["United States", "UAE"],
            "aliases": {"United States": "US", "UAE": "United Arab Emirates"},
        },
    }


@pytest.fixture
def green_chart_config() -> dict:
    return {
        "id": "green_share_years",
        "kind": "timeseries",
        "file": "green_fig1.csv",
        "parse": {"header": False, "min_columns": 4},
        "fields": [
            {"name": "year", "source": 0},
            {"name": "share", "source": 3, "kind": "number", "number_style": "decimal_comma"},
        ],
        "filters": [{"field": "year", "op": "year_between", "value": [2021, 2024]}],
        "options": {"label_field": "year", "series": [{"field": "share", "label": "Green share"}]},
    }


@pytest.fixture
def tmp_chart_config(tmp_path, demand_chart_config, green_chart_config) -> Path:
    """Write a chart config to a temporary file."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    path = config_dir / "charts.json"
    path.write_text(json.dumps({
        "defaults": {"options": {"top_n": 10}, "theme": {"colors": {"US": "#1a1a2e"}}},
        "charts": [demand_chart_config, green_chart_config],
    }), encoding="utf-8")
    return path
