import json
import logging
import os
from pathlib import Path
from urllib.parse import urljoin

import requests

from labourcharts.errors import FetchError

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_DATA_DIR = BASE_DIR / "data"
DEFAULT_TIMEOUT = 25.0


def _is_url(name: str) -> bool:
    return name.startswith(("http://", "https://"))


def resolve_source(name: str, base_url: str | None = None,
                   data_dir: Path | None = None) -> str:
    if _is_url(name):
        return name
    if base_url:
        return urljoin(base_url.rstrip("/") + "/", name.lstrip("/"))
    return str(Path(data_dir or DEFAULT_DATA_DIR) / name.lstrip("/"))


def fetch_bytes(name: str, base_url: str | None = None, data_dir: Path | None = None,
                timeout: float | None = None) -> bytes:
    """Fetch one static file, over HTTP(S) or from the local data directory.

    There is no retry: the first failure is reported as a FetchError.
    """
    source = resolve_source(name, base_url, data_dir)
    if _is_url(source):
        if timeout is None:
            timeout = float(os.getenv("FETCH_TIMEOUT", DEFAULT_TIMEOUT))
        try:
            resp = requests.get(source, timeout=timeout)
        except requests.RequestException as exc:
            raise FetchError(f"Network error loading {name}: {exc}") from exc
        if not resp.ok:
            raise FetchError(f"HTTP error! status: {resp.status_code}")
        return resp.content

    path = Path(source)
    try:
        return path.read_bytes()
    except FileNotFoundError as exc:
        raise FetchError(f"Missing data file: {path}") from exc
    except OSError as exc:
        raise FetchError(f"Could not read {path}: {exc}") from exc


def fetch_text(name: str, **kwargs) -> str:
    return fetch_bytes(name, **kwargs).decode("utf-8-sig")


def fetch_json(name: str, **kwargs):
    """Optional side file; any failure returns None."""
    try:
        return json.loads(fetch_text(name, **kwargs))
    except (FetchError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("Could not load %s: %s", name, exc)
        return None
