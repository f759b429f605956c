"""Helpers for fetching remote datasets into a local cache."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import requests

DEFAULT_CACHE_DIR = os.path.join(os.path.expanduser("~"), ".cache", "panel_study")


def is_remote(source: str) -> bool:
    """True for http(s) references, False for local paths."""
    return urlparse(str(source)).scheme in ("http", "https")


def fetch_dataset(
    url: str,
    cache_dir: Optional[str] = None,
    *,
    timeout: float = 60.0,
    refresh: bool = False,
) -> Path:
    """Download ``url`` into ``cache_dir`` and return the local path.

    A file that is already cached is reused unless ``refresh`` is set.
    HTTP errors are raised by ``requests`` and not caught here.
    """
    target_dir = Path(cache_dir or DEFAULT_CACHE_DIR)
    name = os.path.basename(urlparse(url).path) or "dataset"
    dest = target_dir / name
    if dest.exists() and not refresh:
        return dest

    target_dir.mkdir(parents=True, exist_ok=True)
    tmp = dest.with_suffix(dest.suffix + ".part")
    with requests.get(url, timeout=timeout, stream=True) as resp:
        resp.raise_for_status()
        try:
            with open(tmp, "wb") as fh:
                for chunk in resp.iter_content(chunk_size=1 << 16):
                    if chunk:
                        fh.write(chunk)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
    tmp.replace(dest)
    return dest
