"""Input URL sources for the enrichment pipeline."""

from __future__ import annotations

import csv
from pathlib import Path

from trendi_tools.log import get_logger

logger = get_logger(__name__)

URL_COLUMNS = ("URL", "url")


def read_urls(csv_path: str | Path) -> list[str]:
    """Read the URL column of a CSV file: trimmed, blanks dropped, first occurrence kept."""
    path = Path(csv_path)
    urls: list[str] = []
    seen: set[str] = set()
    with path.open(newline="", encoding="utf-8-sig") as f:
        for row in csv.DictReader(f):
            value = next((row[c] for c in URL_COLUMNS if row.get(c)), "")
            url = value.strip()
            if not url or url in seen:
                continue
            seen.add(url)
            urls.append(url)
    logger.info("urls_loaded", path=str(path), count=len(urls))
    return urls
