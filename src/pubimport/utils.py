"""Utility helpers for identifier checks, date parsing and filesystem-safe names."""

from __future__ import annotations

import re
import unicodedata
from typing import Any

PMID_PATTERN = re.compile(r"^\d+$")
YEAR_PATTERN = re.compile(r"(\d{4})")
SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def is_pmid(value: Any) -> bool:
    """Check if the value is a purely numeric PubMed identifier."""
    if value is None:
        return False
    text = str(value).strip()
    return bool(text) and PMID_PATTERN.match(text) is not None


def extract_year(value: Any) -> int | None:
    """Pull the first four-digit year out of a free-text date ("2023 Jan 15")."""
    if not value:
        return None
    match = YEAR_PATTERN.search(str(value))
    if not match:
        return None
    return int(match.group(1))


def doi_from_article_ids(article_ids: Any) -> str:
    """Return the value of the `idtype == "doi"` entry of an eSummary id list."""
    if not isinstance(article_ids, list):
        return ""
    for entry in article_ids:
        if isinstance(entry, dict) and entry.get("idtype") == "doi":
            return str(entry.get("value") or "").strip()
    return ""


def slugify(value: str, max_length: int = 80) -> str:
    """Create a filesystem-safe slug."""
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode()
    value = value.lower()
    value = SLUG_PATTERN.sub("-", value).strip("-")
    if not value:
        value = "item"
    return value[:max_length]
