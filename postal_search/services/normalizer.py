from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

_POSTAL_PREFIX = re.compile(r"^\d+")


@dataclass(frozen=True)
class NormalizedQuery:
    text: str
    is_postal_like: bool


def normalize_query(raw: str, min_length: int = 2) -> Optional[NormalizedQuery]:
    """Lowercase and trim a raw query. Returns None when it is too short to search."""
    text = (raw or "").strip().lower()
    if len(text) < min_length:
        return None
    return NormalizedQuery(text=text, is_postal_like=bool(_POSTAL_PREFIX.match(text)))
