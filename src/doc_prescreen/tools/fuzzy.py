from __future__ import annotations

import re
from datetime import date
from typing import Optional

_YEAR_FIRST = re.compile(r"(?<!\d)(\d{4})[-/](\d{2})[-/](\d{2})(?!\d)")
_DAY_FIRST = re.compile(r"(?<!\d)(\d{2})[-/](\d{2})[-/](\d{4})(?!\d)")


def _levenshtein(a: str, b: str) -> int:
    """Edit distance with a single rolling row sized to the shorter string."""
    if len(a) < len(b):
        a, b = b, a
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        curr = [i] + [0] * len(b)
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            curr[j] = min(prev[j] + 1, curr[j - 1] + 1, prev[j - 1] + cost)
        prev = curr
    return prev[len(b)]


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """Normalised edit-distance similarity in [0, 1], case and edge-whitespace insensitive."""
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0

    s1 = str(a).strip().casefold()
    s2 = str(b).strip().casefold()
    if s1 == s2:
        return 1.0

    max_len = max(len(s1), len(s2))
    score = 1.0 - _levenshtein(s1, s2) / max_len
    return min(1.0, max(0.0, score))


def _iso(year: str, month: str, day: str) -> Optional[str]:
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def find_date(text: Optional[str]) -> Optional[str]:
    """First date-shaped substring (YYYY-MM-DD, DD-MM-YYYY or DD/MM/YYYY) as YYYY-MM-DD."""
    if not text:
        return None
    candidates = []
    for pattern, year_first in ((_YEAR_FIRST, True), (_DAY_FIRST, False)):
        for m in pattern.finditer(text):
            candidates.append((m.start(), m, year_first))
    for _, m, year_first in sorted(candidates, key=lambda c: c[0]):
        if year_first:
            iso = _iso(m.group(1), m.group(2), m.group(3))
        else:
            iso = _iso(m.group(3), m.group(2), m.group(1))
        if iso:
            return iso
    return None


def normalize_dob(text: Optional[str]) -> Optional[str]:
    """
    Normalise a whole date string to YYYY-MM-DD.

    The layout is detected from the position of the four-digit year; anything
    that is neither year-first nor day-first returns None rather than a guess.
    """
    if not text:
        return None
    s = str(text).strip()
    m = _YEAR_FIRST.fullmatch(s[:10])
    if m:
        return _iso(m.group(1), m.group(2), m.group(3))
    m = _DAY_FIRST.fullmatch(s[:10])
    if m:
        return _iso(m.group(3), m.group(2), m.group(1))
    return None
