"""
Minimal parser for fighter point scores.

Supports formats like:
  {"a": 3, "b": 1}        -> fighter A 3 points, fighter B 1
  {"display": "3-1"}      -> extracts display string first
  "3-1"                   -> plain string
  "3-1 (ippon)"           -> trailing decision text is ignored

Returns None on parse failure (non-fatal).
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

_SCORE_RE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)")


@dataclass
class ParsedScore:
    fighter_a_points: int
    fighter_b_points: int

    @property
    def margin(self) -> int:
        return abs(self.fighter_a_points - self.fighter_b_points)

    @property
    def high(self) -> int:
        return max(self.fighter_a_points, self.fighter_b_points)

    @property
    def low(self) -> int:
        return min(self.fighter_a_points, self.fighter_b_points)


def parse_score(score_json: Optional[Union[Dict[str, Any], str]]) -> Optional[ParsedScore]:
    """Parse a score_json blob into fighter point totals.

    Returns None if the score cannot be parsed.
    """
    if not score_json:
        return None

    raw: Optional[str] = None
    if isinstance(score_json, str):
        raw = score_json
    elif isinstance(score_json, dict):
        if "a" in score_json and "b" in score_json:
            try:
                return ParsedScore(int(score_json["a"]), int(score_json["b"]))
            except (TypeError, ValueError):
                return None
        raw = str(score_json.get("display") or score_json.get("score") or "")
    if not raw or not raw.strip():
        return None

    m = _SCORE_RE.match(raw)
    if not m:
        return None
    return ParsedScore(int(m.group(1)), int(m.group(2)))
