from __future__ import annotations

import re
from typing import Any, Optional, Tuple

PROJECT_COLORS = (
    "#3b82f6",
    "#10b981",
    "#f59e0b",
    "#ef4444",
    "#8b5cf6",
    "#ec4899",
    "#06b6d4",
    "#f97316",
)

_CIVIL_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})\s+(\d{1,2}):(\d{2})$")
_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


def normalize_text(value: Any) -> Optional[str]:
    """Strip a user supplied string, ``None`` when nothing is left."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_civil(value: str) -> Optional[Tuple[int, int, int, int, int]]:
    """Split ``YYYY-MM-DD HH:MM`` into its fields without validating the date."""
    match = _CIVIL_RE.match(value.strip()) if value else None
    if not match:
        return None
    year, month, day, hour, minute = (int(part) for part in match.groups())
    return year, month, day, hour, minute


def normalize_color(value: Any, fallback_index: int = 0) -> str:
    text = normalize_text(value)
    if text and _COLOR_RE.match(text):
        return text.lower()
    return PROJECT_COLORS[fallback_index % len(PROJECT_COLORS)]
