"""Display labels for ranks, transport modes and durations."""

import math
from typing import Any

from .models import UNRANKED

RANK_LABELS = {
    9: "vilâyet merkezi",
    8: "sancak merkezi",
    7: "kazâ merkezi",
    6: "nâhiye merkezi",
    5: "köy",
    4: "station",
    3: "dock",
    2: "stop",
}

# Integer mode codes index this list
TRANSPORT_MODES = [
    "walk", "road", "chaussee", "connection", "transfer", "switch",
    "horse tramway", "electric tramway", "steam tramway", "tramway", "tram",
    "railway", "narrow-gauge railway", "ferry", "ship", "metro", "funicular",
]

# Material Symbols icon names
MODE_SYMBOLS = {
    "walk": "directions_walk",
    "road": "directions_walk",
    "chaussee": "directions_walk",
    "connection": "subway_walk",
    "transfer": "subway_walk",
    "switch": "subway_walk",
    "horse tramway": "cable_car",
    "electric tramway": "tram",
    "railway": "train",
    "narrow-gauge railway": "directions_railway_2",
    "steam tramway": "directions_railway_2",
    "ferry": "directions_boat",
    "ship": "anchor",
    "metro": "funicular",
}


def rank_label(rank: Any) -> str:
    """Human label for a rank; unmapped ranks show the number, unranked shows nothing."""
    if rank is None or rank == UNRANKED:
        return ""
    try:
        rank = int(rank)
    except (TypeError, ValueError):
        return ""
    return RANK_LABELS.get(rank, str(rank))


def mode_tag(mode: Any) -> str:
    """Resolve an integer mode code (or a mode string) to its canonical tag."""
    if isinstance(mode, bool) or mode is None:
        return ""
    if isinstance(mode, (int, float)):
        code = int(mode)
        return TRANSPORT_MODES[code] if 0 <= code < len(TRANSPORT_MODES) else str(code)
    text = str(mode).strip().lower()
    if text.isdigit():
        return mode_tag(int(text))
    return text


def mode_symbol(mode: str) -> str:
    return MODE_SYMBOLS.get(mode, "")


DURATION_UNITS = (("day", 24 * 60), ("hour", 60), ("minute", 1))


def _largest_unit(total: float) -> int:
    for index, (_, size) in enumerate(DURATION_UNITS):
        if total >= size:
            return index
    return len(DURATION_UNITS) - 1


def humanize_minutes(minutes: Any) -> str:
    """
    Format a duration in minutes as its largest unit and the unit below it.

    Anything smaller than the second unit is rounded into it, and the rounding
    carries upward, so 1499 minutes reads "1 day, 1 hour" and 2879 reads "2 days".
    """
    try:
        total = float(minutes)
    except (TypeError, ValueError):
        total = 0.0
    if not math.isfinite(total) or total < 0:
        total = 0.0

    index = _largest_unit(total)
    step = DURATION_UNITS[min(index + 1, len(DURATION_UNITS) - 1)][1]
    total = math.floor(total / step + 0.5) * step
    index = _largest_unit(total)

    parts = []
    for unit, size in DURATION_UNITS[index:index + 2]:
        count = int(total // size)
        total -= count * size
        if count:
            parts.append(f"{count} {unit}" + ("" if count == 1 else "s"))
    if not parts:
        return "0 minutes"
    return ", ".join(parts)
