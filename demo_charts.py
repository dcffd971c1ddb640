# demo_charts.py
from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

from gameplay_models import Chart, Measure

logger = logging.getLogger(__name__)

DEMO_DIFFICULTIES = ("easy", "hard", "holds")

# Notes need travel_time_ms of lead-in or their spawn time would be negative.
DEFAULT_LEAD_IN_SECONDS = 3.0

_DEMO_MEASURES: Dict[str, Tuple[Tuple[str, str], ...]] = {
    "easy": (
        ("1000100010001000", "0010001000100010"),
        ("1010000010100000", "0000101000001010"),
        ("1000100010001000", "0100010001000100"),
        ("1111000011110000", "0000111100001111"),
    ),
    "hard": (
        ("1010101010101010", "0101010101010101"),
        ("1100110011001100", "0011001100110011"),
        ("1111101011111010", "0101011101010111"),
        ("1000100010001000", "0010001000100010"),
    ),
    "holds": (
        ("2000000030001000", "0000100000000000"),
        ("1000200000003000", "2000000000000030"),
        ("1000100010001000", "0020000030000000"),
        ("2000000000003000", "2000000000003000"),
    ),
}

# Measure templates for quick charts, keyed by subdivision then pattern type.
_TEMPLATES: Dict[int, Dict[str, Tuple[Tuple[str, str], ...]]] = {
    16: {
        "basic": (
            ("1000100010001000", "0010001000100010"),
            ("1000000010000000", "0000100000001000"),
        ),
        "intermediate": (
            ("1010000010100000", "0000101000001010"),
            ("1001001010010010", "0100100001001001"),
        ),
        "advanced": (
            ("1010101010101010", "0101010101010101"),
            ("1100110011001100", "0011001100110011"),
        ),
        "expert": (
            ("1111101011111010", "0101011101010111"),
            ("1011010110110101", "0100101001001010"),
        ),
    },
    8: {
        "basic": (("10001000", "01000100"),),
        "intermediate": (("10101010", "01010101"),),
    },
}


def _measures(pairs: Sequence[Tuple[str, str]]) -> Tuple[Measure, ...]:
    return tuple(Measure(top_lane=top, bottom_lane=bottom) for top, bottom in pairs)


def build_demo_chart(*, difficulty: str = "easy", lead_in_seconds: float = DEFAULT_LEAD_IN_SECONDS) -> Chart:
    normalized_difficulty = (difficulty or "easy").strip().lower() or "easy"
    if normalized_difficulty not in _DEMO_MEASURES:
        logger.info("No demo chart for difficulty %r, using easy", difficulty)
        normalized_difficulty = "easy"

    return Chart(
        bpm=120.0,
        subdivision=16,
        beats_per_measure=4,
        offset_seconds=float(lead_in_seconds),
        measures=_measures(_DEMO_MEASURES[normalized_difficulty]),
        title="BMS Test Chart",
        artist="Dev Team",
        difficulty=normalized_difficulty,
    )


def template_pattern_types(subdivision: int = 16) -> List[str]:
    return sorted(_TEMPLATES.get(int(subdivision), {}).keys())


def build_template_chart(
    *,
    pattern_type: str = "basic",
    measure_count: int = 8,
    bpm: float = 120.0,
    subdivision: int = 16,
    beats_per_measure: int = 4,
    lead_in_seconds: float = DEFAULT_LEAD_IN_SECONDS,
) -> Chart:
    """Repeat one template family for measure_count measures, cycling its variations."""
    templates = _TEMPLATES.get(int(subdivision))
    if templates is None:
        raise ValueError(f"No templates for subdivision {subdivision}. Allowed: {sorted(_TEMPLATES)}")
    if int(measure_count) <= 0:
        raise ValueError(f"measure_count must be positive, got {measure_count}")

    variations = templates.get(pattern_type) or templates["basic"]
    pairs = [variations[index % len(variations)] for index in range(int(measure_count))]

    return Chart(
        bpm=float(bpm),
        subdivision=int(subdivision),
        beats_per_measure=int(beats_per_measure),
        offset_seconds=float(lead_in_seconds),
        measures=_measures(pairs),
        title=f"Template ({pattern_type})",
        artist="Lanebeat",
        difficulty=pattern_type,
    )
