from __future__ import annotations

import logging
import math
from typing import Mapping, Sequence

from poemsong.logging_utils import log_event
from poemsong.models import DEFAULT_GENRE, LinePattern, LyricSectionSpan, RhythmMeasure, RhythmPattern
from poemsong.services.music_theory import bpm_to_ms

logger = logging.getLogger(__name__)

SLOTS_PER_MEASURE = 8
LINES_PER_MEASURE = 4
ACCENT_THRESHOLD = 0.8
SYLLABLE_INTENSITY_SCALE = 0.7
STRAIGHT_SWING = 0.5

BASE_PATTERNS: dict[str, tuple[float, ...]] = {
    "ballad": (1, 0, 0.5, 0, 0.8, 0, 0.3, 0),
    "pop": (1, 0.3, 0.8, 0.3, 1, 0.3, 0.8, 0.3),
    "rock": (1, 0, 1, 0, 1, 0, 1, 0),
    "jazz": (1, 0.2, 0.6, 0.8, 0.4, 0.9, 0.3, 0.7),
    "folk": (1, 0, 0.6, 0, 0.8, 0, 0.4, 0),
    "enka": (1, 0, 0.3, 0, 0.6, 0, 0.2, 0),
}

SWING_FACTORS: dict[str, float] = {
    "jazz": 0.67,
    "blues": 0.6,
    "ballad": 0.52,
    "folk": 0.51,
    "pop": 0.5,
    "rock": 0.5,
    "enka": 0.5,
}

SECTION_DYNAMICS: dict[str, dict[str, float]] = {
    "ballad": {"verse": 0.4, "chorus": 0.6, "bridge": 0.3},
    "pop": {"verse": 0.6, "chorus": 0.8, "bridge": 0.5},
    "rock": {"verse": 0.7, "chorus": 0.9, "bridge": 0.6},
    "jazz": {"verse": 0.5, "chorus": 0.7, "bridge": 0.6},
    "folk": {"verse": 0.4, "chorus": 0.6, "bridge": 0.4},
    "enka": {"verse": 0.3, "chorus": 0.5, "bridge": 0.3},
}


def syllable_intensity(syllables: int) -> float:
    return min(syllables / LINES_PER_MEASURE, 1) * SYLLABLE_INTENSITY_SCALE


def adapt_beats(base: Sequence[float], lines: Sequence[LinePattern]) -> list[float]:
    """Raise the slot under each lyric line so dense lines never land on a silent beat."""
    beats = [float(b) for b in base]
    for slot, line in enumerate(lines[:SLOTS_PER_MEASURE]):
        beats[slot] = max(beats[slot], syllable_intensity(line.syllables))
    return beats


def build_measures(base: Sequence[float], lines: Sequence[LinePattern], tempo: int) -> list[RhythmMeasure]:
    count = math.ceil(len(lines) / LINES_PER_MEASURE)
    return [
        RhythmMeasure(
            index=i,
            beats=adapt_beats(base, lines[i * LINES_PER_MEASURE : (i + 1) * LINES_PER_MEASURE]),
            tempo=tempo,
        )
        for i in range(count)
    ]


def section_levels(structure: Sequence[LyricSectionSpan], dynamics: Mapping[str, float]) -> list[float]:
    # Sections outside verse/chorus/bridge play at verse level.
    return [dynamics.get(section.type, dynamics["verse"]) for section in structure]


def generate_rhythm_pattern(
    genre: str,
    tempo: int,
    lines: Sequence[LinePattern],
    structure: Sequence[LyricSectionSpan] = (),
    *,
    patterns: Mapping[str, Sequence[float]] = BASE_PATTERNS,
    swing_factors: Mapping[str, float] = SWING_FACTORS,
    dynamics_table: Mapping[str, Mapping[str, float]] = SECTION_DYNAMICS,
) -> RhythmPattern:
    if genre in patterns:
        base = list(patterns[genre])
    else:
        log_event(logger, "lookup_fallback_applied", level=logging.WARNING, table="rhythm", requested=genre, fallback=DEFAULT_GENRE)
        base = list(patterns.get(DEFAULT_GENRE, BASE_PATTERNS[DEFAULT_GENRE]))
    dynamics = dict(dynamics_table.get(genre) or dynamics_table.get(DEFAULT_GENRE) or SECTION_DYNAMICS[DEFAULT_GENRE])

    pattern = RhythmPattern(
        genre=genre,
        tempo=tempo,
        beat_duration_ms=bpm_to_ms(tempo, 4),
        pattern=[float(b) for b in base],
        measures=build_measures(base, lines, tempo),
        accents=[i for i, intensity in enumerate(base) if intensity >= ACCENT_THRESHOLD],
        swing=swing_factors.get(genre, swing_factors.get(DEFAULT_GENRE, STRAIGHT_SWING)),
        dynamics=dynamics,
        section_levels=section_levels(structure, dynamics),
    )
    log_event(
        logger,
        "rhythm_generation_completed",
        level=logging.DEBUG,
        genre=genre,
        tempo=tempo,
        measure_count=len(pattern.measures),
        swing=pattern.swing,
    )
    return pattern
