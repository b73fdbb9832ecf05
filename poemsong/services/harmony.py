from __future__ import annotations

import logging
import re
from typing import Mapping, Sequence

from poemsong.logging_utils import log_event
from poemsong.models import DEFAULT_KEY, ChordRef, ChordSlot, LyricsAnalysis, SectionProgression, SectionType
from poemsong.services.music_theory import (
    CHROMATIC_SCALE,
    NOTE_TO_SEMITONE,
    SCALE_INTERVALS,
    SEMITONE_TO_NOTE,
    chord_pitch_classes,
    midi_of,
    midi_to_pitch,
    normalize_note_name,
)

logger = logging.getLogger(__name__)

BEATS_PER_MEASURE = 4
VOICING_OCTAVE = 3
DEFAULT_TEMPLATE = "ballad"

PROGRESSION_TEMPLATES: dict[str, tuple[str, ...]] = {
    "pop": ("I", "V", "vi", "IV"),
    "ballad": ("I", "vi", "IV", "V"),
    "jazz": ("I", "vi", "ii", "V"),
    "folk": ("I", "IV", "I", "V"),
    "blues": ("I", "I", "I", "I", "IV", "IV", "I", "I", "V", "IV", "I", "V"),
    "jazz7": ("Imaj7", "vi7", "ii7", "V7"),
}
BRIDGE_PROGRESSION: tuple[str, ...] = ("vi", "IV", "I", "V")

_DIATONIC_TRIADS = ("major", "minor", "minor", "major", "major", "minor", "diminished")
_DIATONIC_SEVENTHS = ("major7", "minor7", "minor7", "major7", "dominant7", "minor7", "half-diminished7")
_ROMAN_DEGREES = {"I": 0, "II": 1, "III": 2, "IV": 3, "V": 4, "VI": 5, "VII": 6}
_ROMAN_RE = re.compile(r"(?P<numeral>VII|VI|V|IV|III|II|I)(?:°|dim)?(?P<seventh>maj7|7)?", re.IGNORECASE)

_SYMBOL_SUFFIX = {
    "major": "",
    "minor": "m",
    "diminished": "dim",
    "major7": "maj7",
    "minor7": "m7",
    "dominant7": "7",
    "half-diminished7": "m7b5",
}


def _build_key_chords(tonic: str) -> list[tuple[str, str]]:
    base = NOTE_TO_SEMITONE[tonic]
    return [
        (SEMITONE_TO_NOTE[(base + interval) % 12], quality)
        for interval, quality in zip(SCALE_INTERVALS["major"], _DIATONIC_TRIADS)
    ]


# Diatonic triads (root, quality) of every major key, sharp spellings.
KEY_CHORDS: dict[str, list[tuple[str, str]]] = {tonic: _build_key_chords(tonic) for tonic in CHROMATIC_SCALE}


def resolve_key(key: str | None, key_table: Mapping[str, Sequence[tuple[str, str]]] = KEY_CHORDS) -> str:
    """Return the table key for ``key``; flats are respelled and unknown keys become C major."""
    normalized = normalize_note_name(key or "")
    if normalized is not None and normalized in key_table:
        return normalized
    log_event(logger, "lookup_fallback_applied", level=logging.WARNING, table="key", requested=key, fallback=DEFAULT_KEY)
    return DEFAULT_KEY


def resolve_template(
    template: str | None, templates: Mapping[str, Sequence[str]] = PROGRESSION_TEMPLATES
) -> tuple[str, ...]:
    if template in templates:
        return tuple(templates[template])
    log_event(
        logger, "lookup_fallback_applied", level=logging.WARNING, table="progression", requested=template, fallback=DEFAULT_TEMPLATE
    )
    return tuple(templates.get(DEFAULT_TEMPLATE, PROGRESSION_TEMPLATES[DEFAULT_TEMPLATE]))


def section_variant(base: Sequence[str], section_type: SectionType) -> list[str]:
    if section_type == "bridge":
        return list(BRIDGE_PROGRESSION)
    if section_type == "intro":
        return [base[0]]
    if section_type == "outro":
        return [*base, "I"]
    return list(base)


def roman_to_chord(roman: str, key_chords: Sequence[tuple[str, str]]) -> tuple[str, str]:
    """Resolve a roman numeral against a key's diatonic chord set.

    The case of the numeral is not trusted for quality; the diatonic triad (or
    diatonic seventh when a ``7``/``maj7`` suffix is present) of the degree is
    used. Unknown numerals resolve to the tonic.
    """
    m = _ROMAN_RE.fullmatch(roman.strip())
    if not m:
        log_event(logger, "lookup_fallback_applied", level=logging.WARNING, table="roman", requested=roman, fallback="I")
        return key_chords[0]
    degree = _ROMAN_DEGREES[m.group("numeral").upper()]
    root, triad = key_chords[degree]
    if m.group("seventh"):
        return root, _DIATONIC_SEVENTHS[degree]
    return root, triad


def chord_symbol(root: str, quality: str) -> str:
    return f"{root}{_SYMBOL_SUFFIX[quality]}"


def chord_voicing(root: str, quality: str, section_type: SectionType) -> list[str]:
    """Explicit pitches for a chord: close root position, fuller in choruses, inverted in bridges."""
    pcs = chord_pitch_classes(root, quality)
    midis = [midi_of(root, VOICING_OCTAVE)]
    for pc in pcs[1:]:
        nxt = midis[-1] + ((pc - midis[-1]) % 12 or 12)
        midis.append(nxt)
    if section_type == "chorus":
        midis.append(midis[0] + 12)
    elif section_type == "bridge":
        midis = [*midis[1:], midis[0] + 12]
    return [midi_to_pitch(m) for m in midis]


def slots_for_line(syllables: int) -> int:
    if syllables <= 4:
        return 1
    if syllables <= 8:
        return 2
    return 4


def generate_chord_progression(
    template: str,
    key: str,
    analysis: LyricsAnalysis,
    *,
    templates: Mapping[str, Sequence[str]] = PROGRESSION_TEMPLATES,
    key_table: Mapping[str, Sequence[tuple[str, str]]] = KEY_CHORDS,
) -> list[SectionProgression]:
    """Lay chords over every lyric line, one 4/4 measure per line.

    A line gets one, two or four chords depending on its syllable count, and
    chords are drawn cyclically from the section's variant of the template.
    Each section therefore spans exactly ``4 * line_count`` beats.
    """
    base = resolve_template(template, templates)
    key_name = resolve_key(key, key_table)
    key_chords = key_table[key_name]

    progression: list[SectionProgression] = []
    for section in analysis.structure:
        variant = section_variant(base, section.type)
        chords: list[ChordSlot] = []
        cursor = 0
        for line_index in range(section.start_line, section.end_line):
            syllables = analysis.syllable_pattern[line_index].syllables
            slot_count = slots_for_line(syllables)
            for _ in range(slot_count):
                roman = variant[cursor % len(variant)]
                cursor += 1
                root, quality = roman_to_chord(roman, key_chords)
                chords.append(
                    ChordSlot(
                        roman=roman,
                        root=root,
                        quality=quality,
                        symbol=chord_symbol(root, quality),
                        notes=[SEMITONE_TO_NOTE[pc] for pc in chord_pitch_classes(root, quality)],
                        pitch_classes=chord_pitch_classes(root, quality),
                        voicing=chord_voicing(root, quality, section.type),
                        duration_beats=BEATS_PER_MEASURE / slot_count,
                        section_index=section.index,
                        line_index=line_index,
                        slot_index=len(chords),
                    )
                )
        progression.append(SectionProgression(section_index=section.index, section_type=section.type, chords=chords))

    log_event(
        logger,
        "harmony_generation_completed",
        key=key_name,
        template=template,
        section_count=len(progression),
        chord_count=sum(len(s.chords) for s in progression),
    )
    return progression


def line_slots(section: SectionProgression, line_index: int) -> list[ChordSlot]:
    return [chord for chord in section.chords if chord.line_index == line_index]


def resolve_chord(progression: Sequence[SectionProgression], ref: ChordRef) -> ChordSlot:
    for section in progression:
        if section.section_index == ref.section_index:
            return section.chords[ref.slot_index]
    raise KeyError(f"No section {ref.section_index} in chord progression.")
