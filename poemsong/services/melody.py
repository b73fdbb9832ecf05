from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

from poemsong.logging_utils import log_event
from poemsong.models import (
    DEFAULT_EMOTION,
    ChordRef,
    ChordSlot,
    LinePattern,
    LyricsAnalysis,
    MelodyLine,
    MelodySection,
    MusicParameters,
    Note,
    SectionProgression,
    SectionType,
)
from poemsong.services.harmony import line_slots
from poemsong.services.music_theory import SCALE_INTERVALS, Scale, bpm_to_ms, midi_of, midi_to_frequency, parse_scale

logger = logging.getLogger(__name__)

RandomSource = Callable[[], float]

START_OCTAVE = 4
MIN_OCTAVE = 3
MAX_OCTAVE = 6
STRESSED_MULTIPLIER = 1.2
UNSTRESSED_MULTIPLIER = 0.8
LINE_FINAL_MULTIPLIER = 1.3


@dataclass(frozen=True)
class Tendency:
    ascend: float
    descend: float
    stable: float


EMOTION_TENDENCIES: dict[str, Tendency] = {
    "happy": Tendency(ascend=0.6, descend=0.2, stable=0.2),
    "sad": Tendency(ascend=0.2, descend=0.6, stable=0.2),
    "romantic": Tendency(ascend=0.4, descend=0.3, stable=0.3),
    "nostalgic": Tendency(ascend=0.3, descend=0.4, stable=0.3),
    "energetic": Tendency(ascend=0.7, descend=0.1, stable=0.2),
    "peaceful": Tendency(ascend=0.3, descend=0.3, stable=0.4),
}

EMOTION_STEP_SIZES: dict[str, int] = {
    "happy": 2,
    "sad": 1,
    "romantic": 1,
    "nostalgic": 1,
    "energetic": 3,
    "peaceful": 1,
}

STARTING_DEGREES: dict[str, int] = {"verse": 0, "chorus": 4, "bridge": 2}


def starting_degree(section_type: SectionType, scale_length: int) -> int:
    return STARTING_DEGREES.get(section_type, 0) % scale_length


class ScaleWalker:
    """Scale-degree cursor and octave carried across one lyric line."""

    def __init__(self, scale: Scale, degree: int, octave: int = START_OCTAVE):
        self.scale = scale
        self.degree = degree
        self.octave = octave

    def snap_to_chord(self, chord: ChordSlot) -> None:
        semitones = self.scale.semitones
        chord_degrees = [d for d, pc in enumerate(semitones) if pc in chord.pitch_classes]
        if chord_degrees:
            self.degree = min(chord_degrees, key=lambda d: (abs(d - self.degree), d))

    def move(self, steps: int) -> None:
        size = len(self.scale)
        self.degree += steps
        while self.degree >= size:
            self.degree -= size
            self.octave += 1
        while self.degree < 0:
            self.degree += size
            self.octave -= 1
        self.octave = max(MIN_OCTAVE, min(MAX_OCTAVE, self.octave))

    def step(self, rng: RandomSource, tendency: Tendency, step_size: int) -> None:
        roll = rng()
        if roll < tendency.ascend:
            self.move(step_size)
        elif roll < tendency.ascend + tendency.descend:
            self.move(-step_size)

    @property
    def pitch(self) -> str:
        return self.scale.note_names[self.degree]

    @property
    def midi(self) -> int:
        return midi_of(self.pitch, self.octave)


def note_duration_ms(base_ms: float, stressed: bool, line_final: bool) -> float:
    duration = base_ms * (STRESSED_MULTIPLIER if stressed else UNSTRESSED_MULTIPLIER)
    if line_final:
        duration *= LINE_FINAL_MULTIPLIER
    return duration


def active_chord(slots: Sequence[ChordSlot], position: int, total: int) -> ChordSlot:
    index = position * len(slots) // total if total else 0
    return slots[min(index, len(slots) - 1)]


def _line_notes(
    pattern: LinePattern,
    slots: Sequence[ChordSlot],
    walker: ScaleWalker,
    *,
    rng: RandomSource,
    tendency: Tendency,
    step_size: int,
    base_ms: float,
    offset_ms: float,
) -> list[Note]:
    notes: list[Note] = []
    total = pattern.syllables
    position = 0
    for word_index, word in enumerate(pattern.word_rhythm):
        for syllable_index, syllable in enumerate(word.syllables):
            chord = active_chord(slots, position, total)
            if syllable_index == 0:
                walker.snap_to_chord(chord)
            else:
                walker.step(rng, tendency, step_size)

            stressed = word.stress[syllable_index]
            duration = note_duration_ms(base_ms, stressed, position == total - 1)
            midi = walker.midi
            notes.append(
                Note(
                    pitch=walker.pitch,
                    octave=walker.octave,
                    midi=midi,
                    frequency=midi_to_frequency(midi),
                    duration_ms=duration,
                    offset_ms=offset_ms,
                    syllable=syllable,
                    word_index=word_index,
                    syllable_index_in_word=syllable_index,
                    stressed=stressed,
                    chord=ChordRef(section_index=chord.section_index, slot_index=chord.slot_index),
                )
            )
            offset_ms += duration
            position += 1
    return notes


def generate_melody(
    analysis: LyricsAnalysis,
    progression: Sequence[SectionProgression],
    params: MusicParameters,
    key: str,
    *,
    rng: RandomSource,
    tempo: int | None = None,
    tendencies: Mapping[str, Tendency] = EMOTION_TENDENCIES,
    step_sizes: Mapping[str, int] = EMOTION_STEP_SIZES,
) -> list[MelodySection]:
    """Generate one pitched, timed note per syllable of every lyric line.

    The cursor restarts on the section's starting degree at each line. The first
    syllable of a word lands on the chord tone nearest the cursor without
    consuming randomness; every other syllable draws once from ``rng`` to ascend,
    descend or hold according to the emotion's tendency weights.
    """
    if params.scale not in SCALE_INTERVALS:
        log_event(logger, "lookup_fallback_applied", level=logging.WARNING, table="scale", requested=params.scale, fallback="major")
    scale = parse_scale(key, params.scale)
    if params.emotion in tendencies:
        tendency = tendencies[params.emotion]
    else:
        log_event(
            logger, "lookup_fallback_applied", level=logging.WARNING, table="tendency", requested=params.emotion, fallback=DEFAULT_EMOTION
        )
        tendency = tendencies.get(DEFAULT_EMOTION, EMOTION_TENDENCIES[DEFAULT_EMOTION])
    step_size = step_sizes.get(params.emotion, 1)
    base_ms = bpm_to_ms(tempo or params.tempo, 4)

    by_index = {section.section_index: section for section in progression}
    melody: list[MelodySection] = []
    offset_ms = 0.0
    note_count = 0
    for section in analysis.structure:
        chords = by_index[section.index]
        lines: list[MelodyLine] = []
        for line_index in range(section.start_line, section.end_line):
            pattern = analysis.syllable_pattern[line_index]
            walker = ScaleWalker(scale, starting_degree(section.type, len(scale)))
            notes = _line_notes(
                pattern,
                line_slots(chords, line_index),
                walker,
                rng=rng,
                tendency=tendency,
                step_size=step_size,
                base_ms=base_ms,
                offset_ms=offset_ms,
            )
            if notes:
                offset_ms = notes[-1].offset_ms + notes[-1].duration_ms
            note_count += len(notes)
            lines.append(MelodyLine(section_index=section.index, line_index=line_index, text=pattern.text, notes=notes))
        melody.append(MelodySection(section_index=section.index, section_type=section.type, lines=lines))

    log_event(
        logger,
        "melody_generation_completed",
        scale=f"{scale.tonic} {scale.scale_type}",
        emotion=params.emotion,
        note_count=note_count,
    )
    return melody
