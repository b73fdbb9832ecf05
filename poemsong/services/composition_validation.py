from __future__ import annotations

from dataclasses import dataclass, field

from poemsong.models import Composition, LyricsAnalysis
from poemsong.services.harmony import BEATS_PER_MEASURE
from poemsong.services.music_theory import (
    NOTE_TO_SEMITONE,
    frequency_to_note,
    identify_chord_type,
    midi_of,
    parse_scale,
)

TIMING_TOLERANCE_MS = 1e-6


@dataclass
class ValidationDiagnostics:
    fatal: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.fatal


def validate_composition(composition: Composition, analysis: LyricsAnalysis) -> ValidationDiagnostics:
    report = ValidationDiagnostics()
    report.fatal.extend(_validate_chord_closure(composition))
    report.fatal.extend(_validate_chord_qualities(composition))
    report.fatal.extend(_validate_chord_references(composition))
    report.fatal.extend(_validate_syllable_coverage(composition, analysis))
    report.fatal.extend(_validate_scale_membership(composition))
    report.fatal.extend(_validate_timing(composition))
    report.warnings.extend(_validate_dynamics(composition))
    return report


def _validate_chord_closure(composition: Composition) -> list[str]:
    errors: list[str] = []
    spans = {span.index: span for span in composition.structure}
    for section in composition.chord_progression:
        span = spans.get(section.section_index)
        if span is None:
            errors.append(f"Chord section {section.section_index} has no lyric section.")
            continue
        expected = BEATS_PER_MEASURE * span.line_count
        if abs(section.total_beats - expected) > 1e-9:
            errors.append(
                f"Section {section.section_index} chords span {section.total_beats:g} beats; expected {expected:g}."
            )
    return errors


def _validate_chord_qualities(composition: Composition) -> list[str]:
    errors: list[str] = []
    for section in composition.chord_progression:
        for chord in section.chords:
            root = NOTE_TO_SEMITONE[chord.root]
            heard = identify_chord_type(pc - root for pc in chord.pitch_classes)
            if heard != chord.quality:
                errors.append(
                    f"Section {section.section_index} chord {chord.slot_index} ({chord.symbol}) sounds {heard}, not {chord.quality}."
                )
    return errors


def _validate_chord_references(composition: Composition) -> list[str]:
    errors: list[str] = []
    chords = {section.section_index: section.chords for section in composition.chord_progression}
    for section in composition.melody:
        for line in section.lines:
            for idx, note in enumerate(line.notes):
                ref = note.chord
                slots = chords.get(ref.section_index)
                if ref.section_index != section.section_index or slots is None or ref.slot_index >= len(slots):
                    errors.append(
                        f"Line {line.line_index} note {idx} references missing chord "
                        f"{ref.section_index}:{ref.slot_index}."
                    )
                elif slots[ref.slot_index].line_index != line.line_index:
                    errors.append(f"Line {line.line_index} note {idx} references a chord of line {slots[ref.slot_index].line_index}.")
    return errors


def _validate_syllable_coverage(composition: Composition, analysis: LyricsAnalysis) -> list[str]:
    errors: list[str] = []
    covered: set[int] = set()
    for section in composition.melody:
        for line in section.lines:
            covered.add(line.line_index)
            expected = analysis.syllable_pattern[line.line_index].syllables
            if len(line.notes) != expected:
                errors.append(f"Line {line.line_index} has {len(line.notes)} notes for {expected} syllables.")
    missing = sorted(set(range(analysis.line_count)) - covered)
    if missing:
        errors.append(f"Lyric lines without melody: {missing}.")
    return errors


def _validate_scale_membership(composition: Composition) -> list[str]:
    errors: list[str] = []
    scale_pcs = set(parse_scale(composition.key, composition.parameters.scale).semitones)
    for section in composition.melody:
        for line in section.lines:
            for idx, note in enumerate(line.notes):
                if note.midi % 12 not in scale_pcs:
                    errors.append(f"Line {line.line_index} note {idx} ({note.pitch}{note.octave}) is outside the key scale.")
    return errors


def _validate_timing(composition: Composition) -> list[str]:
    errors: list[str] = []
    cursor = 0.0
    for section in composition.melody:
        for line in section.lines:
            for idx, note in enumerate(line.notes):
                if abs(note.offset_ms - cursor) > TIMING_TOLERANCE_MS:
                    errors.append(f"Line {line.line_index} note {idx} starts at {note.offset_ms:g} ms; expected {cursor:g} ms.")
                if note.midi != midi_of(note.pitch, note.octave):
                    errors.append(f"Line {line.line_index} note {idx} midi {note.midi} does not match {note.pitch}{note.octave}.")
                if frequency_to_note(note.frequency) != (note.pitch, note.octave):
                    errors.append(f"Line {line.line_index} note {idx} frequency {note.frequency:g} Hz does not sound {note.pitch}{note.octave}.")
                cursor = note.offset_ms + note.duration_ms
    return errors


def _validate_dynamics(composition: Composition) -> list[str]:
    levels = composition.rhythm_pattern.dynamics
    chorus = levels.get("chorus")
    if chorus is None:
        return []
    return [
        f"Chorus dynamics {chorus:g} are not louder than {name} {level:g}."
        for name, level in levels.items()
        if name != "chorus" and level >= chorus
    ]
