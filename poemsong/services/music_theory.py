from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Iterable

from music21 import note as m21_note
from music21 import stream as m21_stream

from poemsong.models import KeyEstimate

NOTE_TO_SEMITONE = {
    "C": 0,
    "C#": 1,
    "Db": 1,
    "D": 2,
    "D#": 3,
    "Eb": 3,
    "E": 4,
    "F": 5,
    "F#": 6,
    "Gb": 6,
    "G": 7,
    "G#": 8,
    "Ab": 8,
    "A": 9,
    "A#": 10,
    "Bb": 10,
    "B": 11,
}
CHROMATIC_SCALE = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
SEMITONE_TO_NOTE = dict(enumerate(CHROMATIC_SCALE))

A4_FREQUENCY = 440.0
A4_MIDI = 69

SCALE_INTERVALS: dict[str, list[int]] = {
    "major": [0, 2, 4, 5, 7, 9, 11],
    "minor": [0, 2, 3, 5, 7, 8, 10],
    "pentatonic": [0, 2, 4, 7, 9],
    "blues": [0, 3, 5, 6, 7, 10],
    "dorian": [0, 2, 3, 5, 7, 9, 10],
    "mixolydian": [0, 2, 4, 5, 7, 9, 10],
}
DEFAULT_SCALE = "major"

CHORD_INTERVALS: dict[str, list[int]] = {
    "major": [0, 4, 7],
    "minor": [0, 3, 7],
    "diminished": [0, 3, 6],
    "augmented": [0, 4, 8],
    "major7": [0, 4, 7, 11],
    "minor7": [0, 3, 7, 10],
    "dominant7": [0, 4, 7, 10],
    "half-diminished7": [0, 3, 6, 10],
}

# Chord type by sorted intervals above the root.
_CHORD_TYPES_BY_INTERVALS = {
    (4, 7): "major",
    (3, 7): "minor",
    (4, 8): "augmented",
    (3, 6): "diminished",
    (4, 7, 11): "major7",
    (3, 7, 10): "minor7",
    (4, 7, 10): "dominant7",
    (3, 6, 9): "diminished7",
    (3, 6, 10): "half-diminished7",
}

_PITCH_RE = re.compile(r"([A-Ga-g])([#b]?)(-?\d+)")


@dataclass(frozen=True)
class Scale:
    tonic: str
    scale_type: str

    @property
    def intervals(self) -> list[int]:
        return SCALE_INTERVALS.get(self.scale_type, SCALE_INTERVALS[DEFAULT_SCALE])

    @property
    def semitones(self) -> list[int]:
        base = NOTE_TO_SEMITONE[self.tonic]
        return [(base + p) % 12 for p in self.intervals]

    @property
    def note_names(self) -> list[str]:
        return [SEMITONE_TO_NOTE[pc] for pc in self.semitones]

    def __len__(self) -> int:
        return len(self.intervals)


def normalize_note_name(name: str) -> str | None:
    """Return the sharp spelling of ``name`` (``"bb"`` -> ``"A#"``), or None when it is not a note."""
    cleaned = name.strip()
    if not cleaned:
        return None
    candidate = cleaned[0].upper() + cleaned[1:]
    if candidate not in NOTE_TO_SEMITONE:
        return None
    return SEMITONE_TO_NOTE[NOTE_TO_SEMITONE[candidate]]


def parse_scale(tonic: str, scale_type: str) -> Scale:
    normalized = normalize_note_name(tonic) or "C"
    resolved_type = scale_type if scale_type in SCALE_INTERVALS else DEFAULT_SCALE
    return Scale(tonic=normalized, scale_type=resolved_type)


def chord_pitch_classes(root: str, quality: str) -> list[int]:
    base = NOTE_TO_SEMITONE[root]
    return [(base + iv) % 12 for iv in CHORD_INTERVALS[quality]]


def identify_chord_type(intervals: Iterable[int]) -> str:
    normalized = tuple(sorted({iv % 12 for iv in intervals} - {0}))
    return _CHORD_TYPES_BY_INTERVALS.get(normalized, "unknown")


def midi_of(name: str, octave: int) -> int:
    return NOTE_TO_SEMITONE[name] + (octave + 1) * 12


def midi_to_pitch(midi: int) -> str:
    octave = (midi // 12) - 1
    return f"{SEMITONE_TO_NOTE[midi % 12]}{octave}"


def pitch_to_midi(pitch: str) -> int:
    m = _PITCH_RE.fullmatch(pitch.strip())
    if not m:
        raise ValueError(f"Invalid pitch '{pitch}'. Use forms like C4, F#3 or Bb5.")
    name = normalize_note_name(f"{m.group(1)}{m.group(2)}")
    if name is None:
        raise ValueError(f"Unknown note name in pitch '{pitch}'.")
    return midi_of(name, int(m.group(3)))


def midi_to_frequency(midi: int) -> float:
    return A4_FREQUENCY * 2 ** ((midi - A4_MIDI) / 12)


def frequency_to_note(frequency: float) -> tuple[str, int]:
    if frequency <= 0:
        raise ValueError("Frequency must be positive.")
    midi = A4_MIDI + round(12 * math.log2(frequency / A4_FREQUENCY))
    return SEMITONE_TO_NOTE[midi % 12], (midi // 12) - 1


def bpm_to_ms(bpm: float, note_value: int = 4) -> float:
    """Length of one ``1/note_value`` note at ``bpm`` quarter notes per minute."""
    return (60000 / bpm) * (4 / note_value)


def _pitch_midi(value: int | str) -> int | None:
    if isinstance(value, int):
        return value
    if _PITCH_RE.fullmatch(value.strip()):
        try:
            return pitch_to_midi(value)
        except ValueError:
            return None
    name = normalize_note_name(value)
    return None if name is None else midi_of(name, 4)


def analyze_key(pitches: Iterable[int | str]) -> KeyEstimate | None:
    """Krumhansl-Schmuckler key estimate for a note sequence.

    ``pitches`` holds midi numbers, pitches with octave (``"F#4"``) or bare note
    names. Unparseable entries are skipped; None when nothing is left.
    """
    melody = m21_stream.Stream()
    count = 0
    for value in pitches:
        midi = _pitch_midi(value)
        if midi is None:
            continue
        n = m21_note.Note()
        n.pitch.midi = midi
        melody.append(n)
        count += 1
    if not count:
        return None

    estimate = melody.analyze("Krumhansl")
    return KeyEstimate(
        key=SEMITONE_TO_NOTE[estimate.tonic.pitchClass],
        mode=estimate.mode,
        confidence=round(estimate.correlationCoefficient, 4),
    )
