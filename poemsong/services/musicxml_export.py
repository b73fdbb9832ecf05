from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass

from poemsong.logging_utils import log_event
from poemsong.models import ChordSlot, Composition, Note
from poemsong.services.harmony import resolve_chord
from poemsong.services.music_theory import NOTE_TO_SEMITONE, bpm_to_ms

logger = logging.getLogger(__name__)

DIVISIONS = 4  # per quarter note, a 16th-note grid
MEASURE_UNITS = 4 * DIVISIONS

_DURATION_TYPES: list[tuple[int, str, bool]] = [
    (16, "whole", False),
    (12, "half", True),
    (8, "half", False),
    (6, "quarter", True),
    (4, "quarter", False),
    (3, "eighth", True),
    (2, "eighth", False),
    (1, "16th", False),
]

_HARMONY_KINDS = {
    "major": "major",
    "minor": "minor",
    "diminished": "diminished",
    "major7": "major-seventh",
    "minor7": "minor-seventh",
    "dominant7": "dominant",
    "half-diminished7": "half-diminished",
}

# Major-key fifths by tonic pitch class, flat keys preferred over six sharps.
_FIFTHS_BY_PC = {0: 0, 1: -5, 2: 2, 3: -3, 4: 4, 5: -1, 6: 6, 7: 1, 8: -4, 9: 3, 10: -2, 11: 5}
# Scale type -> (semitones from tonic to its relative major, MusicXML mode).
_MODE_SIGNATURES = {
    "major": (0, "major"),
    "minor": (3, "minor"),
    "dorian": (10, "dorian"),
    "mixolydian": (5, "mixolydian"),
    "pentatonic": (0, "major"),
    "blues": (3, "minor"),
}


@dataclass
class _Event:
    units: int
    note: Note | None = None
    lyric: str | None = None
    syllabic: str | None = None
    header: str | None = None
    harmony: ChordSlot | None = None


@dataclass
class _Piece:
    units: int
    event: _Event
    first: bool
    tie_start: bool = False
    tie_stop: bool = False


def export_musicxml(composition: Composition) -> str:
    """Render the composition as a single-voice MusicXML lead sheet.

    Note lengths are quantized to 16ths at the composition tempo and packed into
    4/4 measures; notes crossing a barline are split and tied.
    """
    events = _melody_events(composition)
    log_event(logger, "musicxml_render_started", note_count=len(events), tempo=composition.tempo)

    measures = _pack_measures(events)
    fifths, mode = _key_signature(composition.key, composition.parameters.scale)
    lines: list[str] = [
        '<?xml version="1.0" encoding="UTF-8" standalone="no"?>',
        '<!DOCTYPE score-partwise PUBLIC "-//Recordare//DTD MusicXML 3.1 Partwise//EN"',
        '  "http://www.musicxml.org/dtds/partwise.dtd">',
        '<score-partwise version="3.1">',
        f"  <work><work-title>{_escape_xml(composition.title)}</work-title></work>",
        "  <part-list>",
        '    <score-part id="P1">',
        "      <part-name>Voice</part-name>",
        "    </score-part>",
        "  </part-list>",
        '  <part id="P1">',
    ]

    for number, pieces in enumerate(measures, start=1):
        lines.append(f'    <measure number="{number}">')
        if number == 1:
            lines.extend(
                [
                    "      <attributes>",
                    f"        <divisions>{DIVISIONS}</divisions>",
                    f"        <key><fifths>{fifths}</fifths><mode>{mode}</mode></key>",
                    "        <time><beats>4</beats><beat-type>4</beat-type></time>",
                    "        <clef><sign>G</sign><line>2</line></clef>",
                    "      </attributes>",
                    (
                        "      <direction placement=\"above\"><direction-type><metronome><beat-unit>quarter</beat-unit>"
                        f"<per-minute>{composition.tempo}</per-minute></metronome></direction-type>"
                        f"<sound tempo=\"{composition.tempo}\"/></direction>"
                    ),
                ]
            )
        for piece in pieces:
            event = piece.event
            if piece.first and event.header:
                lines.append(
                    "      <direction placement=\"above\"><direction-type>"
                    f"<words>{_escape_xml(event.header)}</words>"
                    "</direction-type></direction>"
                )
            if piece.first and event.harmony is not None:
                lines.extend(_harmony_xml(event.harmony))
            lines.extend(_note_xml(piece))
        lines.append("    </measure>")

    lines.extend(["  </part>", "</score-partwise>"])
    content = "\n".join(lines)
    log_event(
        logger,
        "musicxml_render_completed",
        output_size_bytes=len(content.encode("utf-8")),
        measure_count=len(measures),
    )
    return content


def quantize_units(duration_ms: float, tempo: int) -> int:
    return max(1, round(duration_ms / bpm_to_ms(tempo, 4) * DIVISIONS))


def _melody_events(composition: Composition) -> list[_Event]:
    events: list[_Event] = []
    section_counts: Counter[str] = Counter()
    previous_chord = None
    for section in composition.melody:
        section_counts[section.section_type] += 1
        header: str | None = f"{section.section_type.title()} {section_counts[section.section_type]}"
        for line in section.lines:
            word_sizes = Counter(note.word_index for note in line.notes)
            for note in line.notes:
                harmony = None
                if note.chord != previous_chord:
                    harmony = resolve_chord(composition.chord_progression, note.chord)
                    previous_chord = note.chord
                events.append(
                    _Event(
                        units=quantize_units(note.duration_ms, composition.tempo),
                        note=note,
                        lyric=note.syllable,
                        syllabic=_syllabic(note.syllable_index_in_word, word_sizes[note.word_index]),
                        header=header,
                        harmony=harmony,
                    )
                )
                header = None
    return events


def _pack_measures(events: list[_Event]) -> list[list[_Piece]]:
    measures: list[list[_Piece]] = [[]]
    room = MEASURE_UNITS
    for event in events:
        pieces: list[_Piece] = []
        remaining = event.units
        while remaining > 0:
            if room == 0:
                measures.append([])
                room = MEASURE_UNITS
            take = min(remaining, room)
            for units in _split_units(take):
                piece = _Piece(units=units, event=event, first=not pieces)
                pieces.append(piece)
                measures[-1].append(piece)
            room -= take
            remaining -= take
        for idx, piece in enumerate(pieces):
            piece.tie_stop = idx > 0
            piece.tie_start = idx < len(pieces) - 1

    if room:
        for units in _split_units(room):
            measures[-1].append(_Piece(units=units, event=_Event(units=units), first=True))
    return measures


def _split_units(units: int) -> list[int]:
    chunks: list[int] = []
    while units > 0:
        size = next(size for size, _, _ in _DURATION_TYPES if size <= units)
        chunks.append(size)
        units -= size
    return chunks


def _note_type(units: int) -> tuple[str, bool]:
    for size, note_type, dotted in _DURATION_TYPES:
        if size == units:
            return note_type, dotted
    return "16th", False


def _syllabic(index_in_word: int, word_size: int) -> str:
    if word_size <= 1:
        return "single"
    if index_in_word == 0:
        return "begin"
    if index_in_word == word_size - 1:
        return "end"
    return "middle"


def _note_xml(piece: _Piece) -> list[str]:
    note = piece.event.note
    note_type, dotted = _note_type(piece.units)
    lines = ["      <note>"]
    if note is None:
        lines.append("        <rest/>")
    else:
        lines.append("        <pitch>")
        lines.append(f"          <step>{note.pitch[0]}</step>")
        if note.pitch.endswith("#"):
            lines.append("          <alter>1</alter>")
        lines.append(f"          <octave>{note.octave}</octave>")
        lines.append("        </pitch>")
    lines.append(f"        <duration>{piece.units}</duration>")
    if piece.tie_stop:
        lines.append('        <tie type="stop"/>')
    if piece.tie_start:
        lines.append('        <tie type="start"/>')
    lines.append("        <voice>1</voice>")
    lines.append(f"        <type>{note_type}</type>")
    if dotted:
        lines.append("        <dot/>")
    if piece.tie_stop or piece.tie_start:
        lines.append("        <notations>")
        if piece.tie_stop:
            lines.append('          <tied type="stop"/>')
        if piece.tie_start:
            lines.append('          <tied type="start"/>')
        lines.append("        </notations>")
    if piece.first and piece.event.lyric:
        lines.extend(
            [
                '        <lyric number="1">',
                f"          <syllabic>{piece.event.syllabic}</syllabic>",
                f"          <text>{_escape_xml(piece.event.lyric)}</text>",
                "        </lyric>",
            ]
        )
    lines.append("      </note>")
    return lines


def _harmony_xml(chord: ChordSlot) -> list[str]:
    lines = [
        "      <harmony>",
        "        <root>",
        f"          <root-step>{chord.root[0]}</root-step>",
    ]
    if chord.root.endswith("#"):
        lines.append("          <root-alter>1</root-alter>")
    lines.extend(
        [
            "        </root>",
            f"        <kind text=\"{_escape_xml(chord.symbol[len(chord.root):])}\">{_HARMONY_KINDS[chord.quality]}</kind>",
            "      </harmony>",
        ]
    )
    return lines


def _key_signature(key: str, scale: str) -> tuple[int, str]:
    """Fifths and mode for a tonic and scale, read off the relative major."""
    offset, mode = _MODE_SIGNATURES.get(scale, _MODE_SIGNATURES["major"])
    tonic_pc = NOTE_TO_SEMITONE.get(key, 0)
    return _FIFTHS_BY_PC[(tonic_pc + offset) % 12], mode


def _escape_xml(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )
