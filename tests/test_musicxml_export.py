import random
import xml.etree.ElementTree as ET

from poemsong.models import ComposeOptions
from poemsong.services.composer import compose
from poemsong.services.musicxml_export import (
    MEASURE_UNITS,
    _Event,
    _key_signature,
    _pack_measures,
    export_musicxml,
    quantize_units,
)


def _scenario():
    return compose(
        "봄바람이 불어오면\n그때 생각이 나요",
        ComposeOptions(genre="ballad", emotion="nostalgic", key="C"),
        rng=random.Random(3).random,
    )


def _parse(xml: str) -> ET.Element:
    body = xml.split("partwise.dtd\">", 1)[1]
    return ET.fromstring(body)


def test_export_contains_lead_sheet_parts():
    xml = export_musicxml(_scenario())

    assert xml.startswith('<?xml version="1.0" encoding="UTF-8"')
    assert "<score-partwise" in xml
    assert "<work-title>봄바람이 불어오면</work-title>" in xml
    assert "<part-name>Voice</part-name>" in xml
    assert "<words>Verse 1</words>" in xml
    assert "<per-minute>75</per-minute>" in xml
    assert "<harmony>" in xml
    assert '<lyric number="1">' in xml
    assert "<text>봄</text>" in xml


def test_every_measure_fills_four_beats_and_ties_pair_up():
    root = _parse(export_musicxml(_scenario()))

    measures = root.findall("./part/measure")
    assert measures
    for measure in measures:
        assert sum(int(d.text) for d in measure.iter("duration")) == MEASURE_UNITS

    starts = root.findall(".//note/tie[@type='start']")
    stops = root.findall(".//note/tie[@type='stop']")
    assert len(starts) == len(stops)


def test_one_lyric_per_sung_syllable():
    composition = _scenario()
    root = _parse(export_musicxml(composition))

    lyrics = [lyric.findtext("text") for lyric in root.iter("lyric")]
    syllables = [n.syllable for s in composition.melody for line in s.lines for n in line.notes]
    assert lyrics == syllables


def test_harmony_only_on_chord_changes():
    composition = _scenario()
    root = _parse(export_musicxml(composition))

    changes = 0
    previous = None
    for note in (n for s in composition.melody for line in s.lines for n in line.notes):
        if note.chord != previous:
            changes += 1
            previous = note.chord
    assert len(root.findall(".//harmony")) == changes


def test_packing_splits_notes_across_barlines():
    measures = _pack_measures([_Event(units=12), _Event(units=8)])

    assert [[p.units for p in m] for m in measures] == [[12, 4], [4, 12]]
    crossing = [measures[0][1], measures[1][0]]
    assert (crossing[0].tie_start, crossing[0].tie_stop) == (True, False)
    assert (crossing[1].tie_start, crossing[1].tie_stop) == (False, True)
    assert crossing[0].first and not crossing[1].first
    # The trailing rest pads the last measure.
    assert measures[1][1].event.note is None


def test_unrepresentable_lengths_are_split_into_tied_chunks():
    (measure,) = _pack_measures([_Event(units=5)])
    assert [p.units for p in measure] == [4, 1, 8, 3]
    assert measure[0].tie_start and measure[1].tie_stop


def test_quantization_uses_sixteenth_grid():
    assert quantize_units(500, 120) == 4
    assert quantize_units(780, 75) == 4
    assert quantize_units(10, 120) == 1


def test_key_signature_for_major_and_minor_modes():
    assert _key_signature("G", "major") == (1, "major")
    assert _key_signature("A", "minor") == (0, "minor")
    assert _key_signature("C", "blues") == (-3, "minor")
    assert _key_signature("D", "pentatonic") == (2, "major")


def test_key_signature_keeps_church_modes():
    assert _key_signature("C", "dorian") == (-2, "dorian")
    assert _key_signature("A#", "dorian") == (-4, "dorian")
    assert _key_signature("G", "mixolydian") == (0, "mixolydian")
    assert _key_signature("E", "phrygian") == (4, "major")
