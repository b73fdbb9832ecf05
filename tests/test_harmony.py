import logging

import pytest

from poemsong.models import ChordRef
from poemsong.services.harmony import (
    KEY_CHORDS,
    PROGRESSION_TEMPLATES,
    chord_symbol,
    chord_voicing,
    generate_chord_progression,
    resolve_chord,
    resolve_key,
    roman_to_chord,
    section_variant,
    slots_for_line,
)
from poemsong.services.lyrics_analysis import analyze_lyrics


def _romans(section):
    return [chord.roman for chord in section.chords]


def test_key_table_builds_diatonic_triads():
    assert KEY_CHORDS["C"] == [
        ("C", "major"),
        ("D", "minor"),
        ("E", "minor"),
        ("F", "major"),
        ("G", "major"),
        ("A", "minor"),
        ("B", "diminished"),
    ]
    assert KEY_CHORDS["D"][2] == ("F#", "minor")
    assert len(KEY_CHORDS) == 12


def test_resolve_key_respells_flats_and_falls_back_to_c(caplog):
    assert resolve_key("Bb") == "A#"
    assert resolve_key("f#") == "F#"
    with caplog.at_level(logging.WARNING):
        assert resolve_key("Z") == "C"
        assert resolve_key(None) == "C"
    assert any(getattr(r, "event", "") == "lookup_fallback_applied" for r in caplog.records)


def test_roman_numerals_resolve_against_key():
    g_major = KEY_CHORDS["G"]
    assert roman_to_chord("I", g_major) == ("G", "major")
    assert roman_to_chord("vi", g_major) == ("E", "minor")
    assert roman_to_chord("vii°", g_major) == ("F#", "diminished")
    assert roman_to_chord("V7", g_major) == ("D", "dominant7")
    assert roman_to_chord("Imaj7", g_major) == ("G", "major7")
    assert roman_to_chord("ii7", g_major) == ("A", "minor7")


def test_unknown_roman_numeral_falls_back_to_tonic():
    assert roman_to_chord("X9", KEY_CHORDS["C"]) == ("C", "major")


def test_chord_symbols():
    assert chord_symbol("C", "major") == "C"
    assert chord_symbol("A", "minor") == "Am"
    assert chord_symbol("B", "diminished") == "Bdim"
    assert chord_symbol("G", "dominant7") == "G7"
    assert chord_symbol("B", "half-diminished7") == "Bm7b5"


def test_voicing_depends_on_section_type():
    assert chord_voicing("C", "major", "verse") == ["C3", "E3", "G3"]
    assert chord_voicing("C", "major", "chorus") == ["C3", "E3", "G3", "C4"]
    assert chord_voicing("C", "major", "bridge") == ["E3", "G3", "C4"]
    assert chord_voicing("A", "minor", "verse") == ["A3", "C4", "E4"]


@pytest.mark.parametrize(("syllables", "slots"), [(0, 1), (4, 1), (5, 2), (8, 2), (9, 4), (20, 4)])
def test_harmonic_rhythm_slots(syllables, slots):
    assert slots_for_line(syllables) == slots


def test_section_variants():
    base = PROGRESSION_TEMPLATES["pop"]
    assert section_variant(base, "verse") == ["I", "V", "vi", "IV"]
    assert section_variant(base, "chorus") == ["I", "V", "vi", "IV"]
    assert section_variant(base, "bridge") == ["vi", "IV", "I", "V"]
    assert section_variant(base, "intro") == ["I"]
    assert section_variant(base, "outro") == ["I", "V", "vi", "IV", "I"]


def test_scenario_progression_has_four_chords_over_two_lines():
    analysis = analyze_lyrics("봄바람이 불어오면\n그때 생각이 나요")
    progression = generate_chord_progression("folk", "C", analysis)

    assert len(progression) == 1
    section = progression[0]
    assert _romans(section) == ["I", "IV", "I", "V"]
    assert [c.line_index for c in section.chords] == [0, 0, 1, 1]
    assert [c.duration_beats for c in section.chords] == [2, 2, 2, 2]
    assert [c.symbol for c in section.chords] == ["C", "F", "C", "G"]
    assert section.total_beats == 8


def test_chords_cycle_across_lines_of_a_section():
    progression = generate_chord_progression("pop", "C", analyze_lyrics("la\nla\nla\nla\nla"))
    assert _romans(progression[0]) == ["I", "V", "vi", "IV", "I"]
    assert all(c.duration_beats == 4 for c in progression[0].chords)


def test_chord_durations_close_every_section():
    text = (
        "la\nla la la la la la\nla la la la la la la la la la\n\n"
        "one two three four five\nsix\n\n"
        "a\n\nb b b b b b b b b\n\nc c\nd d d d d"
    )
    analysis = analyze_lyrics(text)
    progression = generate_chord_progression("blues", "E", analysis)

    for section, span in zip(progression, analysis.structure):
        assert section.total_beats == 4 * span.line_count
        assert [c.slot_index for c in section.chords] == list(range(len(section.chords)))


def test_bridge_uses_contrasting_progression():
    analysis = analyze_lyrics("a\n\nb\n\nc\n\nd\n\ne")
    progression = generate_chord_progression("pop", "C", analysis)

    assert progression[4].section_type == "bridge"
    assert _romans(progression[4]) == ["vi"]
    assert progression[4].chords[0].voicing == ("C4", "E4", "A4")


def test_unknown_template_and_key_fall_back(caplog):
    analysis = analyze_lyrics("la")
    with caplog.at_level(logging.WARNING):
        progression = generate_chord_progression("polka", "H", analysis)

    assert _romans(progression[0]) == ["I"]
    assert progression[0].chords[0].symbol == "C"
    tables = {getattr(r, "table", None) for r in caplog.records}
    assert {"progression", "key"} <= tables


def test_resolve_chord_by_index():
    progression = generate_chord_progression("ballad", "D", analyze_lyrics("one two three four five"))
    chord = resolve_chord(progression, ChordRef(section_index=0, slot_index=1))
    assert chord.roman == "vi"
    assert chord.symbol == "Bm"
    with pytest.raises(KeyError):
        resolve_chord(progression, ChordRef(section_index=3, slot_index=0))
