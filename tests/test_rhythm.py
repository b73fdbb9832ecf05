import logging

import pytest

from poemsong.services.lyrics_analysis import analyze_lyrics
from poemsong.services.rhythm import BASE_PATTERNS, SWING_FACTORS, generate_rhythm_pattern, syllable_intensity


def _pattern(genre, text, tempo=120):
    analysis = analyze_lyrics(text)
    return generate_rhythm_pattern(genre, tempo, analysis.syllable_pattern, analysis.structure)


def test_base_pattern_accents_and_timing():
    rhythm = _pattern("ballad", "la")

    assert rhythm.pattern == (1, 0, 0.5, 0, 0.8, 0, 0.3, 0)
    assert rhythm.accents == (0, 4)
    assert rhythm.beat_duration_ms == 500
    assert rhythm.swing == 0.52
    assert rhythm.tempo == 120


def test_rock_pattern_has_even_eighth_accents():
    assert _pattern("rock", "la").accents == (0, 2, 4, 6)


def test_one_measure_per_four_lines():
    rhythm = _pattern("pop", "a\nb\nc\nd\ne")
    assert [m.index for m in rhythm.measures] == [0, 1]
    assert all(m.time_signature == "4/4" and m.tempo == 120 for m in rhythm.measures)


def test_dense_lines_raise_their_beat_slot():
    rhythm = _pattern("ballad", "la la la la la la la la\nla la\nla\nla la la la")
    beats = rhythm.measures[0].beats

    assert beats[0] == 1
    assert beats[1] == pytest.approx(0.35)
    assert beats[2] == 0.5
    assert beats[3] == pytest.approx(0.7)
    assert beats[4:] == (0.8, 0, 0.3, 0)


def test_adaptation_never_lowers_base_intensity():
    rhythm = _pattern("rock", "la\nla\nla\nla\nla\nla")
    for measure in rhythm.measures:
        assert all(b >= base for b, base in zip(measure.beats, rhythm.pattern))


def test_syllable_intensity_saturates():
    assert syllable_intensity(0) == 0
    assert syllable_intensity(2) == pytest.approx(0.35)
    assert syllable_intensity(12) == pytest.approx(0.7)


def test_swing_table():
    assert SWING_FACTORS["jazz"] > SWING_FACTORS["blues"] > SWING_FACTORS["ballad"] > SWING_FACTORS["folk"]
    assert SWING_FACTORS["pop"] == SWING_FACTORS["rock"] == 0.5


def test_chorus_is_louder_than_verse_and_bridge():
    for genre in BASE_PATTERNS:
        dynamics = _pattern(genre, "la").dynamics
        assert dynamics["chorus"] > dynamics["verse"]
        assert dynamics["chorus"] > dynamics["bridge"]


def test_section_levels_follow_section_types():
    rhythm = _pattern("pop", "a\n\nb\n\nc\n\nd\n\ne")
    assert rhythm.section_levels == (0.6, 0.8, 0.6, 0.8, 0.5)


def test_unknown_genre_uses_ballad_tables(caplog):
    with caplog.at_level(logging.WARNING):
        rhythm = _pattern("polka", "la")

    assert rhythm.genre == "polka"
    assert rhythm.pattern == BASE_PATTERNS["ballad"]
    assert rhythm.dynamics == {"verse": 0.4, "chorus": 0.6, "bridge": 0.3}
    assert rhythm.swing == SWING_FACTORS["ballad"] == 0.52
    assert any(getattr(r, "event", "") == "lookup_fallback_applied" for r in caplog.records)
