import pytest

from poemsong.services.music_theory import (
    analyze_key,
    bpm_to_ms,
    chord_pitch_classes,
    frequency_to_note,
    identify_chord_type,
    midi_to_frequency,
    midi_to_pitch,
    normalize_note_name,
    parse_scale,
    pitch_to_midi,
)


def test_midi_frequencies_use_a440_equal_temperament():
    assert midi_to_frequency(69) == pytest.approx(440.0)
    assert midi_to_frequency(60) == pytest.approx(261.63, abs=0.01)
    assert midi_to_frequency(81) == pytest.approx(880.0)
    assert midi_to_frequency(57) == pytest.approx(220.0)


def test_frequency_round_trips_to_nearest_note():
    assert frequency_to_note(440) == ("A", 4)
    assert frequency_to_note(262) == ("C", 4)
    with pytest.raises(ValueError):
        frequency_to_note(0)


def test_pitch_and_midi_conversion():
    assert pitch_to_midi("Bb3") == 58
    assert pitch_to_midi("c4") == 60
    assert midi_to_pitch(61) == "C#4"
    with pytest.raises(ValueError):
        pitch_to_midi("do4")


def test_bpm_to_ms_scales_by_note_value():
    assert bpm_to_ms(120) == 500
    assert bpm_to_ms(120, 8) == 250
    assert bpm_to_ms(60, 2) == 2000


def test_scales_are_spelled_with_sharps():
    assert parse_scale("D", "major").note_names == ["D", "E", "F#", "G", "A", "B", "C#"]
    assert parse_scale("A", "minor").note_names == ["A", "B", "C", "D", "E", "F", "G"]
    assert parse_scale("Eb", "pentatonic").note_names == ["D#", "F", "G", "A#", "C"]


def test_unknown_scale_type_and_tonic_fall_back():
    scale = parse_scale("Q", "hypophrygian")
    assert (scale.tonic, scale.scale_type) == ("C", "major")
    assert len(scale) == 7


def test_chord_identification_from_intervals():
    assert identify_chord_type([0, 4, 7]) == "major"
    assert identify_chord_type([0, 3, 7, 10]) == "minor7"
    assert identify_chord_type([0, 4, 7, 10]) == "dominant7"
    assert identify_chord_type([12, 16, 19]) == "major"
    assert identify_chord_type([0, 1, 2]) == "unknown"


def test_chord_pitch_classes_wrap_the_octave():
    assert chord_pitch_classes("A", "minor") == [9, 0, 4]
    assert chord_pitch_classes("G", "dominant7") == [7, 11, 2, 5]


def test_key_estimation_prefers_c_major_for_c_major_material():
    estimate = analyze_key(["C", "E", "G", "C", "F", "D", "G", "B"])
    assert (estimate.key, estimate.mode) == ("C", "major")
    assert estimate.confidence > 0


def test_key_estimation_needs_at_least_one_note():
    assert analyze_key([]) is None
    assert analyze_key(["X", ""]) is None


def test_key_estimation_accepts_midi_numbers_and_octave_pitches():
    a_minor = [57, 60, 64, 69, 71, 72, 64, 57, 62, 65, 64, 57]
    estimate = analyze_key(a_minor)
    assert (estimate.key, estimate.mode) == ("A", "minor")

    with_octaves = analyze_key(["C4", "E4", "G4", "C5", "F4", "D4", "G3", "B3"])
    assert (with_octaves.key, with_octaves.mode) == ("C", "major")


def test_note_name_normalization():
    assert normalize_note_name("bb") == "A#"
    assert normalize_note_name(" F# ") == "F#"
    assert normalize_note_name("Db") == "C#"
    assert normalize_note_name("H") is None
    assert normalize_note_name("") is None
