from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


GenreName = Literal["ballad", "pop", "rock", "jazz", "folk", "enka"]
EmotionName = Literal["happy", "sad", "romantic", "nostalgic", "energetic", "peaceful"]
SectionType = Literal["verse", "chorus", "bridge", "intro", "outro"]
ComplexityTier = Literal["low", "medium", "high"]
IntensityTier = Literal["low", "medium", "high"]
QualityGrade = Literal["excellent", "good", "fair", "poor"]
ReadabilityLevel = Literal["easy", "moderate", "difficult"]
ChordQuality = Literal["major", "minor", "diminished", "major7", "minor7", "dominant7", "half-diminished7"]

GENRES: tuple[str, ...] = ("ballad", "pop", "rock", "jazz", "folk", "enka")
EMOTIONS: tuple[str, ...] = ("happy", "sad", "romantic", "nostalgic", "energetic", "peaceful")
KEYS: tuple[str, ...] = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")

DEFAULT_GENRE = "ballad"
DEFAULT_EMOTION = "nostalgic"
DEFAULT_KEY = "C"


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# Lyrics analysis


class WordRhythm(FrozenModel):
    text: str
    syllables: tuple[str, ...]
    stress: tuple[bool, ...]


class LinePattern(FrozenModel):
    index: int = Field(ge=0)
    text: str
    syllables: int = Field(ge=0)
    words: int = Field(ge=0)
    word_rhythm: tuple[WordRhythm, ...]


class LyricSectionSpan(FrozenModel):
    index: int = Field(ge=0)
    type: SectionType
    start_line: int = Field(ge=0)
    end_line: int = Field(ge=0, description="Exclusive index into the non-empty line list")
    lines: tuple[str, ...]

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line


class EmotionIntensity(FrozenModel):
    level: IntensityTier = "low"
    score: float = 1.5
    keyword_count: int = Field(default=0, ge=0)


class TextQuality(FrozenModel):
    score: int
    grade: QualityGrade
    readability: int = Field(description="Lower reads easier")
    readability_level: ReadabilityLevel
    complexity_score: int = Field(ge=0, le=100)


class LyricsAnalysis(FrozenModel):
    title: str | None = None
    line_count: int = 0
    word_count: int = 0
    syllable_count: int = 0
    syllable_pattern: tuple[LinePattern, ...] = ()
    detected_emotions: dict[str, int] = Field(default_factory=dict)
    dominant_emotion: str = DEFAULT_EMOTION
    structure: tuple[LyricSectionSpan, ...] = ()
    complexity: ComplexityTier = "low"
    rhyme_scheme: str = ""
    rhythm_regular: bool = True
    emotion_intensity: EmotionIntensity = Field(default_factory=EmotionIntensity)
    text_quality: TextQuality | None = None

    @property
    def is_empty(self) -> bool:
        return self.line_count == 0 or self.syllable_count == 0


# Request options


class UserStyle(BaseModel):
    tempo: int | None = Field(default=None, ge=30, le=300)
    scale: str | None = None
    progression: str | None = None
    instruments: list[str] | None = None


class ComposeOptions(BaseModel):
    genre: str | None = None
    emotion: str | None = None
    key: str = DEFAULT_KEY
    tempo: int | None = Field(default=None, ge=30, le=300)
    user_style: UserStyle | None = None
    seed: int | str | None = None

    @field_validator("genre", "emotion", mode="before")
    @classmethod
    def strip_names(cls, value):
        if isinstance(value, str):
            return value.strip().lower() or None
        return value

    @field_validator("key", mode="before")
    @classmethod
    def strip_key(cls, value):
        if value is None:
            return DEFAULT_KEY
        if isinstance(value, str):
            return value.strip() or DEFAULT_KEY
        return value


# Resolved parameters


class MusicParameters(FrozenModel):
    scale: str
    tempo: int = Field(ge=1)
    dynamics: str
    brightness: float = Field(ge=0, le=1)
    progression: str
    genre: str
    emotion: str
    complexity: ComplexityTier
    instruments: tuple[str, ...] | None = None


# Harmony


class ChordSlot(FrozenModel):
    roman: str
    root: str
    quality: ChordQuality
    symbol: str
    notes: tuple[str, ...]
    pitch_classes: tuple[int, ...]
    voicing: tuple[str, ...]
    duration_beats: float = Field(gt=0)
    section_index: int = Field(ge=0)
    line_index: int = Field(ge=0)
    slot_index: int = Field(ge=0)


class SectionProgression(FrozenModel):
    section_index: int = Field(ge=0)
    section_type: SectionType
    chords: tuple[ChordSlot, ...]

    @property
    def total_beats(self) -> float:
        return sum(chord.duration_beats for chord in self.chords)


class ChordRef(FrozenModel):
    section_index: int = Field(ge=0)
    slot_index: int = Field(ge=0)


class KeyEstimate(FrozenModel):
    key: str
    mode: str
    confidence: float = Field(description="Correlation with the best-matching key profile")


# Melody


class Note(FrozenModel):
    pitch: str
    octave: int = Field(ge=0, le=9)
    midi: int = Field(ge=0, le=127)
    frequency: float = Field(gt=0)
    duration_ms: float = Field(gt=0)
    offset_ms: float = Field(ge=0)
    syllable: str
    word_index: int = Field(ge=0)
    syllable_index_in_word: int = Field(ge=0)
    stressed: bool
    chord: ChordRef


class MelodyLine(FrozenModel):
    section_index: int = Field(ge=0)
    line_index: int = Field(ge=0)
    text: str
    notes: tuple[Note, ...]


class MelodySection(FrozenModel):
    section_index: int = Field(ge=0)
    section_type: SectionType
    lines: tuple[MelodyLine, ...]


# Rhythm and ensemble


class RhythmMeasure(FrozenModel):
    index: int = Field(ge=0)
    beats: tuple[float, ...] = Field(min_length=8, max_length=8)
    time_signature: str = "4/4"
    tempo: int


class RhythmPattern(FrozenModel):
    genre: str
    tempo: int
    beat_duration_ms: float
    pattern: tuple[float, ...] = Field(min_length=8, max_length=8)
    measures: tuple[RhythmMeasure, ...]
    accents: tuple[int, ...]
    swing: float = Field(ge=0.5, le=1)
    dynamics: dict[str, float]
    section_levels: tuple[float, ...]


class Instrumentation(FrozenModel):
    lead: tuple[str, ...]
    harmony: tuple[str, ...]
    rhythm: tuple[str, ...]
    color: tuple[str, ...]


# Assembled output


class Composition(FrozenModel):
    title: str
    lyrics: str
    genre: str
    emotion: str
    key: str
    tempo: int
    chord_progression: tuple[SectionProgression, ...]
    melody: tuple[MelodySection, ...]
    rhythm_pattern: RhythmPattern
    instrumentation: Instrumentation
    structure: tuple[LyricSectionSpan, ...]
    duration: int = Field(gt=0, description="Estimated total length in seconds")
    generated_at: datetime
    parameters: MusicParameters
    melody_key: KeyEstimate | None = None


# HTTP payloads


class AnalyzeRequest(BaseModel):
    lyrics: str


class AnalyzeResponse(BaseModel):
    analysis: LyricsAnalysis
    recommended_genre: str


class ComposeRequest(BaseModel):
    lyrics: str
    options: ComposeOptions = Field(default_factory=ComposeOptions)


class ExportRequest(BaseModel):
    composition: Composition
