from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from poemsong.logging_utils import log_event
from poemsong.models import DEFAULT_EMOTION, DEFAULT_GENRE, LyricsAnalysis, MusicParameters, UserStyle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmotionProfile:
    scale: str
    tempo: int
    dynamics: str
    brightness: float
    progression: str


@dataclass(frozen=True)
class GenreOverride:
    tempo: int
    dynamics: str
    brightness: float


EMOTION_PARAMETERS: dict[str, EmotionProfile] = {
    "happy": EmotionProfile(scale="major", tempo=120, dynamics="forte", brightness=0.8, progression="pop"),
    "sad": EmotionProfile(scale="minor", tempo=70, dynamics="piano", brightness=0.3, progression="ballad"),
    "romantic": EmotionProfile(scale="major", tempo=75, dynamics="mezzo-piano", brightness=0.6, progression="ballad"),
    "nostalgic": EmotionProfile(scale="dorian", tempo=80, dynamics="mezzo-piano", brightness=0.4, progression="folk"),
    "energetic": EmotionProfile(scale="mixolydian", tempo=140, dynamics="fortissimo", brightness=0.9, progression="pop"),
    "peaceful": EmotionProfile(scale="pentatonic", tempo=85, dynamics="pianissimo", brightness=0.5, progression="folk"),
}

GENRE_OVERRIDES: dict[str, GenreOverride] = {
    "ballad": GenreOverride(tempo=75, dynamics="mezzo-piano", brightness=0.4),
    "pop": GenreOverride(tempo=120, dynamics="forte", brightness=0.8),
    "rock": GenreOverride(tempo=140, dynamics="fortissimo", brightness=0.9),
    "jazz": GenreOverride(tempo=100, dynamics="mezzo-forte", brightness=0.6),
    "folk": GenreOverride(tempo=90, dynamics="mezzo-piano", brightness=0.5),
    "enka": GenreOverride(tempo=70, dynamics="piano", brightness=0.3),
}

# Genre affinity points per dominant emotion, then per complexity tier.
EMOTION_GENRE_SCORES: dict[str, dict[str, int]] = {
    "happy": {"ballad": 40, "pop": 30},
    "romantic": {"ballad": 40, "pop": 30},
    "sad": {"ballad": 30, "enka": 40, "folk": 20},
    "nostalgic": {"ballad": 30, "enka": 40, "folk": 20},
    "peaceful": {"folk": 40, "enka": 20},
    "energetic": {"pop": 30, "rock": 35, "ballad": 10},
}
COMPLEXITY_GENRE_SCORES: dict[str, dict[str, int]] = {
    "high": {"enka": 20, "folk": 10},
    "low": {"pop": 20, "ballad": 10},
}
RECOMMENDABLE_GENRES = ("ballad", "enka", "folk", "pop", "rock")


def resolve_emotion(emotion: str | None, table: Mapping[str, EmotionProfile] = EMOTION_PARAMETERS) -> str:
    name = (emotion or "").strip().lower()
    if name in table:
        return name
    log_event(logger, "lookup_fallback_applied", level=logging.WARNING, table="emotion", requested=emotion, fallback=DEFAULT_EMOTION)
    return DEFAULT_EMOTION


def resolve_genre(genre: str | None, table: Mapping[str, GenreOverride] = GENRE_OVERRIDES) -> str:
    name = (genre or "").strip().lower()
    if name in table:
        return name
    log_event(logger, "lookup_fallback_applied", level=logging.WARNING, table="genre", requested=genre, fallback=DEFAULT_GENRE)
    return DEFAULT_GENRE


def resolve_parameters(
    analysis: LyricsAnalysis,
    genre: str | None,
    emotion: str | None,
    user_style: UserStyle | None = None,
    *,
    emotion_table: Mapping[str, EmotionProfile] = EMOTION_PARAMETERS,
    genre_table: Mapping[str, GenreOverride] = GENRE_OVERRIDES,
) -> MusicParameters:
    """Merge emotion defaults, genre overrides and user style into one parameter set.

    Later layers win field by field. User style fields left as None do not
    override anything. Unknown genre or emotion names resolve to the ballad and
    nostalgic rows, and the resolved names are the ones recorded.
    """
    emotion_name = resolve_emotion(emotion, emotion_table)
    genre_name = resolve_genre(genre, genre_table)
    base = emotion_table[emotion_name]
    override = genre_table[genre_name]

    merged = {
        "scale": base.scale,
        "tempo": base.tempo,
        "dynamics": base.dynamics,
        "brightness": base.brightness,
        "progression": base.progression,
    }
    merged.update(tempo=override.tempo, dynamics=override.dynamics, brightness=override.brightness)

    instruments = None
    if user_style is not None:
        if user_style.tempo is not None:
            merged["tempo"] = user_style.tempo
        if user_style.scale is not None:
            merged["scale"] = user_style.scale
        if user_style.progression is not None:
            merged["progression"] = user_style.progression
        if user_style.instruments is not None:
            instruments = list(user_style.instruments)

    params = MusicParameters(
        **merged,
        genre=genre_name,
        emotion=emotion_name,
        complexity=analysis.complexity,
        instruments=instruments,
    )
    log_event(
        logger,
        "parameters_resolved",
        level=logging.DEBUG,
        genre=params.genre,
        emotion=params.emotion,
        scale=params.scale,
        tempo=params.tempo,
        progression=params.progression,
    )
    return params


def recommend_genre(analysis: LyricsAnalysis) -> str:
    if analysis.is_empty:
        return DEFAULT_GENRE

    scores = dict.fromkeys(RECOMMENDABLE_GENRES, 0)
    for genre, points in EMOTION_GENRE_SCORES.get(analysis.dominant_emotion, {}).items():
        scores[genre] += points
    for genre, points in COMPLEXITY_GENRE_SCORES.get(analysis.complexity, {}).items():
        scores[genre] += points

    best = max(scores.values())
    if best == 0:
        return DEFAULT_GENRE
    # max() keeps the first of equal scores, in RECOMMENDABLE_GENRES order.
    return max(RECOMMENDABLE_GENRES, key=lambda genre: scores[genre])
