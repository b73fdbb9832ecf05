from __future__ import annotations

import hashlib
import logging
import random
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from poemsong.config import settings
from poemsong.logging_utils import composition_context, log_event
from poemsong.models import ComposeOptions, Composition, LyricsAnalysis
from poemsong.services.composition_validation import validate_composition
from poemsong.services.harmony import generate_chord_progression, resolve_key
from poemsong.services.instrumentation import select_instrumentation
from poemsong.services.lyrics_analysis import analyze_lyrics
from poemsong.services.melody import RandomSource, generate_melody
from poemsong.services.music_theory import analyze_key
from poemsong.services.parameters import recommend_genre, resolve_parameters
from poemsong.services.rhythm import generate_rhythm_pattern

DEFAULT_TITLE = "Untitled Song"
SYLLABLES_PER_BEAT = 2
SECTION_LENGTH_BONUS = 0.1

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class EmptyLyricsError(ValueError):
    pass


class CompositionConsistencyError(AssertionError):
    pass


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def composition_seed(lyrics: str, options: ComposeOptions) -> str:
    raw = f"{lyrics}|{options.genre}|{options.emotion}|{options.key}|{options.tempo}|{options.seed}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


def estimate_duration(analysis: LyricsAnalysis, tempo: int, *, minimum: int | None = None) -> int:
    """Estimated song length in seconds.

    Roughly two syllables are sung per beat, and each section adds ten percent
    for repeats and transitions. Never shorter than the configured minimum,
    and never below one second.
    """
    floor = settings.min_duration_seconds if minimum is None else minimum
    minutes = analysis.syllable_count / (tempo * SYLLABLES_PER_BEAT)
    seconds = minutes * 60 * (1 + SECTION_LENGTH_BONUS * len(analysis.structure))
    return max(1, floor, round(seconds))


def compose(
    lyrics: str,
    options: ComposeOptions | Mapping[str, Any] | None = None,
    *,
    rng: RandomSource | None = None,
    clock: Clock | None = None,
) -> Composition:
    """Turn lyric text into a complete symbolic composition.

    ``rng`` drives melodic contour and defaults to a generator seeded from the
    lyrics and options, so repeated calls give identical output. ``clock``
    supplies ``generated_at``.
    """
    if options is None:
        options = ComposeOptions()
    elif not isinstance(options, ComposeOptions):
        options = ComposeOptions.model_validate(options)

    seed = composition_seed(lyrics, options)
    with composition_context(f"comp-{seed}"):
        analysis = analyze_lyrics(lyrics)
        if analysis.is_empty:
            log_event(logger, "composition_rejected", level=logging.WARNING, reason="empty_lyrics")
            raise EmptyLyricsError("Lyrics are empty; enter at least one line with words to compose a song.")

        log_event(logger, "composition_started", line_count=analysis.line_count, genre=options.genre, emotion=options.emotion)
        if rng is None:
            rng = random.Random(seed).random
        if clock is None:
            clock = _utc_now

        genre = options.genre or recommend_genre(analysis)
        emotion = options.emotion or analysis.dominant_emotion
        params = resolve_parameters(analysis, genre, emotion, options.user_style)
        key = resolve_key(options.key)
        tempo = options.tempo or params.tempo

        progression = generate_chord_progression(params.progression, key, analysis)
        melody = generate_melody(analysis, progression, params, key, rng=rng, tempo=tempo)
        rhythm = generate_rhythm_pattern(params.genre, tempo, analysis.syllable_pattern, analysis.structure)
        instrumentation = select_instrumentation(params.genre, params.emotion, params.instruments)
        melody_key = analyze_key(note.midi for section in melody for line in section.lines for note in line.notes)

        composition = Composition(
            title=analysis.title or DEFAULT_TITLE,
            lyrics=lyrics,
            genre=params.genre,
            emotion=params.emotion,
            key=key,
            tempo=tempo,
            chord_progression=progression,
            melody=melody,
            rhythm_pattern=rhythm,
            instrumentation=instrumentation,
            structure=analysis.structure,
            duration=estimate_duration(analysis, tempo),
            generated_at=clock(),
            parameters=params,
            melody_key=melody_key,
        )

        report = validate_composition(composition, analysis)
        if report.warnings:
            log_event(logger, "validation_warnings", level=logging.WARNING, diagnostics=report.warnings)
        if report.fatal:
            log_event(logger, "validation_failed", level=logging.ERROR, diagnostics=report.fatal)
            if settings.strict_validation:
                raise CompositionConsistencyError("; ".join(report.fatal))

        log_event(
            logger,
            "composition_completed",
            genre=composition.genre,
            emotion=composition.emotion,
            key=composition.key,
            tempo=composition.tempo,
            duration=composition.duration,
            melody_key=f"{melody_key.key} {melody_key.mode}" if melody_key else None,
        )
        return composition
