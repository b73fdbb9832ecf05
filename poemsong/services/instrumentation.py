from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence

from poemsong.logging_utils import log_event
from poemsong.models import DEFAULT_GENRE, Instrumentation

logger = logging.getLogger(__name__)

ENSEMBLES: dict[str, dict[str, tuple[str, ...]]] = {
    "ballad": {
        "lead": ("piano", "acoustic_guitar"),
        "harmony": ("strings", "pad"),
        "rhythm": ("soft_drums", "bass"),
        "color": ("flute", "violin"),
    },
    "pop": {
        "lead": ("electric_piano", "synth_lead"),
        "harmony": ("electric_guitar", "synth_pad"),
        "rhythm": ("drums", "bass", "percussion"),
        "color": ("brass", "backing_vocals"),
    },
    "rock": {
        "lead": ("electric_guitar", "distorted_guitar"),
        "harmony": ("power_chords", "organ"),
        "rhythm": ("rock_drums", "bass_guitar"),
        "color": ("guitar_solo", "harmonica"),
    },
    "jazz": {
        "lead": ("jazz_piano", "saxophone"),
        "harmony": ("jazz_guitar", "vibraphone"),
        "rhythm": ("jazz_drums", "upright_bass"),
        "color": ("trumpet", "clarinet"),
    },
    "folk": {
        "lead": ("acoustic_guitar", "banjo"),
        "harmony": ("mandolin", "harmonica"),
        "rhythm": ("cajon", "acoustic_bass"),
        "color": ("violin", "flute"),
    },
    "enka": {
        "lead": ("shamisen", "koto"),
        "harmony": ("traditional_strings",),
        "rhythm": ("traditional_drums", "bass"),
        "color": ("shakuhachi", "taiko"),
    },
}

PERCUSSIVE = ("drums", "percussion", "soft_drums", "rock_drums", "jazz_drums", "traditional_drums", "taiko")


@dataclass(frozen=True)
class EmotionAdjustment:
    add: tuple[str, ...] = ()
    remove: tuple[str, ...] = ()


EMOTION_ADJUSTMENTS: dict[str, EmotionAdjustment] = {
    "happy": EmotionAdjustment(add=("tambourine", "bells")),
    "sad": EmotionAdjustment(add=("cello", "rain"), remove=("percussion",)),
    "romantic": EmotionAdjustment(add=("saxophone", "soft_strings"), remove=("drums",)),
    "nostalgic": EmotionAdjustment(add=("music_box", "old_piano")),
    "energetic": EmotionAdjustment(add=("electric_guitar", "heavy_drums")),
    "peaceful": EmotionAdjustment(add=("wind_chimes", "nature_sounds"), remove=PERCUSSIVE),
}


def _unique(items: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(items))


def select_instrumentation(
    genre: str,
    emotion: str,
    preferred: Sequence[str] | None = None,
    *,
    ensembles: Mapping[str, Mapping[str, Sequence[str]]] = ENSEMBLES,
    adjustments: Mapping[str, EmotionAdjustment] = EMOTION_ADJUSTMENTS,
) -> Instrumentation:
    """Pick the genre's ensemble and apply the emotion's color additions and removals.

    Lead and harmony roles are never touched by the emotion step. User-preferred
    instruments are appended to the lead role.
    """
    if genre in ensembles:
        ensemble = ensembles[genre]
    else:
        log_event(logger, "lookup_fallback_applied", level=logging.WARNING, table="ensemble", requested=genre, fallback=DEFAULT_GENRE)
        ensemble = ensembles.get(DEFAULT_GENRE, ENSEMBLES[DEFAULT_GENRE])
    adjustment = adjustments.get(emotion, EmotionAdjustment())
    removed = set(adjustment.remove)

    instrumentation = Instrumentation(
        lead=_unique([*ensemble["lead"], *(preferred or ())]),
        harmony=_unique(ensemble["harmony"]),
        rhythm=_unique([tag for tag in ensemble["rhythm"] if tag not in removed]),
        color=_unique([tag for tag in (*ensemble["color"], *adjustment.add) if tag not in removed]),
    )
    log_event(
        logger,
        "instrumentation_selected",
        level=logging.DEBUG,
        genre=genre,
        emotion=emotion,
        lead=instrumentation.lead,
        color=instrumentation.color,
    )
    return instrumentation
