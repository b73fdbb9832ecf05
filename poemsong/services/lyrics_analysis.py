from __future__ import annotations

import logging
import re
import string
import unicodedata
from typing import Mapping, Sequence

from poemsong.logging_utils import log_event
from poemsong.models import (
    DEFAULT_EMOTION,
    ComplexityTier,
    EmotionIntensity,
    IntensityTier,
    LinePattern,
    LyricSectionSpan,
    LyricsAnalysis,
    SectionType,
    TextQuality,
    WordRhythm,
)

logger = logging.getLogger(__name__)

EMOTION_KEYWORDS: dict[str, tuple[str, ...]] = {
    "happy": ("기쁨", "즐거운", "웃음", "행복", "밝은", "따뜻", "joy", "happy", "smile", "laugh"),
    "sad": ("슬픔", "눈물", "아픔", "그리움", "외로운", "쓸쓸", "tears", "sorrow", "lonely", "cry"),
    "romantic": ("사랑", "마음", "그대", "연인", "달콤", "포근", "love", "darling", "heart", "kiss"),
    "nostalgic": ("추억", "옛날", "그때", "기억", "향수", "그리워", "memory", "remember", "yesterday", "old days"),
    "energetic": ("힘", "용기", "도전", "열정", "꿈", "희망", "fire", "run", "power", "dream"),
    "peaceful": ("평화", "고요", "잔잔", "편안", "조용", "안식", "calm", "quiet", "peace", "still"),
}

INTENSITY_KEYWORDS: dict[IntensityTier, tuple[str, ...]] = {
    "high": ("매우", "굉장히", "너무", "정말", "진짜", "완전", "엄청", "극도로", "심하게", "very", "really", "extremely", "so much"),
    "medium": ("조금", "약간", "살짝", "어느정도", "다소", "제법", "꽤", "a little", "slightly", "somewhat", "quite"),
    "low": ("거의", "별로", "그다지", "특별히", "barely", "hardly", "scarcely"),
}
INTENSITY_WEIGHTS: dict[IntensityTier, int] = {"high": 3, "medium": 2, "low": 1}
NEUTRAL_INTENSITY = 1.5

SECTION_CYCLE: tuple[SectionType, ...] = ("verse", "chorus", "verse", "chorus", "bridge", "chorus")
TITLE_MAX_LENGTH = 20
LONG_WORD_LENGTH = 4
LONG_TEXT_LENGTH = 50

# Hangul syllables, Hiragana, Katakana and CJK ideographs each carry one syllable.
_SYLLABIC_CHAR = "[가-힣ぁ-ゖァ-ヺ一-鿿]"
_SYLLABLE_TOKEN_RE = re.compile(rf"{_SYLLABIC_CHAR}|(?:(?!{_SYLLABIC_CHAR})[^\W\d_])+")
_LATIN_VOWELS = frozenset("aeiouy")
_SENTENCE_BREAK_RE = re.compile(r"[.!?\n]+")
# Long Hangul words and common Sino-Korean characters read as dense vocabulary.
_DENSE_TOKEN_RE = re.compile(r"[가-힣]{3,}|[的性化學業機關政經社文科技術]")


def _is_vowel(char: str) -> bool:
    # NFD puts the base letter first, so "é" and "ü" count as vowels.
    return unicodedata.normalize("NFD", char)[0].lower() in _LATIN_VOWELS


def split_latin_syllables(word: str) -> list[str]:
    """Split a letter run into one chunk per vowel group; trailing consonants join the last chunk."""
    chunks: list[str] = []
    current = ""
    in_vowels = False
    for char in word:
        vowel = _is_vowel(char)
        if in_vowels and not vowel:
            chunks.append(current)
            current, in_vowels = "", False
        current += char
        in_vowels = in_vowels or vowel
    if current:
        if in_vowels or not chunks:
            chunks.append(current)
        else:
            chunks[-1] += current
    return chunks


def split_word_syllables(word: str) -> list[str]:
    syllables: list[str] = []
    for token in _SYLLABLE_TOKEN_RE.findall(word):
        if len(token) == 1 and re.fullmatch(_SYLLABIC_CHAR, token):
            syllables.append(token)
        else:
            syllables.extend(split_latin_syllables(token))
    return syllables


def count_syllables(text: str) -> int:
    return sum(len(split_word_syllables(word)) for word in text.split())


def stress_pattern(syllable_count: int) -> list[bool]:
    return [is_stressed(i, syllable_count) for i in range(syllable_count)]


def is_stressed(syllable_index: int, syllable_count: int) -> bool:
    if syllable_count == 1:
        return True
    if syllable_count == 2:
        return syllable_index == 0
    if syllable_count == 3:
        return syllable_index in (0, 2)
    return syllable_index % 2 == 0


def count_keyword(lowered: str, keyword: str) -> int:
    """Occurrences of ``keyword`` in already-lowercased text.

    ASCII keywords only count as whole words ("run" does not match "brunch").
    Korean keywords match inside words, since particles and endings attach
    directly to the stem.
    """
    keyword = keyword.lower()
    if keyword.isascii():
        return len(re.findall(rf"\b{re.escape(keyword)}\b", lowered))
    return lowered.count(keyword)


def detect_emotions(text: str, keyword_table: Mapping[str, Sequence[str]] = EMOTION_KEYWORDS) -> dict[str, int]:
    lowered = text.lower()
    detected: dict[str, int] = {}
    for emotion, keywords in keyword_table.items():
        matches = sum(count_keyword(lowered, keyword) for keyword in keywords)
        if matches > 0:
            detected[emotion] = matches
    return detected


def analyze_emotion_intensity(
    text: str,
    keyword_table: Mapping[IntensityTier, Sequence[str]] = INTENSITY_KEYWORDS,
) -> EmotionIntensity:
    lowered = text.lower()
    weighted = 0
    matched = 0
    for tier, keywords in keyword_table.items():
        hits = sum(count_keyword(lowered, keyword) for keyword in keywords)
        weighted += hits * INTENSITY_WEIGHTS[tier]
        matched += hits
    average = weighted / matched if matched else NEUTRAL_INTENSITY
    if average > 2.5:
        level: IntensityTier = "high"
    elif average > 1.5:
        level = "medium"
    else:
        level = "low"
    return EmotionIntensity(level=level, score=round(average, 1), keyword_count=matched)


def _sentences(text: str) -> list[str]:
    # Lyric lines count as sentences even without punctuation.
    return [s for s in _SENTENCE_BREAK_RE.split(text) if s.strip()] or [text]


def readability_score(words: Sequence[str], sentences: Sequence[str]) -> int:
    """Lower is easier: ten points per average word length plus two per average sentence length."""
    avg_word_length = sum(len(w) for w in words) / len(words)
    avg_sentence_length = sum(len(s.split()) for s in sentences) / len(sentences)
    return round(avg_word_length * 10 + avg_sentence_length * 2)


def complexity_score(text: str, words: Sequence[str], sentences: Sequence[str]) -> int:
    avg_sentence_length = len(words) / len(sentences)
    long_word_ratio = sum(1 for w in words if len(w) >= LONG_WORD_LENGTH) / len(words)
    dense_ratio = len(_DENSE_TOKEN_RE.findall(text)) / len(words)
    return round(min(100, avg_sentence_length * 2 + long_word_ratio * 30 + dense_ratio * 40))


def analyze_text_quality(text: str, rhythm_regular: bool) -> TextQuality:
    words = text.split()
    sentences = _sentences(text)
    readability = readability_score(words, sentences)
    complexity = complexity_score(text, words, sentences)
    score = round(
        (100 - complexity) * 0.3
        + (100 - readability) * 0.3
        + (80 if rhythm_regular else 60) * 0.2
        + (80 if len(text) > LONG_TEXT_LENGTH else 60) * 0.2
    )
    if score > 80:
        grade = "excellent"
    elif score > 60:
        grade = "good"
    elif score > 40:
        grade = "fair"
    else:
        grade = "poor"
    if readability > 40:
        readability_level = "difficult"
    elif readability > 25:
        readability_level = "moderate"
    else:
        readability_level = "easy"
    return TextQuality(
        score=score,
        grade=grade,
        readability=readability,
        readability_level=readability_level,
        complexity_score=complexity,
    )


def dominant_emotion(detected: Mapping[str, int]) -> str:
    if not detected:
        return DEFAULT_EMOTION
    best_name, best_count = None, -1
    for name, count in detected.items():
        # Ties go to the emotion listed later in the table.
        if count >= best_count:
            best_name, best_count = name, count
    return best_name or DEFAULT_EMOTION


def predict_section_type(section_index: int) -> SectionType:
    return SECTION_CYCLE[section_index % len(SECTION_CYCLE)]


def analyze_structure(raw_lines: Sequence[str]) -> list[LyricSectionSpan]:
    sections: list[LyricSectionSpan] = []
    current: list[str] = []
    start_line = 0

    def close_section() -> None:
        nonlocal current, start_line
        if not current:
            return
        sections.append(
            LyricSectionSpan(
                index=len(sections),
                type=predict_section_type(len(sections)),
                start_line=start_line,
                end_line=start_line + len(current),
                lines=list(current),
            )
        )
        start_line += len(current)
        current = []

    for raw in raw_lines:
        line = raw.strip()
        if not line:
            close_section()
            continue
        current.append(line)
    close_section()
    return sections


def calculate_complexity(words: Sequence[str], syllable_count: int) -> ComplexityTier:
    if not words:
        return "low"
    avg_word_length = sum(len(w) for w in words) / len(words)
    syllable_ratio = syllable_count / len(words)
    long_words = avg_word_length > 4
    dense_syllables = syllable_ratio > 2
    if long_words and dense_syllables:
        return "high"
    if long_words or dense_syllables:
        return "medium"
    return "low"


def extract_title(lines: Sequence[str]) -> str | None:
    if not lines:
        return None
    first = lines[0].strip()
    return first[:TITLE_MAX_LENGTH] if len(first) > TITLE_MAX_LENGTH else first


def analyze_rhyme_scheme(lines: Sequence[str]) -> str:
    letters = string.ascii_uppercase + string.ascii_lowercase
    assigned: dict[str, str] = {}
    scheme: list[str] = []
    for line in lines:
        words = line.split()
        end_sound = words[-1][-1] if words else ""
        if end_sound not in assigned:
            position = len(assigned)
            assigned[end_sound] = letters[position] if position < len(letters) else "?"
        scheme.append(assigned[end_sound])
    return "".join(scheme)


def line_pattern(index: int, line: str) -> LinePattern:
    words = line.split()
    rhythm: list[WordRhythm] = []
    for word in words:
        syllables = split_word_syllables(word)
        rhythm.append(WordRhythm(text=word, syllables=syllables, stress=stress_pattern(len(syllables))))
    return LinePattern(
        index=index,
        text=line,
        syllables=sum(len(w.syllables) for w in rhythm),
        words=len(words),
        word_rhythm=rhythm,
    )


def analyze_lyrics(
    text: str,
    *,
    keyword_table: Mapping[str, Sequence[str]] = EMOTION_KEYWORDS,
) -> LyricsAnalysis:
    """Parse raw lyric text into structural and emotional features.

    Whitespace-only input yields a zero-valued analysis (``is_empty`` is True)
    that must not be composed.
    """
    raw_lines = text.splitlines()
    lines = [line.strip() for line in raw_lines if line.strip()]
    if not lines:
        log_event(logger, "lyrics_analysis_empty", level=logging.WARNING)
        return LyricsAnalysis()

    words = text.split()
    patterns = [line_pattern(idx, line) for idx, line in enumerate(lines)]
    syllable_count = sum(p.syllables for p in patterns)
    detected = detect_emotions(text, keyword_table)
    regular = len({p.syllables for p in patterns}) <= 2

    analysis = LyricsAnalysis(
        title=extract_title(lines),
        line_count=len(lines),
        word_count=len(words),
        syllable_count=syllable_count,
        syllable_pattern=patterns,
        detected_emotions=detected,
        dominant_emotion=dominant_emotion(detected),
        structure=analyze_structure(raw_lines),
        complexity=calculate_complexity(words, syllable_count),
        rhyme_scheme=analyze_rhyme_scheme(lines),
        rhythm_regular=regular,
        emotion_intensity=analyze_emotion_intensity(text),
        text_quality=analyze_text_quality(text, regular),
    )
    log_event(
        logger,
        "lyrics_analysis_completed",
        line_count=analysis.line_count,
        syllable_count=analysis.syllable_count,
        section_count=len(analysis.structure),
        dominant_emotion=analysis.dominant_emotion,
        complexity=analysis.complexity,
        intensity=analysis.emotion_intensity.level,
        quality=analysis.text_quality.grade,
    )
    return analysis
