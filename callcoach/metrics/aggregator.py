"""
Conversation metrics over the final (corrected) segments.

Every function here is pure: same segments in, same numbers out. Nothing reads the clock
or the session; thresholds come from settings unless passed explicitly.
"""
from __future__ import annotations

import re
from collections import Counter
from typing import Sequence

from callcoach.config import get_settings
from callcoach.schemas.analysis import SentimentPoint, SessionMetrics
from callcoach.transcript.models import CombinedSegment

SENTIMENT_SCORES: dict[str, int] = {"positive": 80, "neutral": 60, "negative": 40}

NEUTRAL_SCORE = 50
ENGAGEMENT_MIN = 20
ENGAGEMENT_MAX = 95
SERIES_JUMP = 10

QUESTION_LEADS: frozenset[str] = frozenset({
    "what", "how", "why", "when", "where", "who", "whom", "whose", "which",
    "can", "could", "would", "should", "will", "won't", "is", "isn't", "are", "aren't",
    "do", "does", "doesn't", "did", "didn't", "have", "has", "may", "might", "shall",
})
QUESTION_LEAD_PHRASES: tuple[str, ...] = ("do you", "are you", "have you", "is there", "are there")

FILLER_WORDS: tuple[str, ...] = (
    "um", "uh", "erm", "hmm", "like", "basically", "actually", "literally",
    "you know", "i mean", "kind of", "sort of",
)

STOP_WORDS: frozenset[str] = frozenset("""
a about above after again against all am an and any are aren't as at be because been before
being below between both but by can can't cannot could couldn't did didn't do does doesn't
doing don't down during each few for from further get got had hadn't has hasn't have haven't
having he he'd he'll he's her here here's hers herself him himself his how how's i i'd i'll
i'm i've if in into is isn't it it's its itself just let's me more most mustn't my myself
no nor not now of off ok okay on once only or other ought our ours ourselves out over own
really same shan't she she'd she'll she's should shouldn't so some such than that that's the
their theirs them themselves then there there's these they they'd they'll they're they've
this those through to too under until up very was wasn't we we'd we'll we're we've were
weren't what what's when when's where where's which while who who's whom why why's will with
won't would wouldn't yeah yes you you'd you'll you're you've your yours yourself yourselves
um uh erm hmm like well also gonna wanna going know think right oh
""".split())

_TOKEN = re.compile(r"[a-z0-9']+")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def format_timestamp(seconds: float) -> str:
    """Seconds -> "m:ss"."""
    total = max(0, int(seconds or 0))
    return f"{total // 60}:{total % 60:02d}"


def speaker_talk_time(segments: Sequence[CombinedSegment]) -> dict[str, float]:
    """Spoken seconds per speaker, in order of first appearance."""
    totals: dict[str, float] = {}
    for seg in segments:
        totals[seg.speaker] = totals.get(seg.speaker, 0.0) + seg.duration
    return totals


def talk_to_listen_ratio(segments: Sequence[CombinedSegment]) -> str:
    """
    "A:B" percent shares of the two dominant speakers, listed in order of first appearance.
    No speech at all -> "50:50"; a single speaker -> "N/A".
    """
    totals = speaker_talk_time(segments)
    if sum(totals.values()) <= 0:
        return "50:50"
    if len(totals) < 2:
        return "N/A"
    order = list(totals)
    dominant = sorted(order, key=lambda s: (-totals[s], order.index(s)))[:2]
    first, second = sorted(dominant, key=order.index)
    combined = totals[first] + totals[second]
    if combined <= 0:
        return "50:50"
    share = round(100 * totals[first] / combined)
    return f"{share}:{100 - share}"


def word_count(segments: Sequence[CombinedSegment]) -> int:
    return sum(len(seg.text.split()) for seg in segments)


def words_per_minute(segments: Sequence[CombinedSegment]) -> float:
    """Words over the session length (last segment end). 0.0 when undefined."""
    if not segments:
        return 0.0
    last_end = max(seg.end for seg in segments)
    if last_end <= 0:
        return 0.0
    return word_count(segments) / (last_end / 60.0)


def engagement_score(wpm: float, floor: float | None = None, ceiling: float | None = None) -> int:
    """Linear floor -> 20 .. ceiling -> 95, clamped. Zero or undefined WPM -> 50."""
    settings = get_settings()
    floor = floor if floor is not None else settings.ENGAGEMENT_WPM_FLOOR
    ceiling = ceiling if ceiling is not None else settings.ENGAGEMENT_WPM_CEILING
    if not wpm or wpm <= 0:
        return NEUTRAL_SCORE
    span = max(ceiling - floor, 1e-9)
    score = ENGAGEMENT_MIN + (wpm - floor) * (ENGAGEMENT_MAX - ENGAGEMENT_MIN) / span
    return int(round(min(ENGAGEMENT_MAX, max(ENGAGEMENT_MIN, score))))


def _sentiment_score(seg: CombinedSegment) -> int | None:
    if not seg.sentiment:
        return None
    return SENTIMENT_SCORES.get(seg.sentiment.lower())


def average_sentiment(segments: Sequence[CombinedSegment]) -> int:
    scores = [s for s in map(_sentiment_score, segments) if s is not None]
    if not scores:
        return NEUTRAL_SCORE
    return int(round(sum(scores) / len(scores)))


def sentiment_series(segments: Sequence[CombinedSegment]) -> list[SentimentPoint]:
    """
    Down-sampled running average: ("0:00", 50) anchor, then a point whenever the running
    average moves more than 10 from the last point, or on every second sentiment-bearing segment.
    """
    points = [SentimentPoint(time="0:00", sentiment=NEUTRAL_SCORE)]
    total = 0
    count = 0
    for seg in segments:
        score = _sentiment_score(seg)
        if score is None:
            continue
        total += score
        count += 1
        avg = int(round(total / count))
        if count % 2 == 0 or abs(avg - points[-1].sentiment) > SERIES_JUMP:
            points.append(SentimentPoint(time=format_timestamp(seg.start), sentiment=avg))
    return points


def _is_question(sentence: str) -> bool:
    if sentence.endswith("?"):
        return True
    lowered = sentence.lower()
    if any(lowered.startswith(phrase + " ") for phrase in QUESTION_LEAD_PHRASES):
        return True
    words = _TOKEN.findall(lowered)
    return bool(words) and words[0] in QUESTION_LEADS


def extract_questions(segments: Sequence[CombinedSegment]) -> list[str]:
    """Question sentences from segments that contain a '?', in transcript order."""
    questions: list[str] = []
    for seg in segments:
        if "?" not in seg.text:
            continue
        for sentence in _SENTENCE_SPLIT.split(seg.text.strip()):
            sentence = sentence.strip()
            if sentence and _is_question(sentence):
                questions.append(sentence)
    return questions


def tokenize(text: str) -> list[str]:
    """Lower-cased tokens without surrounding punctuation."""
    return [t.strip("'") for t in _TOKEN.findall(text.lower()) if t.strip("'")]


def extract_keywords(
    segments: Sequence[CombinedSegment],
    top_n: int | None = None,
    min_count: int | None = None,
) -> dict[str, int]:
    """Top keywords by count (ties alphabetical), stop words and short/numeric tokens removed."""
    settings = get_settings()
    top_n = top_n if top_n is not None else settings.KEYWORDS_TOP_N
    min_count = min_count if min_count is not None else settings.KEYWORDS_MIN_COUNT
    counts: Counter[str] = Counter()
    for seg in segments:
        for token in tokenize(seg.text):
            if len(token) < 2 or token.isdigit() or token in STOP_WORDS:
                continue
            counts[token] += 1
    ranked = sorted(
        ((word, n) for word, n in counts.items() if n >= min_count),
        key=lambda item: (-item[1], item[0]),
    )
    return dict(ranked[:top_n])


def count_fillers(segments: Sequence[CombinedSegment]) -> dict[str, int]:
    """Occurrences of each filler word/phrase that appears at least once."""
    text = " ".join(" ".join(tokenize(seg.text)) for seg in segments)
    counts: dict[str, int] = {}
    for filler in FILLER_WORDS:
        n = len(re.findall(r"\b" + re.escape(filler) + r"\b", text))
        if n:
            counts[filler] = n
    return counts


def compute_metrics(segments: Sequence[CombinedSegment]) -> SessionMetrics:
    wpm = words_per_minute(segments)
    fillers = count_fillers(segments)
    return SessionMetrics(
        talk_to_listen_ratio=talk_to_listen_ratio(segments),
        sentiment_score_avg=average_sentiment(segments),
        engagement_score=engagement_score(wpm),
        words_per_minute=round(wpm, 1),
        question_count=len(extract_questions(segments)),
        filler_words=fillers,
        filler_word_count=sum(fillers.values()),
        keywords=extract_keywords(segments),
        speaker_talk_time={k: round(v, 2) for k, v in speaker_talk_time(segments).items()},
    )
