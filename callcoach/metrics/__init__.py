from .aggregator import (
    STOP_WORDS,
    average_sentiment,
    compute_metrics,
    count_fillers,
    engagement_score,
    extract_keywords,
    extract_questions,
    format_timestamp,
    sentiment_series,
    speaker_talk_time,
    talk_to_listen_ratio,
    words_per_minute,
)

__all__ = [
    "STOP_WORDS",
    "average_sentiment",
    "compute_metrics",
    "count_fillers",
    "engagement_score",
    "extract_keywords",
    "extract_questions",
    "format_timestamp",
    "sentiment_series",
    "speaker_talk_time",
    "talk_to_listen_ratio",
    "words_per_minute",
]
