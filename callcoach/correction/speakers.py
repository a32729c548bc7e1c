"""
Post-recording speaker correction.

Diarization on a single channel often folds a question and its answer into one turn or
attributes a turn to the wrong voice. After recording, the whole transcript is reviewed once:

1. splits (descending index, so earlier indices stay valid while inserting),
2. reassignments by original index,
3. residual heuristic for labels still in "Speaker X" form.

apply_corrections never mutates its input.
"""
from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import TYPE_CHECKING, Sequence

from callcoach.config import get_settings
from callcoach.diarization.registry import is_registry_label
from callcoach.errors import CorrectionFailure
from callcoach.schemas.annotation import SegmentSplit, SpeakerCorrections
from callcoach.transcript.models import CombinedSegment

if TYPE_CHECKING:
    from callcoach.annotation.client import AnnotationClient

logger = logging.getLogger(__name__)

# Phrases typical of the party that pitches and leads the call.
INITIATOR_CUES: tuple[str, ...] = (
    "we offer",
    "we provide",
    "we can",
    "our product",
    "our service",
    "our solution",
    "our team",
    "our platform",
    "i can offer",
    "let me show",
    "let me explain",
    "i recommend",
    "i'd recommend",
    "would you like",
    "how can i help",
    "special offer",
    "discount",
    "demo",
    "package",
)

# Phrases typical of the party that is being sold to.
RESPONDER_CUES: tuple[str, ...] = (
    "i need",
    "we need",
    "i want",
    "we want",
    "i'm looking for",
    "we're looking for",
    "interested in",
    "how much",
    "price",
    "pricing",
    "cost",
    "budget",
    "too expensive",
    "we currently use",
    "i'm not sure",
    "sounds good",
)


def _count_cues(text: str, cues: Sequence[str]) -> int:
    lowered = text.lower()
    return sum(len(re.findall(r"\b" + re.escape(cue) + r"\b", lowered)) for cue in cues)


def initiator_score(texts: Sequence[str]) -> int:
    """Positive: reads like the initiating party; negative: like the responding party."""
    score = 0
    for text in texts:
        score += _count_cues(text, INITIATOR_CUES)
        score += text.count("?")
        score -= _count_cues(text, RESPONDER_CUES)
    return score


def _strip_role_prefix(text: str, speaker: str) -> str:
    """'Customer: I need more seats' -> 'I need more seats' when the part speaker is Customer."""
    head, sep, rest = text.partition(":")
    if sep and head.strip().lower() == speaker.strip().lower() and rest.strip():
        return rest.strip()
    return text.strip()


def _split_segment(parent: CombinedSegment, split: SegmentSplit) -> list[CombinedSegment]:
    k = len(split.parts)
    span = parent.end - parent.start
    bounds = [parent.start + span * i / k for i in range(k)] + [parent.end]
    return [
        replace(
            parent,
            speaker=part.speaker.strip(),
            text=_strip_role_prefix(part.text, part.speaker),
            start=bounds[i],
            end=bounds[i + 1],
        )
        for i, part in enumerate(split.parts)
    ]


def classify_residual_speakers(
    segments: Sequence[CombinedSegment],
    initiator_role: str | None = None,
    responder_role: str | None = None,
) -> list[CombinedSegment]:
    """
    Map every label still in registry form to a role, consistently for all its segments.

    Several residual labels: the highest scorer (ties: first appearance) is the initiator,
    the rest are responders. A single residual label goes by the sign of its score; on a
    zero score it takes whichever role the corrected segments do not use yet.
    """
    settings = get_settings()
    initiator = initiator_role or settings.CORRECTION_INITIATOR_ROLE
    responder = responder_role or settings.CORRECTION_RESPONDER_ROLE

    texts: dict[str, list[str]] = {}
    for seg in segments:
        if is_registry_label(seg.speaker):
            texts.setdefault(seg.speaker, []).append(seg.text)
    if not texts:
        return [replace(s) for s in segments]

    scores = {label: initiator_score(t) for label, t in texts.items()}
    mapping: dict[str, str] = {}
    if len(scores) > 1:
        order = list(scores)
        lead = max(order, key=lambda label: (scores[label], -order.index(label)))
        for label in order:
            mapping[label] = initiator if label == lead else responder
    else:
        label, score = next(iter(scores.items()))
        if score > 0:
            mapping[label] = initiator
        elif score < 0:
            mapping[label] = responder
        else:
            used = {s.speaker for s in segments}
            mapping[label] = responder if initiator in used else initiator
    logger.info("Residual speaker mapping: %s (scores %s)", mapping, scores)
    return [replace(s, speaker=mapping.get(s.speaker, s.speaker)) for s in segments]


def apply_corrections(
    segments: Sequence[CombinedSegment],
    corrections: SpeakerCorrections,
    initiator_role: str | None = None,
    responder_role: str | None = None,
) -> list[CombinedSegment]:
    result = [replace(s) for s in segments]
    n = len(result)

    splits: dict[int, SegmentSplit] = {}
    for split in corrections.splits:
        if not 0 <= split.index < n:
            logger.warning("Ignoring split for out-of-range index %d (%d segments)", split.index, n)
            continue
        if not split.parts:
            logger.warning("Ignoring split for index %d with no parts", split.index)
            continue
        splits.setdefault(split.index, split)

    for index in sorted(splits, reverse=True):
        parent = result[index]
        result[index:index + 1] = _split_segment(parent, splits[index])
        logger.debug("Split segment %d into %d parts", index, len(splits[index].parts))

    # original index -> position after all splits
    shift = 0
    position: list[int] = []
    for i in range(n):
        position.append(i + shift)
        if i in splits:
            shift += len(splits[i].parts) - 1

    for fix in corrections.corrections:
        if not 0 <= fix.index < n:
            logger.warning("Ignoring reassignment for out-of-range index %d", fix.index)
            continue
        if fix.index in splits:
            logger.debug("Ignoring reassignment of split segment %d", fix.index)
            continue
        seg = result[position[fix.index]]
        result[position[fix.index]] = replace(seg, speaker=fix.new_speaker.strip())

    return classify_residual_speakers(result, initiator_role, responder_role)


async def run_speaker_correction(
    segments: Sequence[CombinedSegment],
    client: "AnnotationClient",
) -> list[CombinedSegment]:
    """One correct_speakers call; on CorrectionFailure the merge result is used unmodified."""
    if not segments:
        return []
    try:
        corrections = await client.correct_speakers(segments)
    except CorrectionFailure as e:
        logger.warning("Speaker correction failed, keeping merged speakers: %s", e.message)
        return [replace(s) for s in segments]
    logger.info(
        "Applying %d reassignment(s) and %d split(s) to %d segments",
        len(corrections.corrections), len(corrections.splits), len(segments),
    )
    return apply_corrections(segments, corrections)
