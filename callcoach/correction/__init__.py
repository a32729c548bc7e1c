"""Post-recording speaker correction: splits, reassignments and residual role mapping."""
from .speakers import (
    apply_corrections,
    classify_residual_speakers,
    initiator_score,
    run_speaker_correction,
)

__all__ = [
    "apply_corrections",
    "classify_residual_speakers",
    "initiator_score",
    "run_speaker_correction",
]
