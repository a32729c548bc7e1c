"""
Speaker-aware transcription (diarization only).

- No audio separation; no multi-channel input.
- SpeakerTracker assigns raw speaker ids per session; SpeakerRegistry maps them to
  display labels (Speaker A, Speaker B) in order of first appearance.

Limitations (see speaker_tracker.py):
- Overlapping speech may be partially lost on single-channel input.
- Speaker labels are approximate; the correction pass revises them after recording.
"""
from __future__ import annotations

from callcoach.diarization.registry import SpeakerRegistry, is_registry_label, speaker_label
from callcoach.diarization.speaker_tracker import SpeakerTracker

__all__ = ["SpeakerRegistry", "SpeakerTracker", "is_registry_label", "speaker_label"]
