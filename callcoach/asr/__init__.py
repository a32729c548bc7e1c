"""ASR: swappable Whisper-compatible engines."""
from .base import ASREngine, ASRResult, SegmentTimestamp
from .local_whisper import LocalWhisperEngine, load_whisper_model, pcm_bytes_to_float32
from .cloudflare import CloudflareWhisperEngine

__all__ = [
    "ASREngine",
    "ASRResult",
    "SegmentTimestamp",
    "LocalWhisperEngine",
    "CloudflareWhisperEngine",
    "load_whisper_model",
    "pcm_bytes_to_float32",
]
