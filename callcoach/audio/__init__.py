"""Audio pipeline: framing, silence-gated chunking, rolling windows, session recording, file decoding."""
from .receiver import AudioReceiver
from .chunker import AudioChunker, webrtc_detector
from .rolling_buffer import RollingBuffer
from .recorder import AudioRecorder
from .decoder import decode_to_pcm

__all__ = [
    "AudioReceiver",
    "AudioChunker",
    "RollingBuffer",
    "AudioRecorder",
    "decode_to_pcm",
    "webrtc_detector",
]
