"""
Decode an uploaded audio file (mp3, wav, m4a, ogg, webm) into the PCM contract used by
the transcription pipeline: signed int16, little-endian, mono, SAMPLE_RATE.

pydub delegates to ffmpeg for anything that is not WAV. Blocking; run in an executor.
"""
from __future__ import annotations

import logging
import os

from callcoach.config import get_settings
from callcoach.errors import AcquisitionFailure

logger = logging.getLogger(__name__)


def decode_to_pcm(path: str) -> bytes:
    """Return raw PCM bytes for path. Raises AcquisitionFailure if it cannot be read."""
    from pydub import AudioSegment
    from pydub.exceptions import CouldntDecodeError

    if not os.path.isfile(path):
        raise AcquisitionFailure(f"Audio file not found: {path}")
    settings = get_settings()
    try:
        segment = AudioSegment.from_file(path)
    except (CouldntDecodeError, OSError, IndexError) as e:
        raise AcquisitionFailure(f"Could not decode audio file {os.path.basename(path)}: {e}") from e
    segment = (
        segment.set_frame_rate(settings.SAMPLE_RATE)
        .set_channels(settings.CHANNELS)
        .set_sample_width(settings.SAMPLE_WIDTH)
    )
    logger.info("Decoded %s: %.1fs of audio", os.path.basename(path), len(segment) / 1000.0)
    return segment.raw_data
