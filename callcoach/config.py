"""Application configuration. Loads from env vars."""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Audio: PCM 16-bit mono, 16kHz
    SAMPLE_RATE: int = 16000
    SAMPLE_WIDTH: int = 2  # 16-bit
    CHANNELS: int = 1

    # Frame: 20ms @ 16kHz = 320 samples = 640 bytes
    FRAME_MS: int = 20
    FRAME_BYTES: int = 640  # 320 * 2

    # Silence-gated chunking (used only when STT_USE_ROLLING_BUFFER=false)
    CHUNK_DURATION_MS: int = 1500
    OVERLAP_MS: int = 300
    SILENCE_COMMIT_MS: int = 600
    VAD_AGGRESSIVENESS: int = 2

    # Rolling buffer: transcription is time-based, no silence gating.
    STT_USE_ROLLING_BUFFER: bool = True
    STT_WINDOW_SECONDS: float = 5.0
    STT_STEP_SECONDS: float = 1.0
    STT_MIN_CHUNK_SECONDS: float = 0.5  # shorter chunks make Whisper hallucinate
    STT_COMMIT_AGE_SECONDS: float = 2.0  # segments ending before (audio_time - this) are committed
    STT_LANGUAGE: str = "en"
    # File replay: larger windows, 5s overlap (Whisper decodes up to 30s at once)
    REPLAY_WINDOW_SECONDS: float = 30.0
    REPLAY_STEP_SECONDS: float = 25.0

    # ASR backend: "local" | "cloudflare"
    ASR_BACKEND: Literal["local", "cloudflare"] = "local"

    # Cloudflare Workers AI: ASR (when ASR_BACKEND=cloudflare) and language annotation (LLM)
    CLOUDFLARE_ACCOUNT_ID: str = ""
    CLOUDFLARE_API_TOKEN: str = ""
    ASR_CF_MODEL: str = "@cf/openai/whisper"
    ASR_TIMEOUT_SEC: float = 30.0
    ASR_SEGMENT_PAUSE_SEC: float = 0.8  # word gap that starts a new segment (Workers AI word timings)

    # Local Whisper (when ASR_BACKEND=local), model loaded once at startup
    LOCAL_WHISPER_MODEL: str = "base"  # base | small | medium | large-v3
    LOCAL_WHISPER_DEVICE: Literal["cpu", "cuda"] = "cpu"
    LOCAL_WHISPER_COMPUTE_TYPE: Literal["int8", "float16"] = "int8"
    LOCAL_WHISPER_BEAM_SIZE_PARTIAL: int = 1
    LOCAL_WHISPER_BEAM_SIZE_FINAL: int = 5

    # Diarization: gap-based speaker alternation on a single channel.
    DIARIZATION_ENABLED: bool = True
    DIARIZATION_SPEAKER_GAP_SEC: float = 0.5
    DIARIZATION_MAX_SPEAKERS: int = 2

    # Language annotation (Workers AI text generation)
    ANNOTATION_CF_MODEL: str = "@cf/meta/llama-3.1-8b-instruct"
    ANNOTATION_MIN_CHARS: int = 10  # shorter fragments are appended unannotated
    ANNOTATION_MAX_TOKENS: int = 256
    ANNOTATION_TIMEOUT_SEC: float = 20.0
    FULL_ANALYSIS_MAX_TOKENS: int = 4000
    FULL_ANALYSIS_TIMEOUT_SEC: float = 90.0
    CORRECTION_MAX_TOKENS: int = 2048
    CORRECTION_TIMEOUT_SEC: float = 60.0

    # Segment merge
    MERGE_TOLERANCE_SEC: float = 2.0
    FEEDBACK_FEED_SIZE: int = 5

    # Speaker correction roles
    CORRECTION_INITIATOR_ROLE: str = "Salesperson"
    CORRECTION_RESPONDER_ROLE: str = "Customer"

    # Metrics
    ENGAGEMENT_WPM_FLOOR: float = 80.0
    ENGAGEMENT_WPM_CEILING: float = 200.0
    KEYWORDS_TOP_N: int = 30
    KEYWORDS_MIN_COUNT: int = 2

    # Session lifecycle
    STOP_GRACE_SEC: float = 2.0  # wait for trailing annotations after stop

    # Audio artifact for each session (kept for persistence handoff).
    RECORD_FORMAT: Literal["wav", "mp3"] = "wav"
    RECORD_DIR: str = "./recordings/tmp"
    RECORD_BITRATE: str = "128k"  # for MP3 only

    # Upload limits (file replay)
    UPLOAD_MAX_BYTES: int = 100 * 1024 * 1024
    UPLOAD_ALLOWED_TYPES: str = "mpeg,mp3,wav,m4a,mp4,ogg,webm"

    # Persistence
    PERSISTENCE_ENABLED: bool = True
    ANALYSES_DIR: str = "./analyses"
    RECORDINGS_DIR: str = "./recordings"
    DEFAULT_USER_ID: str = "local"

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""  # e.g. "logs/app.log"; empty = console only

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()
