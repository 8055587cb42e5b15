"""Application-wide configuration loader.

Every tunable of the upload/transcription pipeline lives here so that the
services never read the environment themselves. Other modules import the
module-level ``settings`` object.
"""

import os
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _default_data_root() -> str:
    # Docker images mount a volume at /data; local checkouts use ./data
    if Path("/data").exists():
        return "/data"
    return str(_PROJECT_ROOT / "data")


class Settings:
    """Settings helper that gracefully falls back to sane defaults.

    Rationale
    ---------
    When docker-compose injects an environment variable whose value is empty
    (e.g. ``TRANSCRIBE_URL=""``) ``os.getenv("TRANSCRIBE_URL", default)``
    returns an empty string *not* ``None``, and that empty string overrides
    the in-code default. We therefore use the idiom

        os.getenv(KEY) or DEFAULT

    so that *falsy* values ("", None) are replaced by the specified DEFAULT.
    An empty ``TRANSCRIBE_URL`` is meaningful: it marks the transcription
    backend as "not configured" and previews fall back to demo mode.
    """

    # --- Collaborator endpoints -------------------------------------------
    TRANSCRIBE_URL: str = os.getenv('TRANSCRIBE_URL') or ''
    TRANSCRIBE_API_KEY: str = os.getenv('TRANSCRIBE_API_KEY') or ''
    TRANSCRIBE_PREVIEW_TIMEOUT: float = float(os.getenv('TRANSCRIBE_PREVIEW_TIMEOUT') or '5')
    TRANSCRIBE_FULL_TIMEOUT: float = float(os.getenv('TRANSCRIBE_FULL_TIMEOUT') or '300')
    PAYMENT_INTENT_URL: str = os.getenv('PAYMENT_INTENT_URL') or ''
    PAYMENT_TIMEOUT: float = float(os.getenv('PAYMENT_TIMEOUT') or '15')
    ANALYTICS_URL: str = os.getenv('ANALYTICS_URL') or ''
    ANALYTICS_TIMEOUT: float = float(os.getenv('ANALYTICS_TIMEOUT') or '2')

    # --- Pricing ------------------------------------------------------------
    PRICE_PER_MINUTE: float = float(os.getenv('PRICE_PER_MINUTE') or '0.18')
    MINIMUM_CHARGE: float = float(os.getenv('MINIMUM_CHARGE') or '0.50')
    CURRENCY: str = os.getenv('CURRENCY') or 'usd'

    # --- File limits --------------------------------------------------------
    MIN_FILE_SIZE_BYTES: int = int(os.getenv('MIN_FILE_SIZE_BYTES') or '100')
    MAX_UPLOAD_SIZE_BYTES: int = int(os.getenv('MAX_UPLOAD_SIZE_BYTES') or str(2 * 1024 * 1024 * 1024))
    MAX_TRANSCRIPTION_SIZE_BYTES: int = int(os.getenv('MAX_TRANSCRIPTION_SIZE_BYTES') or str(25 * 1024 * 1024))

    # --- Media probing & conversion ----------------------------------------
    FFMPEG_PATH: str = os.getenv('FFMPEG_PATH') or 'ffmpeg'
    FFPROBE_PATH: str = os.getenv('FFPROBE_PATH') or 'ffprobe'
    PROBE_TIMEOUT: float = float(os.getenv('PROBE_TIMEOUT') or '15')
    PLAYBACK_PROBE_TIMEOUT: float = float(os.getenv('PLAYBACK_PROBE_TIMEOUT') or '3')
    CONVERSION_TIMEOUT: float = float(os.getenv('CONVERSION_TIMEOUT') or '10')
    CONVERSION_TIMEOUT_FAST: float = float(os.getenv('CONVERSION_TIMEOUT_FAST') or '5')
    FAST_MODE_THRESHOLD_BYTES: int = int(os.getenv('FAST_MODE_THRESHOLD_BYTES') or str(10 * 1024 * 1024))
    LOCAL_CONVERSION_MAX_BYTES: int = int(os.getenv('LOCAL_CONVERSION_MAX_BYTES') or str(50 * 1024 * 1024))

    # --- Preview & processing ----------------------------------------------
    PREVIEW_WINDOW_SECONDS: float = float(os.getenv('PREVIEW_WINDOW_SECONDS') or '15')
    PREVIEW_WORD_LIMIT: int = int(os.getenv('PREVIEW_WORD_LIMIT') or '50')
    PROGRESS_TICK_SECONDS: float = float(os.getenv('PROGRESS_TICK_SECONDS') or '2')

    # --- Filesystem ---------------------------------------------------------
    DATA_ROOT: str = os.getenv('DATA_ROOT') or _default_data_root()
    LOG_DIR: str = os.getenv('LOG_DIR') or str(_PROJECT_ROOT / 'logs')
    LOG_LEVEL: str = os.getenv('LOG_LEVEL') or 'INFO'

    @property
    def transcription_configured(self) -> bool:
        return bool(self.TRANSCRIBE_URL)


settings = Settings()
