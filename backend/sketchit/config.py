import os
from pathlib import Path


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Socket.IO ("" picks a platform default)
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Words
    WORDS_FILE = os.environ.get("WORDS_FILE", "") or str(Path(__file__).resolve().parent / "data" / "words.json")
    WORD_CHOICES_COUNT = int(os.environ.get("WORD_CHOICES_COUNT", "3"))

    # Round flow
    CHOOSE_DURATION_SEC = int(os.environ.get("CHOOSE_DURATION_SEC", "20"))
    ROUND_END_DELAY_SEC = int(os.environ.get("ROUND_END_DELAY_SEC", "5"))

    # Reconnection
    RECONNECT_GRACE_SEC = int(os.environ.get("RECONNECT_GRACE_SEC", "30"))
    SESSION_TTL_SEC = int(os.environ.get("SESSION_TTL_SEC", "86400"))

    # Drawing
    STROKE_RATE_LIMIT_MS = int(os.environ.get("STROKE_RATE_LIMIT_MS", "10"))
    STROKE_HISTORY_LIMIT = int(os.environ.get("STROKE_HISTORY_LIMIT", "2000"))

    # New-room settings
    DEFAULT_ROUND_TIME = int(os.environ.get("DEFAULT_ROUND_TIME", "90"))
    DEFAULT_MAX_ROUNDS = int(os.environ.get("DEFAULT_MAX_ROUNDS", "3"))
    DEFAULT_MAX_PLAYERS = int(os.environ.get("DEFAULT_MAX_PLAYERS", "8"))
    DEFAULT_HINTS_ENABLED = os.environ.get("DEFAULT_HINTS_ENABLED", "1") == "1"
