"""Centralized constants for the MindFlow core.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Sync ----------
DEFAULT_MAX_RETRIES = 3
DEFAULT_AUTO_SYNC_THRESHOLD = 30.0  # seconds of audio
DEFAULT_SWEEP_INTERVAL = 300.0  # seconds
DEFAULT_SWEEP_CONCURRENCY = 4
PERMANENT_REJECTION_STATUSES = frozenset({400, 422})

# ---------- HTTP ----------
REQUEST_TIMEOUT = 30.0
DEFAULT_API_URL = "https://zmemory.zephyros.app"
INTERACTIONS_PATH = "/api/mindflow-stt-interactions"
VOCABULARY_PATH = "/rest/v1/vocabulary"

# ---------- Backend payload ----------
TRANSCRIPTION_APIS = ("OpenAI", "ElevenLabs")
OUTPUT_STYLES = ("conversational", "formal")

# ---------- Spaced repetition ----------
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 2.5
DEFAULT_EASE_FACTOR = 2.5
EASE_PENALTY = 0.2
EASE_BONUS = 0.1
SECOND_INTERVAL_DAYS = 6
MAX_INTERVAL_DAYS = 36500  # keeps next_review_at inside datetime range
MAX_MASTERY_LEVEL = 4
SECONDS_PER_REVIEWED_WORD = 18

# ---------- Stats ----------
STREAK_LOOKBACK_DAYS = 365
