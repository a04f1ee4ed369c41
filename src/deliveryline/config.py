"""Runtime settings and startup configuration validation.

Settings come from the environment (``.env`` is loaded by bot.py).
``validate_config`` runs before the server accepts calls so that a missing
key causes a clear startup failure rather than a silent mid-call crash.
"""

import os
import sys
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

REQUIRED_VARS = [
    "BASE_URL",
    "LIVE_AGENT_NUMBER",
]

OPTIONAL_VARS = [
    "OPENAI_API_KEY",
    "ELEVENLABS_API_KEY",
    "ELEVENLABS_VOICE_ID",
    "GOOGLE_MAPS_API_KEY",
    "DATABASE_URL",
    "LOG_LEVEL",
]

_TRUE = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %s", name, value, default)
        return default


@dataclass(frozen=True)
class Settings:
    base_url: str = "http://localhost:3000"
    live_agent_number: str = ""
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    elevenlabs_api_key: str = ""
    elevenlabs_voice_id: str = ""
    google_maps_api_key: str = ""
    database_url: str = "sqlite+aiosqlite:///./deliveryline.db"
    audio_dir: str = "./audio"
    intent_confidence_threshold: float = 0.7
    collaborator_timeout: float = 4.0
    session_ttl_seconds: float = 900.0
    say_fallback: bool = True
    strict_confirmation: bool = False
    log_level: str = "INFO"
    port: int = 3000

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            base_url=os.getenv("BASE_URL", defaults.base_url).rstrip("/"),
            live_agent_number=os.getenv("LIVE_AGENT_NUMBER", ""),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL", defaults.openai_model),
            elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY", ""),
            elevenlabs_voice_id=os.getenv("ELEVENLABS_VOICE_ID", ""),
            google_maps_api_key=os.getenv("GOOGLE_MAPS_API_KEY", ""),
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            audio_dir=os.getenv("AUDIO_DIR", defaults.audio_dir),
            intent_confidence_threshold=_env_float(
                "INTENT_CONFIDENCE_THRESHOLD", defaults.intent_confidence_threshold
            ),
            collaborator_timeout=_env_float(
                "COLLABORATOR_TIMEOUT_SECONDS", defaults.collaborator_timeout
            ),
            session_ttl_seconds=_env_float("SESSION_TTL_SECONDS", defaults.session_ttl_seconds),
            say_fallback=_env_bool("SAY_FALLBACK", defaults.say_fallback),
            strict_confirmation=_env_bool("STRICT_CONFIRMATION", defaults.strict_confirmation),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
            port=int(_env_float("PORT", defaults.port)),
        )


def validate_config() -> None:
    """Validate environment variables at startup.

    Exits the process with a clear error if any required variable is missing
    or empty.  Logs warnings for missing optional variables.
    """
    missing = [var for var in REQUIRED_VARS if not os.getenv(var)]

    if missing:
        print(
            f"\nFATAL: Missing required environment variables:\n"
            f"  {', '.join(missing)}\n"
            f"\nSet them in .env or in the process environment.\n",
            file=sys.stderr,
        )
        sys.exit(1)

    for var in OPTIONAL_VARS:
        if not os.getenv(var):
            logger.warning("Optional env var %s is not set", var)
