"""
Voice Pipeline configuration.

Built once at process start and passed explicitly into the pipeline, so tests
can substitute fake keys and endpoints.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_DEEPGRAM_URL = (
    "https://api.deepgram.com/v1/listen"
    "?smart_format=true&detect_language=true&model=whisper-medium"
)
DEFAULT_TOGETHERAI_URL = "https://api.together.xyz/v1/chat/completions"
DEFAULT_NEETS_URL = "https://api.neets.ai/v1/tts"


def _strip_env(key: str) -> Optional[str]:
    """Read an env var, dropping trailing "# comment" text and whitespace."""
    value = os.environ.get(key)
    if not value:
        return None
    if "#" in value:
        value = value.split("#")[0]
    return value.strip() or None


def _parse_int_env(key: str, default: int) -> int:
    """
    Parse integer environment variable, stripping comments and whitespace.

    Handles cases like:
    - "10  # pool size" -> 10
    - "10" -> 10
    - None -> default
    """
    value = _strip_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float_env(key: str, default: Optional[float]) -> Optional[float]:
    value = _strip_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _parse_bool_env(key: str, default: bool) -> bool:
    value = _strip_env(key)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def load_env_files(root: Optional[Path] = None) -> None:
    """
    Load .env_local / .env.local for local development.

    Never overrides variables already exported by the shell or the platform.
    """
    root = root or Path(__file__).parent.parent
    for name in (".env_local", ".env.local"):
        p = root / name
        if p.exists():
            load_dotenv(p, override=False)


@dataclass(frozen=True)
class VoiceConfig:
    """Voice pipeline configuration."""

    # Deepgram (STT)
    deepgram_api_key: str

    # Together AI (chat completion)
    togetherai_api_key: str

    # Neets (TTS)
    neets_api_key: str

    deepgram_url: str = DEFAULT_DEEPGRAM_URL
    togetherai_url: str = DEFAULT_TOGETHERAI_URL
    neets_url: str = DEFAULT_NEETS_URL

    llm_model: str = "meta-llama/Meta-Llama-3-70B-Instruct-Lite"
    tts_voice: str = "us-male-2"
    tts_model: str = "style-diff-500"

    # Persona file under voice_pipeline/personas/
    persona: str = "default"

    # Upstream HTTP tuning; no overall deadline unless UPSTREAM_TOTAL_TIMEOUT is set
    connect_timeout_seconds: float = 10.0
    total_timeout_seconds: Optional[float] = None
    connection_pool_size: int = 10

    # Reject (True) or drop (False) history entries with an unknown role
    history_strict: bool = True

    @classmethod
    def from_env(cls) -> "VoiceConfig":
        """
        Load configuration from environment variables.

        Raises KeyError when one of the three provider keys is missing.
        """
        load_env_files()
        return cls(
            deepgram_api_key=os.environ["DEEPGRAM_API_KEY"],
            togetherai_api_key=os.environ["TOGETHERAI_API_KEY"],
            neets_api_key=os.environ["NEETS_API_KEY"],
            deepgram_url=os.environ.get("DEEPGRAM_URL", DEFAULT_DEEPGRAM_URL),
            togetherai_url=os.environ.get("TOGETHERAI_URL", DEFAULT_TOGETHERAI_URL),
            neets_url=os.environ.get("NEETS_URL", DEFAULT_NEETS_URL),
            llm_model=os.environ.get("LLM_MODEL", "meta-llama/Meta-Llama-3-70B-Instruct-Lite"),
            tts_voice=os.environ.get("TTS_VOICE", "us-male-2"),
            tts_model=os.environ.get("TTS_MODEL", "style-diff-500"),
            persona=os.environ.get("PERSONA", "default"),
            connect_timeout_seconds=_parse_float_env("UPSTREAM_CONNECT_TIMEOUT", default=10.0),
            total_timeout_seconds=_parse_float_env("UPSTREAM_TOTAL_TIMEOUT", default=None),
            connection_pool_size=_parse_int_env("CONNECTION_POOL_SIZE", default=10),
            history_strict=_parse_bool_env("HISTORY_STRICT", default=True),
        )

    def __post_init__(self):
        for name in ("deepgram_api_key", "togetherai_api_key", "neets_api_key"):
            if not getattr(self, name):
                raise ValueError(f"{name} must not be empty")
