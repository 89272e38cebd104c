"""
Configuration loader for the background-removal comparison service.

Environment variables are centralized here to keep the rest of the code
focused on business logic and to make operational tuning clear.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# llava-13b, used for the image analysis prompt
LLAVA_13B_VERSION = "2facb4a474a0462c15041b78b1ad70952ea46b5ec6ad29583c0b29dbd4249591"

MIN_TOLERANCE = 0
MAX_TOLERANCE = 200


class Settings(BaseSettings):
    # Replicate
    replicate_api_key: Optional[str] = None
    replicate_base_url: str = "https://api.replicate.com/v1"
    request_timeout_seconds: int = 30

    # Polling. None disables the corresponding ceiling.
    poll_interval_seconds: float = 1.0
    poll_max_attempts: Optional[int] = None
    poll_timeout_seconds: Optional[float] = 600.0

    # Manual removal
    default_tolerance: int = 30

    # Image analysis
    vision_model_version: str = LLAVA_13B_VERSION
    analysis_max_tokens: int = 500

    # Local persistence
    data_dir: Path = Path("./data")

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_tolerance")
    @classmethod
    def tolerance_in_range(cls, v: int) -> int:
        if not MIN_TOLERANCE <= v <= MAX_TOLERANCE:
            raise ValueError(f"DEFAULT_TOLERANCE must be between {MIN_TOLERANCE} and {MAX_TOLERANCE}")
        return v

    @field_validator("poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError("POLL_INTERVAL_SECONDS must not be negative")
        return v

    @field_validator("replicate_api_key")
    @classmethod
    def empty_key_is_unset(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @property
    def records_path(self) -> Path:
        return self.data_dir / "records.json"


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()


def validate_tolerance(tolerance: int) -> int:
    """Reject tolerances outside the slider range used by the manual remover."""
    if isinstance(tolerance, bool) or not isinstance(tolerance, int):
        raise ValueError("tolerance must be an integer")
    if not MIN_TOLERANCE <= tolerance <= MAX_TOLERANCE:
        raise ValueError(f"tolerance must be between {MIN_TOLERANCE} and {MAX_TOLERANCE}")
    return tolerance
