"""
Engine configuration.

Defaults can be overridden through CLOAKID_* environment variables or by
passing values to EngineConfig directly.
"""
import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_KEY_SIZE = 2048
DEFAULT_MAX_ALLOWED_COUNTRIES = 32  # bounds the encrypted OR fold
DEFAULT_ADMIN = "0x0000000000000000000000000000000000000a11"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class EngineConfig:
    """Runtime settings for the engine, its substrate and the HTTP service."""
    administrator: str = DEFAULT_ADMIN
    engine_address: Optional[str] = None
    key_size: int = DEFAULT_KEY_SIZE
    max_allowed_countries: int = DEFAULT_MAX_ALLOWED_COUNTRIES
    log_level: str = "INFO"
    json_logs: bool = True

    def __post_init__(self):
        if self.max_allowed_countries < 1:
            raise ValueError("max_allowed_countries must be positive")
        if self.key_size < 512:
            raise ValueError("key_size must be at least 512 bits")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from CLOAKID_* environment variables."""
        return cls(
            administrator=os.getenv("CLOAKID_ADMIN", DEFAULT_ADMIN),
            engine_address=os.getenv("CLOAKID_ENGINE_ADDRESS") or None,
            key_size=int(os.getenv("CLOAKID_KEY_SIZE", str(DEFAULT_KEY_SIZE))),
            max_allowed_countries=int(
                os.getenv("CLOAKID_MAX_ALLOWED_COUNTRIES", str(DEFAULT_MAX_ALLOWED_COUNTRIES))
            ),
            log_level=os.getenv("CLOAKID_LOG_LEVEL", "INFO"),
            json_logs=_env_bool("CLOAKID_JSON_LOGS", True),
        )
