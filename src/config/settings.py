"""Configuration settings for the indicator hub."""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw.strip() else default
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Application settings, read from the environment (and ``.env``)."""

    rpc_url: str = field(default_factory=lambda: os.getenv("RPC_URL", "").rstrip("/"))
    rpc_key: str = field(default_factory=lambda: os.getenv("RPC_ANON_KEY", ""))
    eia_api_key: str = field(default_factory=lambda: os.getenv("EIA_API_KEY", ""))

    # Seconds
    cache_ttl: float = field(default_factory=lambda: _env_float("CACHE_TTL", 3600.0))
    fetch_timeout: float = field(default_factory=lambda: _env_float("FETCH_TIMEOUT", 30.0))
    http_timeout: float = field(default_factory=lambda: _env_float("HTTP_TIMEOUT", 30.0))

    serve_stale_on_error: bool = field(
        default_factory=lambda: _env_bool("SERVE_STALE_ON_ERROR")
    )

    def __post_init__(self) -> None:
        if self.cache_ttl < 0:
            raise ValueError("CACHE_TTL must not be negative")
        if self.fetch_timeout <= 0:
            raise ValueError("FETCH_TIMEOUT must be positive")

    def validate_rpc(self) -> None:
        """Validate the settings the RPC backend needs."""
        if not self.rpc_url or not self.rpc_key:
            raise ValueError("RPC_URL and RPC_ANON_KEY must both be set")

    def has_eia(self) -> bool:
        """Check if an EIA API key is configured."""
        return bool(self.eia_api_key)
