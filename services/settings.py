"""
Runtime settings for the order core.

Values come from environment variables (a `.env` file in the project root is
loaded first). Carrier credentials and the sender address are *not* here:
they live in the `ninjavan_config` table and are read per request.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

from domain.errors import ConfigurationError
from domain.order import Platform

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


@dataclass(frozen=True, slots=True)
class Settings:
    carrier_base_url: str = "https://api.ninjavan.co"
    carrier_country: str = "my"
    carrier_connect_timeout: float = 10.0
    carrier_read_timeout: float = 15.0
    carrier_retry_wait: float = 1.0
    merchant_reference_prefix: str = "BISNESOWNER"

    messaging_base_url: str = "https://api.whacenter.com/api"
    messaging_timeout: float = 10.0

    sale_id_prefix: str = "DF"
    sale_id_max_attempts: int = 5

    default_platform: Platform = Platform.FACEBOOK
    country_code: str = "60"

    log_level: str = "INFO"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _env_platform(name: str, default: Platform) -> Platform:
    raw = os.getenv(name)
    if not raw:
        return default
    for platform in Platform:
        if platform.value.lower() == raw.strip().lower():
            return platform
    raise ConfigurationError(
        f"{name} must be one of {', '.join(p.value for p in Platform)}, got {raw!r}"
    )


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Build settings from the environment. Cached for the process lifetime."""

    defaults = Settings()
    return Settings(
        carrier_base_url=os.getenv("NINJAVAN_BASE_URL", defaults.carrier_base_url).rstrip("/"),
        carrier_country=os.getenv("NINJAVAN_COUNTRY", defaults.carrier_country).lower(),
        carrier_connect_timeout=_env_float("NINJAVAN_CONNECT_TIMEOUT", defaults.carrier_connect_timeout),
        carrier_read_timeout=_env_float("NINJAVAN_READ_TIMEOUT", defaults.carrier_read_timeout),
        carrier_retry_wait=_env_float("NINJAVAN_RETRY_WAIT", defaults.carrier_retry_wait),
        merchant_reference_prefix=os.getenv("MERCHANT_REFERENCE_PREFIX", defaults.merchant_reference_prefix),
        messaging_base_url=os.getenv("WHACENTER_API_URL", defaults.messaging_base_url).rstrip("/"),
        messaging_timeout=_env_float("WHACENTER_TIMEOUT", defaults.messaging_timeout),
        sale_id_prefix=os.getenv("SALE_ID_PREFIX", defaults.sale_id_prefix),
        sale_id_max_attempts=_env_int("SALE_ID_MAX_ATTEMPTS", defaults.sale_id_max_attempts),
        default_platform=_env_platform("DEFAULT_PLATFORM", defaults.default_platform),
        country_code=os.getenv("COUNTRY_CODE", defaults.country_code),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
    )


__all__ = ["Settings", "load_settings"]
