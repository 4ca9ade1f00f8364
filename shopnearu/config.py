"""
Settings for the discovery engine.

Defaults come from const.py; SHOPNEARU_* environment variables (optionally
loaded from a .env file) override them, and keyword overrides win over both.
"""
from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

from .const import (
    API_BASE_URL,
    DEFAULT_LATITUDE,
    DEFAULT_LONGITUDE,
    DEFAULT_LIMIT,
    DEFAULT_RADIUS,
    GEOLOCATION_TIMEOUT,
    RADIUS_CHOICES,
    REQUEST_ATTEMPTS,
    REQUEST_TIMEOUT,
)

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "SHOPNEARU_"

# setting name → (type, default)
_SETTINGS: dict[str, tuple[type, object]] = {
    "api_base_url": (str, API_BASE_URL),
    "default_latitude": (float, DEFAULT_LATITUDE),
    "default_longitude": (float, DEFAULT_LONGITUDE),
    "radius_meters": (int, DEFAULT_RADIUS),
    "limit": (int, DEFAULT_LIMIT),
    "request_timeout": (int, REQUEST_TIMEOUT),
    "request_attempts": (int, REQUEST_ATTEMPTS),
    "geolocation_timeout": (float, GEOLOCATION_TIMEOUT),
}


def load_config(use_dotenv: bool = True, **overrides) -> dict:
    """
    Build the settings dict.

    Raises ValueError for unknown keys, values that cannot be converted, or a
    radius outside RADIUS_CHOICES.
    """
    if use_dotenv:
        load_dotenv()

    unknown = set(overrides) - set(_SETTINGS)
    if unknown:
        raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

    config: dict = {}
    for name, (kind, default) in _SETTINGS.items():
        raw = os.getenv(ENV_PREFIX + name.upper())
        value = overrides.get(name, raw if raw is not None else default)
        try:
            config[name] = kind(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid value for {name}: {value!r}") from exc

    if config["radius_meters"] not in RADIUS_CHOICES:
        raise ValueError(
            f"radius_meters must be one of {RADIUS_CHOICES}, got {config['radius_meters']}"
        )
    if config["limit"] <= 0:
        raise ValueError(f"limit must be positive, got {config['limit']}")

    config["api_base_url"] = config["api_base_url"].rstrip("/")
    _LOGGER.debug("Loaded config for %s", config["api_base_url"])
    return config
