"""
Configuration layer - validated policy documents for resilience components.
"""

from faultline.config.loader import CONFIG_ENV_VAR, load_settings, parse_settings
from faultline.config.settings import (
    CircuitBreakerSettings,
    PolicySettings,
    RateLimiterSettings,
    ResilienceSettings,
    RetrySettings,
)

__all__ = [
    "CONFIG_ENV_VAR",
    "CircuitBreakerSettings",
    "PolicySettings",
    "RateLimiterSettings",
    "ResilienceSettings",
    "RetrySettings",
    "load_settings",
    "parse_settings",
]
