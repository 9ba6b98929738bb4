"""
Harness configuration.

Defines environment-specific configuration classes for the load
harness.  Each class captures operational settings (scheduler tick,
request timeout, collector memory bound, log level) and the default
target URL used by the bundled scenarios.  The ``get_config`` factory
selects the right class based on the ``LOADCHECK_ENV`` environment
variable (or an explicit key).

Key Concepts Demonstrated:
- Class-based configuration with inheritance for DRY defaults
- Environment-variable overrides for 12-factor deployability
- A testing profile with a fast tick so runs finish in milliseconds
"""

from __future__ import annotations

import os


def _optional_int(raw: str | None) -> int | None:
    """Parse an optional positive integer setting; blank means unset."""
    if raw is None or not raw.strip():
        return None
    return int(raw)


class Config:
    """
    Base (shared) configuration.

    All environment-specific classes inherit from ``Config`` so that
    common defaults only need to be stated once.
    """

    # Seconds between scheduler polls.  The pool is resized at most this
    # often, so it also bounds how far the live VU count lags the curve.
    TICK_INTERVAL: float = float(os.environ.get("LOADCHECK_TICK_INTERVAL", "1.0"))

    # Per-request timeout of the HTTP primitive, in seconds.
    REQUEST_TIMEOUT: float = float(os.environ.get("LOADCHECK_REQUEST_TIMEOUT", "60"))

    # Reservoir size per metric; unset keeps every sample (exact quantiles).
    MAX_SAMPLES_PER_METRIC: int | None = _optional_int(
        os.environ.get("LOADCHECK_MAX_SAMPLES_PER_METRIC")
    )

    LOG_LEVEL: str = os.environ.get("LOADCHECK_LOG_LEVEL", "INFO")

    # Target service for the bundled scenarios.
    BASE_URL: str = os.environ.get("BASE_URL", "http://localhost:3000")


class DevelopmentConfig(Config):
    """Local runs against a service on the developer's machine."""

    LOG_LEVEL: str = os.environ.get("LOADCHECK_LOG_LEVEL", "DEBUG")


class TestingConfig(Config):
    """
    Test-suite overrides.

    A 10 ms tick lets sub-second stages resize the pool many times per
    stage, and a short request timeout keeps failure-path tests fast.
    """

    TICK_INTERVAL: float = float(os.environ.get("TEST_LOADCHECK_TICK_INTERVAL", "0.01"))
    REQUEST_TIMEOUT: float = float(os.environ.get("TEST_LOADCHECK_REQUEST_TIMEOUT", "2"))
    LOG_LEVEL: str = "WARNING"


class ProductionConfig(Config):
    """
    CI and long soak runs.

    Bounds collector memory by default; everything else comes from the
    environment.
    """

    MAX_SAMPLES_PER_METRIC: int | None = _optional_int(
        os.environ.get("LOADCHECK_MAX_SAMPLES_PER_METRIC", "100000")
    )


# Lookup table mapping environment name strings to their config classes.
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Return the configuration class for the given environment.

    Args:
        env: One of ``"development"``, ``"testing"``, or
            ``"production"``.  When *None*, the ``LOADCHECK_ENV``
            environment variable is consulted, falling back to
            ``"development"`` if unset.

    Returns:
        The ``Config`` subclass matching the requested environment,
        or ``DevelopmentConfig`` if the key is unrecognised.
    """
    if env is None:
        env = os.environ.get("LOADCHECK_ENV", "development")
    return config.get(env, config["default"])
