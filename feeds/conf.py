"""Feed engine settings with defaults.

Projects override any key through the ``FEED_ENGINE`` dict in Django settings.
Values are looked up on every call so ``override_settings`` applies in tests.
"""

from datetime import timedelta
from typing import Any

from django.conf import settings

DEFAULTS = {
    "MAX_BLOCKS": 32,
    "MAX_BLOCK_VALUES": 100,
    "DEFAULT_PAGE_SIZE": 20,
    "MAX_PAGE_SIZE": 200,
    "MAX_TIME_WINDOW": timedelta(days=3650),
    "CURSOR_TTL": timedelta(hours=24),
    "CURSOR_SALT": "feeds.cursor",
    "EXECUTOR_MAX_ATTEMPTS": 3,
    "EXECUTOR_BACKOFF_SECONDS": 0.05,
}


def engine_setting(name: str) -> Any:
    """Return the configured value for ``name``, falling back to the default."""
    overrides = getattr(settings, "FEED_ENGINE", None) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
