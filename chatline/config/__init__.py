"""Configuration loading for chatline.

Usage:
    from chatline.config import get_settings

    settings = get_settings()
    endpoint = settings.directline.endpoint
    mode = settings.session.mode
"""

from functools import lru_cache

from chatline.config.loader import load_config
from chatline.config.settings import Settings, set_toml_config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load the TOML files and environment once per process.

    Call `get_settings.cache_clear()` or `reload_settings()` to pick up
    changes.
    """
    set_toml_config(load_config())
    return Settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()


__all__ = ["get_settings", "reload_settings", "Settings"]
