"""Public interface for kyc configuration settings."""

from .config import DEFAULT_UPSTREAM_URL, ENV_VAR_NAME, PROJECT_ROOT, Settings, get_settings, reload_settings

__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
    "PROJECT_ROOT",
    "ENV_VAR_NAME",
    "DEFAULT_UPSTREAM_URL",
]
