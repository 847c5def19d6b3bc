"""ToledoIA configuration via environment / .env file."""

from .settings import Settings, settings

__all__ = [
    "Settings",
    "settings",
]
