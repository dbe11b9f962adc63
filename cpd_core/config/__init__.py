from .settings import (
    Settings,
    load_settings,
    REQUIRED_ANNUAL_HOURS,
    MAX_ENTRY_DURATION_HOURS,
)

__all__ = [
    "Settings",
    "load_settings",
    "REQUIRED_ANNUAL_HOURS",
    "MAX_ENTRY_DURATION_HOURS",
]
