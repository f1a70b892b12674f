"""Configuration module for the enrollment engine."""

from .settings import EnrollmentSettings, get_settings, reload_settings

__all__ = [
    "EnrollmentSettings",
    "get_settings",
    "reload_settings",
]
