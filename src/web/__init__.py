"""HTTP surface for the enrollment engine."""

from .app import create_app

__all__ = ["create_app"]
