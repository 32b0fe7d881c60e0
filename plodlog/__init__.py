"""PlodLog: shift activity logging for field operators."""

from .app import create_app

__all__ = ["create_app"]
