"""Web interface for the production tracker."""

from .app import create_app

__all__ = ["create_app"]
