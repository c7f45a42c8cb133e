"""FastAPI application exposing story analysis and reading sessions."""

from .app import SessionManager, create_app

__all__ = ["SessionManager", "create_app"]
