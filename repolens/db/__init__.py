"""Relational persistence."""

from .database import build_engine, build_session_factory, get_session_factory, init_db

__all__ = ["build_engine", "build_session_factory", "get_session_factory", "init_db"]
