"""Infra layer utilities (resume persistence)."""

from .storage import ResumeStore, SQLiteManager, SQLiteResumeStore

__all__ = ["ResumeStore", "SQLiteManager", "SQLiteResumeStore"]
