"""
Storage Package.

This package manages database connectivity.

Modules:
- database: Async engine and session management
- models/: Shared declarative base
"""

from .database import Database, DatabaseConfig

__all__ = ["Database", "DatabaseConfig"]
