"""
Storage Models Package.

Shared declarative base for the trade journal database. Domain
tables live with their packages (broker_sync.models) and register
on this Base.
"""

from .base import Base, TimestampMixin, NAMING_CONVENTION

__all__ = ["Base", "TimestampMixin", "NAMING_CONVENTION"]
