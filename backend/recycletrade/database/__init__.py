"""
Database package: declarative base, connection management and ORM models.

Import submodules explicitly when needed to avoid circular dependencies.
"""

__all__ = []
