"""
CI Persistence module.

This module contains database implementation for project storage.
Currently supports SQLite, but can be extended to PostgreSQL, MySQL, etc.

The persistence layer depends on ci_common for domain models and interfaces,
and is used by both ci_server and ci_admin.
"""

from .sqlite_repository import SQLiteProjectRepository

__all__ = ["SQLiteProjectRepository"]
