"""Storage module for database operations."""

from cinerec.storage.db import (
    Base,
    close_engine,
    create_engine,
    create_session_factory,
    create_tables,
)
from cinerec.storage.json_utils import safe_json_dumps, safe_json_loads
from cinerec.storage.models import Recommendation
from cinerec.storage.pagination import PaginationOptions, SortOptions
from cinerec.storage.repo_recs import RecsRepo

__all__ = [
    # Database
    "Base",
    "create_engine",
    "create_session_factory",
    "create_tables",
    "close_engine",
    # JSON utilities
    "safe_json_dumps",
    "safe_json_loads",
    # Models
    "Recommendation",
    # Repositories
    "RecsRepo",
    "PaginationOptions",
    "SortOptions",
]
