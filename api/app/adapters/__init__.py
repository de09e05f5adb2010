"""Adapters for the project record store: in-memory and SQL."""

from app.adapters.postgres_store import PostgresProjectStore
from app.adapters.project_store import InMemoryProjectStore, ProjectStore

__all__ = ["InMemoryProjectStore", "PostgresProjectStore", "ProjectStore"]
