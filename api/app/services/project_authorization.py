"""Edit authorization for projects.

A user may mutate a project only when a user-project link exists. The check
is expressed as ``ProjectAuthorizer.authorize`` so another backend can be
substituted without touching the edit path.
"""

from __future__ import annotations

import logging
from typing import Protocol

from app.adapters.project_store import ProjectStore

logger = logging.getLogger(__name__)


class ProjectAuthorizer(Protocol):
    def authorize(self, user_id: str, project_id: int) -> bool:
        ...


class LinkAuthorizer:
    """Grants edit rights when the store holds a link for (user_id, project_id)."""

    def __init__(self, store: ProjectStore) -> None:
        self._store = store

    def authorize(self, user_id: str, project_id: int) -> bool:
        if not user_id:
            return False
        try:
            return self._store.get_link(user_id, project_id) is not None
        except Exception:
            logger.error("Error checking user right to edit project %s", project_id, exc_info=True)
            return False
