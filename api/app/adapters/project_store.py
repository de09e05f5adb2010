"""ProjectStore abstraction + in-memory backend.

The store owns filtering, ordering, counting and pagination for the
multi-criteria listing (``filter_projects``); callers only normalize inputs
and unwrap the row envelope. Matching and ordering helpers live here so the
in-memory and SQL backends agree on results.
"""

from __future__ import annotations

import hashlib
import json
import os
import threading
from typing import Any, Iterable, Optional, Protocol
from uuid import uuid4

from app.models.project import FilterProjectsRow, Project, UserProject, utcnow


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _contains(haystack: Optional[str], needle: Optional[str]) -> bool:
    n = _norm(needle)
    if not n:
        return True
    return n in (haystack or "").lower()


def project_matches(
    project: Project,
    group: Optional[str] = None,
    contributions: Optional[str] = None,
    query: Optional[str] = None,
    min_stars: Optional[float] = None,
    max_stars: Optional[float] = None,
    language: Optional[str] = None,
) -> bool:
    """(group) AND (contributions) AND (name OR description) AND (stars in range) AND (language)."""
    if not _contains(project.groups, group):
        return False
    if not _contains(project.contributions, contributions):
        return False
    if _norm(query) and not (_contains(project.name, query) or _contains(project.description, query)):
        return False
    stars = project.stars_count or 0
    if min_stars is not None and stars < min_stars:
        return False
    if max_stars is not None and stars > max_stars:
        return False
    return _contains(project.languages, language)


def seeded_sort_key(seed: str, project: Project) -> str:
    ident = project.project_uuid or str(project.id)
    return hashlib.sha256(f"{seed}:{ident}".encode("utf-8")).hexdigest()


def order_projects(projects: Iterable[Project], seed: Optional[str] = None) -> list[Project]:
    """Newest first, or a reproducible shuffle keyed by ``seed``."""
    rows = list(projects)
    if seed:
        rows.sort(key=lambda p: seeded_sort_key(seed, p))
    else:
        rows.sort(key=lambda p: (p.created_at, p.id or 0), reverse=True)
    return rows


def page_bounds(page: int, page_size: int) -> tuple[int, int]:
    """Half-open slice [start, end) for a 1-based page."""
    start = (page - 1) * page_size
    return start, start + page_size


def build_filter_rows(matched: list[Project], total: int) -> list[FilterProjectsRow]:
    return [
        FilterProjectsRow(project_data=p.model_dump(mode="json"), total_count=total)
        for p in matched
    ]


class ProjectStore(Protocol):
    """Protocol for the project Record Store. Implementations: InMemoryProjectStore, PostgresProjectStore."""

    def get_project(self, project_id: int) -> Optional[Project]:
        ...

    def get_project_by_uuid(self, project_uuid: str) -> Optional[Project]:
        ...

    def list_projects(self) -> list[Project]:
        """All projects, newest first."""
        ...

    def search(self, query: str) -> list[Project]:
        """Name or description substring match, newest first."""
        ...

    def list_projects_by_group(self, group: str) -> list[Project]:
        ...

    def list_projects_for_user(self, user_id: str) -> list[Project]:
        ...

    def insert_project(self, project: Project) -> Project:
        ...

    def update_project(self, project_id: int, changes: dict[str, Any]) -> Optional[Project]:
        ...

    def delete_project(self, project_id: int) -> bool:
        ...

    def count_projects(self) -> int:
        ...

    def insert_link(self, link: UserProject) -> UserProject:
        ...

    def get_link(self, user_id: str, project_id: int) -> Optional[UserProject]:
        ...

    def create_project_with_link(self, project: Project, user_id: str, role_number: int) -> Project:
        """Insert project and creator link atomically: both rows or neither."""
        ...

    def filter_projects(
        self,
        group: str,
        contributions: str,
        query: str,
        page: int,
        page_size: int,
        min_stars: Optional[float] = None,
        max_stars: Optional[float] = None,
        language: Optional[str] = None,
        seed: Optional[str] = None,
    ) -> list[FilterProjectsRow]:
        """Filter, count, order and paginate in one call. Each row repeats the total count."""
        ...


class InMemoryProjectStore:
    """In-memory ProjectStore. Optional JSON persistence for restart."""

    def __init__(self, persist_path: Optional[str] = None) -> None:
        self._projects: dict[int, Project] = {}
        self._links: dict[int, UserProject] = {}
        self._next_project_id = 1
        self._next_link_id = 1
        self._lock = threading.Lock()
        self._persist_path = persist_path

        if persist_path and os.path.isfile(persist_path):
            self._load()

    def _load(self) -> None:
        if not self._persist_path:
            return
        try:
            with open(self._persist_path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError):
            return
        for p in data.get("projects", []):
            proj = Project(**p)
            if proj.id is not None:
                self._projects[proj.id] = proj
        for raw in data.get("links", []):
            link = UserProject(**raw)
            if link.id is not None:
                self._links[link.id] = link
        self._next_project_id = max(int(data.get("next_project_id", 1)), max(self._projects, default=0) + 1)
        self._next_link_id = max(int(data.get("next_link_id", 1)), max(self._links, default=0) + 1)

    def save(self) -> None:
        """Persist to JSON if path set."""
        if not self._persist_path:
            return
        os.makedirs(os.path.dirname(self._persist_path) or ".", exist_ok=True)
        with self._lock:
            data = {
                "projects": [p.model_dump(mode="json") for p in self._projects.values()],
                "links": [link.model_dump(mode="json") for link in self._links.values()],
                "next_project_id": self._next_project_id,
                "next_link_id": self._next_link_id,
            }
        with open(self._persist_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=0)

    def _copy(self, project: Project) -> Project:
        return project.model_copy(deep=True)

    def get_project(self, project_id: int) -> Optional[Project]:
        with self._lock:
            proj = self._projects.get(project_id)
            return self._copy(proj) if proj else None

    def get_project_by_uuid(self, project_uuid: str) -> Optional[Project]:
        with self._lock:
            for proj in self._projects.values():
                if proj.project_uuid == project_uuid:
                    return self._copy(proj)
        return None

    def list_projects(self) -> list[Project]:
        with self._lock:
            return [self._copy(p) for p in order_projects(self._projects.values())]

    def search(self, query: str) -> list[Project]:
        with self._lock:
            return [
                self._copy(p)
                for p in order_projects(self._projects.values())
                if project_matches(p, query=query)
            ]

    def list_projects_by_group(self, group: str) -> list[Project]:
        with self._lock:
            return [
                self._copy(p)
                for p in order_projects(self._projects.values())
                if project_matches(p, group=group)
            ]

    def list_projects_for_user(self, user_id: str) -> list[Project]:
        with self._lock:
            linked = {link.project_id for link in self._links.values() if link.user_id == user_id}
            return [self._copy(p) for p in order_projects(self._projects.values()) if p.id in linked]

    def _insert_project_locked(self, project: Project) -> Project:
        stored = project.model_copy(
            update={
                "id": self._next_project_id,
                "project_uuid": project.project_uuid or str(uuid4()),
                "created_at": utcnow(),
            },
            deep=True,
        )
        self._next_project_id += 1
        self._projects[stored.id] = stored
        return stored

    def _insert_link_locked(self, link: UserProject) -> UserProject:
        if link.project_id not in self._projects:
            raise ValueError(f"project {link.project_id} does not exist")
        stored = link.model_copy(update={"id": self._next_link_id, "created_at": utcnow()})
        self._next_link_id += 1
        self._links[stored.id] = stored
        return stored

    def insert_project(self, project: Project) -> Project:
        with self._lock:
            return self._copy(self._insert_project_locked(project))

    def insert_link(self, link: UserProject) -> UserProject:
        with self._lock:
            return self._insert_link_locked(link)

    def create_project_with_link(self, project: Project, user_id: str, role_number: int) -> Project:
        with self._lock:
            stored = self._insert_project_locked(project)
            try:
                self._insert_link_locked(
                    UserProject(user_id=user_id, project_id=stored.id, role_number=role_number)
                )
            except Exception:
                # Roll back the project row; ids are not reused.
                del self._projects[stored.id]
                raise
            return self._copy(stored)

    def update_project(self, project_id: int, changes: dict[str, Any]) -> Optional[Project]:
        with self._lock:
            current = self._projects.get(project_id)
            if current is None:
                return None
            safe = {k: v for k, v in changes.items() if k not in {"id", "project_uuid", "created_at"}}
            updated = current.model_copy(update=safe, deep=True)
            self._projects[project_id] = updated
            return self._copy(updated)

    def delete_project(self, project_id: int) -> bool:
        with self._lock:
            if self._projects.pop(project_id, None) is None:
                return False
            for link_id in [k for k, v in self._links.items() if v.project_id == project_id]:
                del self._links[link_id]
            return True

    def count_projects(self) -> int:
        with self._lock:
            return len(self._projects)

    def get_link(self, user_id: str, project_id: int) -> Optional[UserProject]:
        with self._lock:
            for link in self._links.values():
                if link.user_id == user_id and link.project_id == project_id:
                    return link.model_copy()
        return None

    def filter_projects(
        self,
        group: str,
        contributions: str,
        query: str,
        page: int,
        page_size: int,
        min_stars: Optional[float] = None,
        max_stars: Optional[float] = None,
        language: Optional[str] = None,
        seed: Optional[str] = None,
    ) -> list[FilterProjectsRow]:
        with self._lock:
            matched = [
                p
                for p in self._projects.values()
                if project_matches(p, group, contributions, query, min_stars, max_stars, language)
            ]
            ordered = order_projects(matched, seed)
            start, end = page_bounds(page, page_size)
            return build_filter_rows(ordered[start:end], len(ordered))
