"""Multi-criteria project search.

Normalizes the caller's criteria, hands them to the store's ``filter_projects``
procedure (which filters, orders, counts and paginates in one round trip) and
unwraps the row envelope into a ``ProjectPage``.

A store failure never propagates: the caller gets an empty page with
``total_count=0`` and ``degraded=True``.
"""

from __future__ import annotations

import logging
import math
import os
from typing import Any, Iterable, Optional

from app.adapters.project_store import ProjectStore
from app.models.project import DEFAULT_PAGE_SIZE, FilterProjectsRow, Project, ProjectFilter, ProjectPage

logger = logging.getLogger(__name__)

# Largest row offset SQL backends accept as a signed 64-bit OFFSET.
MAX_ROW_OFFSET = 2**62


def _max_page_size() -> int:
    raw = os.getenv("PROJECT_SEARCH_MAX_PAGE_SIZE", "100").strip()
    try:
        return max(1, int(raw))
    except ValueError:
        return 100


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _bound(value: Optional[float], lower: bool) -> Optional[float]:
    if value is None or math.isnan(value):
        return None
    if math.isinf(value):
        # -inf lower or +inf upper means no bound on that side.
        if (lower and value < 0) or (not lower and value > 0):
            return None
        return value
    if lower:
        return max(0.0, value)
    return value


def normalize_filter(criteria: ProjectFilter) -> ProjectFilter:
    page = criteria.page if criteria.page and criteria.page >= 1 else 1
    page_size = criteria.page_size if criteria.page_size and criteria.page_size >= 1 else DEFAULT_PAGE_SIZE
    page_size = min(page_size, _max_page_size())
    page = min(page, MAX_ROW_OFFSET // page_size + 1)
    return ProjectFilter(
        group=_clean(criteria.group),
        contributions=_clean(criteria.contributions),
        query=_clean(criteria.query),
        page=page,
        page_size=page_size,
        min_stars=_bound(criteria.min_stars, lower=True),
        max_stars=_bound(criteria.max_stars, lower=False),
        language=_clean(criteria.language) or None,
        seed=_clean(criteria.seed) or None,
    )


def _call_filter_procedure(store: ProjectStore, f: ProjectFilter, page: int, page_size: int) -> list[Any]:
    return store.filter_projects(
        group=f.group,
        contributions=f.contributions,
        query=f.query,
        page=page,
        page_size=page_size,
        min_stars=f.min_stars,
        max_stars=f.max_stars,
        language=f.language,
        seed=f.seed,
    )


def unwrap_rows(rows: Iterable[Any]) -> tuple[list[Project], int]:
    """Rows carry ``project_data`` and a replicated ``total_count``; the first row's count wins."""
    parsed = [r if isinstance(r, FilterProjectsRow) else FilterProjectsRow.model_validate(r) for r in rows or []]
    projects = [Project.model_validate(r.project_data) for r in parsed]
    total = parsed[0].total_count if parsed else 0
    return projects, int(total or 0)


def search(store: ProjectStore, criteria: ProjectFilter) -> ProjectPage:
    f = normalize_filter(criteria)
    try:
        projects, total = unwrap_rows(_call_filter_procedure(store, f, f.page, f.page_size))
        if not projects and f.page > 1:
            # Past the last page: no rows means no count, so re-query page 1.
            _, total = unwrap_rows(_call_filter_procedure(store, f, 1, 1))
    except Exception:
        logger.error("Error fetching projects by multiple filters", exc_info=True)
        return ProjectPage(projects=[], total_count=0, page=f.page, page_size=f.page_size, degraded=True)
    return ProjectPage(projects=projects, total_count=total, page=f.page, page_size=f.page_size)


def search_projects_by_filters(
    store: ProjectStore,
    group: str = "",
    contributions: str = "",
    query: str = "",
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    min_stars: Optional[float] = None,
    max_stars: Optional[float] = None,
    language: Optional[str] = None,
    seed: Optional[str] = None,
) -> ProjectPage:
    return search(
        store,
        ProjectFilter(
            group=group or "",
            contributions=contributions or "",
            query=query or "",
            page=page,
            page_size=page_size,
            min_stars=min_stars,
            max_stars=max_stars,
            language=language,
            seed=seed,
        ),
    )
