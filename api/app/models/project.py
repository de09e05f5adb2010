"""Project directory models: projects, user links, filter criteria and result pages."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

OWNER_ROLE = 5
DEFAULT_PAGE_SIZE = 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectCreate(BaseModel):
    """Caller-supplied fields for POST /api/projects. Enriched fields come from GitHub."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    github_url: Optional[str] = None
    github_full_slug: Optional[str] = None
    groups: Optional[str] = None
    contributions: Optional[str] = None
    paid_bounties: Optional[bool] = None
    communities: Optional[Any] = None


class ProjectUpdate(BaseModel):
    """Partial update. Identifiers and creation time are not editable."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    description: Optional[str] = None
    thumbnail_image: Optional[str] = None
    icon_image: Optional[str] = None
    github_url: Optional[str] = None
    github_full_slug: Optional[str] = None
    groups: Optional[str] = None
    contributions: Optional[str] = None
    languages: Optional[str] = None
    paid_bounties: Optional[bool] = None
    issues_count: Optional[Any] = None
    stars_count: Optional[int] = None
    communities: Optional[Any] = None

    def changes(self) -> dict[str, Any]:
        """Only the fields the caller actually sent."""
        return self.model_dump(exclude_unset=True)


class Project(BaseModel):
    """A stored project row."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    thumbnail_image: Optional[str] = None
    icon_image: Optional[str] = None
    github_url: Optional[str] = None
    github_full_slug: Optional[str] = None
    groups: Optional[str] = None
    contributions: Optional[str] = None
    languages: Optional[str] = None
    paid_bounties: Optional[bool] = None
    issues_count: Optional[Any] = None  # jsonb, shape owned by GitHub
    stars_count: Optional[int] = None
    communities: Optional[Any] = None
    project_uuid: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class UserProject(BaseModel):
    """Link granting a user edit rights over one project."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: str
    project_id: int
    role_number: int = OWNER_ROLE
    created_at: datetime = Field(default_factory=utcnow)


class ProjectFilter(BaseModel):
    """Criteria for the multi-filter listing. Empty strings match everything."""

    group: str = ""
    contributions: str = ""
    query: str = ""
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    min_stars: Optional[float] = None
    max_stars: Optional[float] = None  # None or +inf: unbounded
    language: Optional[str] = None
    seed: Optional[str] = None


class FilterProjectsRow(BaseModel):
    """One row returned by the store's filter_projects procedure."""

    project_data: dict[str, Any]
    total_count: int


class ProjectPage(BaseModel):
    """GET /api/projects response."""

    projects: list[Project] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    degraded: bool = Field(
        default=False,
        description="True when the store failed and the empty page is a fallback",
    )
