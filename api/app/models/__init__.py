"""Pydantic models."""

from app.models.error import ErrorDetail
from app.models.project import (
    FilterProjectsRow,
    Project,
    ProjectCreate,
    ProjectFilter,
    ProjectPage,
    ProjectUpdate,
    UserProject,
)

__all__ = [
    "ErrorDetail",
    "FilterProjectsRow",
    "Project",
    "ProjectCreate",
    "ProjectFilter",
    "ProjectPage",
    "ProjectUpdate",
    "UserProject",
]
