"""Project data access: create with GitHub enrichment, read, update, delete, edit with authorization.

Every function is fail-soft: store or upstream errors are logged and turned
into ``None`` / ``[]`` / ``False`` rather than raised.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import urlparse

from app.adapters.project_store import ProjectStore
from app.models.project import OWNER_ROLE, Project, ProjectCreate, ProjectUpdate, UserProject
from app.services.github_client import GitHubClient
from app.services.project_authorization import LinkAuthorizer, ProjectAuthorizer

logger = logging.getLogger(__name__)


def parse_repo_slug(slug: Optional[str], github_url: Optional[str] = None) -> Optional[tuple[str, str]]:
    """``owner/repo`` from a slug, falling back to a github.com URL."""
    raw = (slug or "").strip()
    if not raw and github_url:
        parsed = urlparse(github_url.strip())
        if parsed.netloc.lower() not in {"github.com", "www.github.com"}:
            return None
        raw = parsed.path
    parts = raw.strip("/").split("/")
    if len(parts) < 2:
        return None
    owner, repo = parts[0].strip(), parts[1].strip()
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not owner or not repo:
        return None
    return owner, repo


def format_languages(breakdown: dict[str, Any]) -> str:
    return ", ".join(name.lower() for name in breakdown.keys())


def fetch_repo_metadata(client: GitHubClient, owner: str, repo: str) -> dict[str, Any]:
    """Fields copied from GitHub onto a new project."""
    info = client.get_repo(owner, repo)
    languages = client.get_repo_languages(owner, repo)
    owner_info = info.get("owner") or {}
    return {
        "issues_count": info.get("open_issues_count"),
        "stars_count": info.get("stargazers_count"),
        "icon_image": owner_info.get("avatar_url"),
        "description": info.get("description"),
        "languages": format_languages(languages),
    }


def create_project(
    store: ProjectStore,
    project: ProjectCreate,
    user_id: str,
    client: Optional[GitHubClient] = None,
) -> Optional[Project]:
    """Enrich from GitHub, then insert the project and the creator's owner link together."""
    if not user_id:
        logger.error("Cannot create project without a user id")
        return None
    slug = parse_repo_slug(project.github_full_slug, project.github_url)
    if slug is None:
        logger.error("Invalid GitHub repository slug: %r", project.github_full_slug)
        return None
    owner, repo = slug

    try:
        metadata = fetch_repo_metadata(client or GitHubClient(), owner, repo)
    except Exception:
        logger.error("Error fetching repository information for %s/%s", owner, repo, exc_info=True)
        return None

    payload = project.model_dump()
    payload["github_full_slug"] = project.github_full_slug or f"{owner}/{repo}"
    payload.update(metadata)
    try:
        created = store.create_project_with_link(Project(**payload), user_id, OWNER_ROLE)
    except Exception:
        logger.error("Error creating project %s/%s", owner, repo, exc_info=True)
        return None
    logger.info("Created project id=%s slug=%s/%s owner=%s", created.id, owner, repo, user_id)
    return created


def link_user_to_project(
    store: ProjectStore, user_id: str, project_id: int, role_number: int = OWNER_ROLE
) -> Optional[UserProject]:
    try:
        return store.insert_link(UserProject(user_id=user_id, project_id=project_id, role_number=role_number))
    except Exception:
        logger.error("Error linking user %s to project %s", user_id, project_id, exc_info=True)
        return None


def get_project_by_id(store: ProjectStore, project_id: int) -> Optional[Project]:
    try:
        return store.get_project(project_id)
    except Exception:
        logger.error("Error fetching project %s", project_id, exc_info=True)
        return None


def get_project_by_uuid(store: ProjectStore, project_uuid: str) -> Optional[Project]:
    try:
        return store.get_project_by_uuid(project_uuid)
    except Exception:
        logger.error("Error fetching project by UUID %s", project_uuid, exc_info=True)
        return None


def get_all_projects(store: ProjectStore) -> list[Project]:
    try:
        return store.list_projects()
    except Exception:
        logger.error("Error fetching projects", exc_info=True)
        return []


def search_projects(store: ProjectStore, query: str) -> list[Project]:
    try:
        return store.search(query)
    except Exception:
        logger.error("Error searching projects", exc_info=True)
        return []


def get_projects_by_group(store: ProjectStore, group: str) -> list[Project]:
    try:
        return store.list_projects_by_group(group)
    except Exception:
        logger.error("Error fetching projects by group %r", group, exc_info=True)
        return []


def get_projects_by_user_id(store: ProjectStore, user_id: str) -> list[Project]:
    try:
        return store.list_projects_for_user(user_id)
    except Exception:
        logger.error("Error fetching projects by user_id %s", user_id, exc_info=True)
        return []


def update_project(store: ProjectStore, project_id: int, updates: ProjectUpdate) -> Optional[Project]:
    """Unconditional partial update; callers are expected to have authorized already."""
    try:
        return store.update_project(project_id, updates.changes())
    except Exception:
        logger.error("Error updating project %s", project_id, exc_info=True)
        return None


def delete_project(store: ProjectStore, project_id: int) -> bool:
    try:
        return store.delete_project(project_id)
    except Exception:
        logger.error("Error deleting project %s", project_id, exc_info=True)
        return False


def check_user_right_to_edit_project(
    store: ProjectStore,
    user_id: str,
    project_id: int,
    authorizer: Optional[ProjectAuthorizer] = None,
) -> bool:
    return (authorizer or LinkAuthorizer(store)).authorize(user_id, project_id)


def edit_project(
    store: ProjectStore,
    user_id: str,
    project_id: int,
    updates: ProjectUpdate,
    authorizer: Optional[ProjectAuthorizer] = None,
) -> Optional[Project]:
    if not check_user_right_to_edit_project(store, user_id, project_id, authorizer):
        logger.warning("User %s does not have the right to edit project %s", user_id, project_id)
        return None
    return update_project(store, project_id, updates)
