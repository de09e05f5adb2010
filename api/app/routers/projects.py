"""Project directory API routes.

- /api/projects                         -> filtered, paginated listing
- /api/projects/contributions/{kind}    -> same listing with the contribution facet fixed
- /api/projects/{id}                    -> read / edit / delete
- /api/users/{user_id}/projects         -> projects a user can edit

Callers identify themselves with ``X-User-Id``; it is taken on trust.
"""

from __future__ import annotations

import math
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response

from app.adapters.project_store import ProjectStore
from app.models.error import ErrorDetail
from app.models.project import DEFAULT_PAGE_SIZE, Project, ProjectCreate, ProjectFilter, ProjectPage, ProjectUpdate
from app.services import project_search_service, project_service
from app.services.github_client import GitHubClient
from app.services.project_authorization import LinkAuthorizer, ProjectAuthorizer

router = APIRouter()


def get_store(request: Request) -> ProjectStore:
    return request.app.state.project_store


def get_github_client(request: Request) -> GitHubClient:
    client = getattr(request.app.state, "github_client", None)
    if client is None:
        client = GitHubClient()
        request.app.state.github_client = client
    return client


def get_authorizer(request: Request, store: ProjectStore = Depends(get_store)) -> ProjectAuthorizer:
    return getattr(request.app.state, "project_authorizer", None) or LinkAuthorizer(store)


def _require_user(x_user_id: Optional[str]) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return user_id


def _parse_max_stars(raw: Optional[str]) -> Optional[float]:
    """Accepts a number or 'Infinity'/'inf'; unbounded comes back as None."""
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw.strip())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail="max_stars must be a number or Infinity") from exc
    if math.isnan(value):
        raise HTTPException(status_code=422, detail="max_stars must be a number or Infinity")
    return None if math.isinf(value) and value > 0 else value


def _listing(
    store: ProjectStore,
    group: str,
    contributions: str,
    q: str,
    page: int,
    page_size: int,
    min_stars: Optional[float],
    max_stars: Optional[str],
    language: Optional[str],
    seed: Optional[str],
) -> ProjectPage:
    return project_search_service.search(
        store,
        ProjectFilter(
            group=group,
            contributions=contributions,
            query=q,
            page=page,
            page_size=page_size,
            min_stars=min_stars,
            max_stars=_parse_max_stars(max_stars),
            language=language,
            seed=seed,
        ),
    )


@router.get("/projects", response_model=ProjectPage)
def list_projects(
    group: str = Query("", description="Substring match on groups."),
    contributions: str = Query("", description="Substring match on contribution types."),
    q: str = Query("", description="Substring match on name or description."),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    min_stars: Optional[float] = Query(None, ge=0),
    max_stars: Optional[str] = Query(None, description="Upper star bound; 'Infinity' or omitted for none."),
    language: Optional[str] = None,
    seed: Optional[str] = Query(None, description="Reproducible random ordering key."),
    store: ProjectStore = Depends(get_store),
) -> ProjectPage:
    return _listing(store, group, contributions, q, page, page_size, min_stars, max_stars, language, seed)


@router.get("/projects/contributions/{contribution}", response_model=ProjectPage)
def list_projects_for_contribution(
    contribution: str,
    group: str = "",
    q: str = "",
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    min_stars: Optional[float] = Query(None, ge=0),
    max_stars: Optional[str] = None,
    language: Optional[str] = None,
    seed: Optional[str] = None,
    store: ProjectStore = Depends(get_store),
) -> ProjectPage:
    """Listing behind pages such as 'projects looking for code reviews' (contribution=reviews)."""
    return _listing(store, group, contribution, q, page, page_size, min_stars, max_stars, language, seed)


@router.get("/projects/search", response_model=list[Project])
def search_projects(
    q: str = Query(..., min_length=1, description="Substring match on name or description."),
    store: ProjectStore = Depends(get_store),
) -> list[Project]:
    return project_service.search_projects(store, q)


@router.get("/projects/all", response_model=list[Project])
def get_all_projects(store: ProjectStore = Depends(get_store)) -> list[Project]:
    return project_service.get_all_projects(store)


@router.get("/projects/groups/{group}", response_model=list[Project])
def get_projects_by_group(group: str, store: ProjectStore = Depends(get_store)) -> list[Project]:
    return project_service.get_projects_by_group(store, group)


@router.get(
    "/projects/uuid/{project_uuid}",
    response_model=Project,
    responses={404: {"model": ErrorDetail}},
)
def get_project_by_uuid(project_uuid: str, store: ProjectStore = Depends(get_store)) -> Project:
    project = project_service.get_project_by_uuid(store, project_uuid)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.get(
    "/projects/{project_id}",
    response_model=Project,
    responses={404: {"model": ErrorDetail}},
)
def get_project(project_id: int, store: ProjectStore = Depends(get_store)) -> Project:
    project = project_service.get_project_by_id(store, project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.post(
    "/projects",
    response_model=Project,
    status_code=201,
    responses={401: {"model": ErrorDetail}, 422: {"model": ErrorDetail}, 502: {"model": ErrorDetail}},
)
def create_project(
    body: ProjectCreate,
    x_user_id: Optional[str] = Header(None),
    store: ProjectStore = Depends(get_store),
    client: GitHubClient = Depends(get_github_client),
) -> Project:
    """Create a project enriched from GitHub; the caller becomes its owner."""
    user_id = _require_user(x_user_id)
    if project_service.parse_repo_slug(body.github_full_slug, body.github_url) is None:
        raise HTTPException(status_code=422, detail="Invalid GitHub repository slug")
    created = project_service.create_project(store, body, user_id, client=client)
    if created is None:
        raise HTTPException(status_code=502, detail="Project could not be created")
    return created


@router.patch(
    "/projects/{project_id}",
    response_model=Project,
    responses={401: {"model": ErrorDetail}, 403: {"model": ErrorDetail}, 404: {"model": ErrorDetail}},
)
def edit_project(
    project_id: int,
    updates: ProjectUpdate,
    x_user_id: Optional[str] = Header(None),
    store: ProjectStore = Depends(get_store),
    authorizer: ProjectAuthorizer = Depends(get_authorizer),
) -> Project:
    user_id = _require_user(x_user_id)
    if project_service.get_project_by_id(store, project_id) is None:
        raise HTTPException(status_code=404, detail="Project not found")
    if not authorizer.authorize(user_id, project_id):
        raise HTTPException(status_code=403, detail="Not allowed to edit this project")
    updated = project_service.edit_project(store, user_id, project_id, updates, authorizer=authorizer)
    if updated is None:
        raise HTTPException(status_code=500, detail="Project could not be updated")
    return updated


@router.delete(
    "/projects/{project_id}",
    status_code=204,
    responses={401: {"model": ErrorDetail}, 403: {"model": ErrorDetail}, 404: {"model": ErrorDetail}},
)
def delete_project(
    project_id: int,
    x_user_id: Optional[str] = Header(None),
    store: ProjectStore = Depends(get_store),
    authorizer: ProjectAuthorizer = Depends(get_authorizer),
) -> Response:
    user_id = _require_user(x_user_id)
    if project_service.get_project_by_id(store, project_id) is None:
        raise HTTPException(status_code=404, detail="Project not found")
    if not authorizer.authorize(user_id, project_id):
        raise HTTPException(status_code=403, detail="Not allowed to delete this project")
    if not project_service.delete_project(store, project_id):
        raise HTTPException(status_code=500, detail="Project could not be deleted")
    return Response(status_code=204)


@router.get("/users/{user_id}/projects", response_model=list[Project])
def get_projects_by_user(user_id: str, store: ProjectStore = Depends(get_store)) -> list[Project]:
    return project_service.get_projects_by_user_id(store, user_id)
