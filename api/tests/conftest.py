"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Tests inject their own stores; never open the deployment database at import.
os.environ.pop("DATABASE_URL", None)

from app.adapters.postgres_store import PostgresProjectStore  # noqa: E402
from app.adapters.project_store import InMemoryProjectStore  # noqa: E402
from app.models.project import Project  # noqa: E402


class FakeGitHubClient:
    """Stands in for GitHubClient in service tests; records calls."""

    def __init__(
        self,
        repo: dict[str, Any] | None = None,
        languages: dict[str, int] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.repo = repo if repo is not None else {
            "open_issues_count": 12,
            "stargazers_count": 340,
            "description": "A tidy CLI for code review checklists",
            "owner": {"avatar_url": "https://avatars.example/u/1"},
        }
        self.languages = languages if languages is not None else {"Python": 1200, "TypeScript": 300}
        self.error = error
        self.calls: list[tuple[str, str, str]] = []

    def get_repo(self, owner: str, repo: str) -> dict:
        self.calls.append(("repo", owner, repo))
        if self.error:
            raise self.error
        return self.repo

    def get_repo_languages(self, owner: str, repo: str) -> dict[str, int]:
        self.calls.append(("languages", owner, repo))
        if self.error:
            raise self.error
        return self.languages


def make_project(name: str, **kwargs: Any) -> Project:
    kwargs.setdefault("description", f"{name} description")
    kwargs.setdefault("groups", "beginner")
    kwargs.setdefault("contributions", "reviews")
    kwargs.setdefault("languages", "python")
    kwargs.setdefault("stars_count", 10)
    return Project(name=name, **kwargs)


@pytest.fixture
def memory_store() -> InMemoryProjectStore:
    return InMemoryProjectStore(persist_path=None)


@pytest.fixture
def sql_store(tmp_path: Path) -> PostgresProjectStore:
    store = PostgresProjectStore(f"sqlite+pysqlite:///{tmp_path / 'projects_test.db'}")
    yield store
    store.engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request: pytest.FixtureRequest):
    """Runs a test against both ProjectStore backends."""
    if request.param == "memory":
        return request.getfixturevalue("memory_store")
    return request.getfixturevalue("sql_store")


@pytest.fixture(autouse=True)
def _reset_app_state(monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep app-level overrides from leaking between API tests.
    from app.main import app

    for attr in ("github_client", "project_authorizer"):
        if hasattr(app.state, attr):
            delattr(app.state, attr)
    for key in ("GITHUB_TOKEN", "GH_TOKEN", "PROJECT_SEARCH_MAX_PAGE_SIZE"):
        monkeypatch.delenv(key, raising=False)
