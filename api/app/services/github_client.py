"""GitHub API client used to enrich new projects.

REST wrapper with:
- optional token auth (GITHUB_TOKEN)
- rate-limit handling (sleep until reset when exhausted)
- basic ETag conditional requests + bounded in-memory LRU response cache
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections import OrderedDict
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class GitHubAPIError(RuntimeError):
    """Raised for any GitHub response with status >= 400."""

    def __init__(self, status_code: int, url: str, body: str = "") -> None:
        super().__init__(f"GitHub API error {status_code} for {url}: {body[:200]}")
        self.status_code = status_code
        self.url = url


class GitHubClient:
    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = "https://api.github.com",
        user_agent: str = "project-directory/1.0",
        timeout: float = 20.0,
        cache_size: int = 256,
    ) -> None:
        env_token = os.getenv("GITHUB_TOKEN")
        if not env_token:
            env_token = os.getenv("GH_TOKEN")
        if env_token:
            env_token = env_token.strip() or None
        self._token = token or env_token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": user_agent,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            self._headers["Authorization"] = f"Bearer {self._token}"

        # url -> (etag, json), least recently used first
        self._cache: OrderedDict[str, tuple[str, Any]] = OrderedDict()
        self._cache_size = max(0, cache_size)
        self._cache_lock = threading.Lock()

    def _cached(self, url: str) -> Optional[tuple[str, Any]]:
        with self._cache_lock:
            entry = self._cache.get(url)
            if entry is not None:
                self._cache.move_to_end(url)
            return entry

    def _remember(self, url: str, etag: str, data: Any) -> None:
        if self._cache_size == 0:
            return
        with self._cache_lock:
            self._cache[url] = (etag, data)
            self._cache.move_to_end(url)
            while len(self._cache) > self._cache_size:
                self._cache.popitem(last=False)

    def _sleep_for_rate_limit_if_needed(self, r: httpx.Response) -> None:
        remaining = r.headers.get("X-RateLimit-Remaining")
        reset = r.headers.get("X-RateLimit-Reset")
        try:
            rem_i = int(remaining) if remaining is not None else None
            reset_i = int(reset) if reset is not None else None
        except ValueError:
            rem_i, reset_i = None, None

        if rem_i == 0 and reset_i:
            delay = max(0, reset_i - int(time.time())) + 1
            logger.warning("GitHub rate limit exhausted; sleeping %ss", delay)
            time.sleep(delay)

    def _request(self, method: str, url: str, headers: dict[str, str] | None = None) -> httpx.Response:
        h = dict(self._headers)
        if headers:
            h.update(headers)
        with httpx.Client(timeout=self._timeout, headers=h) as client:
            r = client.request(method, url)

        # A 403 with an exhausted limit is retried once after the reset.
        if r.status_code == 403 and r.headers.get("X-RateLimit-Remaining") == "0":
            self._sleep_for_rate_limit_if_needed(r)
            with httpx.Client(timeout=self._timeout, headers=h) as client:
                r = client.request(method, url)
        return r

    def get_json(self, path: str) -> Any:
        """GET JSON for a path or full URL. Uses ETag conditional requests when possible."""
        url = path if path.startswith("http") else f"{self._base_url}{path}"

        extra_headers: dict[str, str] = {}
        cached = self._cached(url)
        if cached:
            extra_headers["If-None-Match"] = cached[0]

        r = self._request("GET", url, headers=extra_headers)

        if r.status_code == 304:
            if cached:
                return cached[1]
            r = self._request("GET", url, headers={})

        if r.status_code >= 400:
            raise GitHubAPIError(r.status_code, url, r.text)

        data = r.json()
        new_etag = r.headers.get("ETag")
        if new_etag:
            self._remember(url, new_etag, data)
        return data

    def get_repo(self, owner: str, repo: str) -> dict:
        """Repository info: open_issues_count, stargazers_count, description, owner.avatar_url."""
        return self.get_json(f"/repos/{owner}/{repo}")

    def get_repo_languages(self, owner: str, repo: str) -> dict[str, int]:
        """Language name -> bytes of code."""
        data = self.get_json(f"/repos/{owner}/{repo}/languages")
        if not isinstance(data, dict):
            return {}
        return data
