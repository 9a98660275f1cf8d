"""
github_client.py

Responsibility: Isolate all direct GitHub REST API interaction.

This module must be the only place that:
- Constructs GitHub REST endpoints
- Sends HTTP requests to api.github.com
- Interprets GitHub API responses / error payloads

Publishing itself goes through git (see `publisher.py`); the API is only used
to report what the hosting branch currently holds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

logger = logging.getLogger("bookpress.github")


class GitHubError(RuntimeError):
    pass


class NotFound(GitHubError):
    pass


@dataclass(frozen=True)
class BranchInfo:
    name: str
    sha: str
    message: str
    html_url: str


def split_slug(repo_slug: str) -> tuple[str, str]:
    owner, sep, name = repo_slug.strip().partition("/")
    if not sep or not owner or not name or "/" in name:
        raise GitHubError(f"Repository slug must look like owner/name: {repo_slug!r}")
    return owner, name


class GitHubClient:
    def __init__(self, token: str | None = None, api_base: str = "https://api.github.com") -> None:
        self._token = (token or "").strip()
        self._api_base = api_base.rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "bookpress",
        }
        # Public repositories can be read anonymously.
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _request(self, method: str, path: str) -> Any:
        url = f"{self._api_base}{path}"
        logger.debug("%s %s", method, url)
        try:
            r = requests.request(method, url, headers=self._headers(), timeout=30)
        except requests.RequestException as e:
            raise GitHubError(f"GitHub API request failed {method} {path}: {e}") from e
        if r.status_code >= 400:
            try:
                payload = r.json()
            except ValueError:
                payload = {"message": r.text}
            message = payload.get("message", payload) if isinstance(payload, dict) else payload
            error = NotFound if r.status_code == 404 else GitHubError
            raise error(f"GitHub API error {r.status_code} {method} {path}: {message}")
        return r.json()

    def get_branch(self, owner: str, name: str, branch: str) -> BranchInfo | None:
        """
        Return the head commit of `branch`, or None if the repo or branch does not exist.
        """
        try:
            data = self._request("GET", f"/repos/{owner}/{name}/branches/{branch}")
        except NotFound:
            return None
        commit = data.get("commit") or {}
        return BranchInfo(
            name=data.get("name") or branch,
            sha=commit.get("sha") or "",
            message=((commit.get("commit") or {}).get("message") or "").strip(),
            html_url=commit.get("html_url") or "",
        )
