"""GitHub REST collaborator.

Thin synchronous client over the GitHub REST API used for repository
document storage and for reading the issue / pull request / check run
signals the resolver consumes. Every failure the caller cannot act on
(network error, timeout, auth, rate limit, server error) is raised as
CollaboratorUnavailableError; nothing here retries.
"""
import base64
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .config import Settings
from .errors import CollaboratorUnavailableError
from .signals import CheckRunSignal, IssueSignal, PullRequestSignal

logger = logging.getLogger("agentflow-core.github")

DEFAULT_API_URL = "https://api.github.com"
PAGE_SIZE = 100


@dataclass(frozen=True)
class RepoFile:
    """A file read from a repository."""

    path: str
    content: str
    sha: str


@dataclass(frozen=True)
class RepoEntry:
    """One entry of a repository directory listing."""

    name: str
    path: str
    type: str  # "file" | "dir"
    sha: Optional[str] = None


class GitHubClient:
    """GitHub REST API client.

    The caller owns the instance; use it as a context manager or call
    ``close()`` when done. An ``httpx.Client`` may be injected (tests pass
    one built on ``httpx.MockTransport``).
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        if http_client is None:
            http_client = httpx.Client(base_url=base_url, timeout=timeout, headers=headers)
        else:
            http_client.headers.update(headers)
        self._client = http_client

    @classmethod
    def from_settings(cls, settings: Settings) -> "GitHubClient":
        return cls(
            token=settings.github_token,
            base_url=settings.github_api_url,
            timeout=settings.github_timeout,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        allow_not_found: bool = False,
        **kwargs,
    ) -> Optional[httpx.Response]:
        """Send a request; None for a tolerated 404, raise on anything unusable."""
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"GitHub request timed out: {method} {path}")
            raise CollaboratorUnavailableError(f"GitHub request timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            logger.error(f"GitHub request failed: {method} {path}: {e}")
            raise CollaboratorUnavailableError(f"GitHub request failed: {e}") from e

        if response.status_code == 404 and allow_not_found:
            return None

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = _error_message(response)
            logger.error(f"GitHub API error {response.status_code} on {method} {path}: {detail}")
            raise CollaboratorUnavailableError(
                f"GitHub API error {response.status_code}: {detail}",
                status_code=response.status_code,
            ) from e

        return response

    # ------------------------------------------------------------------
    # Repository contents
    # ------------------------------------------------------------------

    def read_file(self, owner: str, repo: str, path: str, ref: Optional[str] = None) -> Optional[RepoFile]:
        """
        Read a file from a repository.

        Returns:
            RepoFile with decoded content, or None if the file does not exist
        """
        params = {"ref": ref} if ref else None
        response = self._request(
            "GET", f"/repos/{owner}/{repo}/contents/{path}", allow_not_found=True, params=params
        )
        if response is None:
            return None

        data = response.json()
        if isinstance(data, list) or data.get("type") != "file":
            raise CollaboratorUnavailableError(f"{path} is not a file in {owner}/{repo}")

        content = base64.b64decode(data.get("content") or "").decode("utf-8")
        return RepoFile(path=data.get("path", path), content=content, sha=data["sha"])

    def write_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        expected_sha: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> str:
        """
        Create or update a file.

        Args:
            expected_sha: Blob sha being replaced (required by GitHub for updates)

        Returns:
            The sha of the new blob
        """
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if expected_sha:
            body["sha"] = expected_sha
        if branch:
            body["branch"] = branch

        response = self._request("PUT", f"/repos/{owner}/{repo}/contents/{path}", json=body)
        sha = response.json()["content"]["sha"]
        logger.info(f"Wrote {owner}/{repo}/{path} (sha {sha[:7]})")
        return sha

    def list_directory(self, owner: str, repo: str, path: str) -> list[RepoEntry]:
        """List a directory; empty if it does not exist."""
        response = self._request(
            "GET", f"/repos/{owner}/{repo}/contents/{path}", allow_not_found=True
        )
        if response is None:
            return []

        data = response.json()
        if not isinstance(data, list):
            return []
        return [
            RepoEntry(name=item["name"], path=item["path"], type=item["type"], sha=item.get("sha"))
            for item in data
        ]

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def list_issues(self, owner: str, repo: str) -> list[IssueSignal]:
        """List issues in any state (pull requests excluded)."""
        response = self._request(
            "GET",
            f"/repos/{owner}/{repo}/issues",
            params={"state": "all", "per_page": PAGE_SIZE},
        )
        return [
            IssueSignal(
                title=item.get("title") or "",
                state=item.get("state") or "open",
                labels=tuple(label.get("name", "") for label in item.get("labels") or []),
                url=item.get("html_url"),
                number=item.get("number"),
            )
            for item in response.json()
            if "pull_request" not in item
        ]

    def list_pull_requests(self, owner: str, repo: str) -> list[PullRequestSignal]:
        """List pull requests in any state."""
        response = self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls",
            params={"state": "all", "per_page": PAGE_SIZE},
        )
        return [
            PullRequestSignal(
                title=item.get("title") or "",
                state=item.get("state") or "open",
                merged=bool(item.get("merged_at")),
                draft=bool(item.get("draft")),
                head_sha=(item.get("head") or {}).get("sha"),
                url=item.get("html_url"),
                number=item.get("number"),
            )
            for item in response.json()
        ]

    def get_check_runs(self, owner: str, repo: str, sha: str) -> list[CheckRunSignal]:
        """Check runs reported for a commit."""
        response = self._request(
            "GET",
            f"/repos/{owner}/{repo}/commits/{sha}/check-runs",
            params={"per_page": PAGE_SIZE},
        )
        return [
            CheckRunSignal(
                status=run.get("status") or "queued",
                conclusion=run.get("conclusion"),
                name=run.get("name"),
            )
            for run in response.json().get("check_runs", [])
        ]


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict) and data.get("message"):
        return data["message"]
    return response.reason_phrase
