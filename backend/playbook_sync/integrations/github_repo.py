"""GitHub document repository integration.

Reads the playbook corpus (Markdown/MDX files under ``docs_root``) and the
sidebar index from a GitHub repository, and writes a set of file changes
back as a single commit through the Git Data API:

    ref → base commit → new tree (inline blob contents) → commit → move ref

Nothing is visible on the branch until the final ref update, so a change
set either lands completely or not at all.
"""

from __future__ import annotations

import base64
import logging
import time

import requests

from playbook_sync.config import settings
from playbook_sync.models.playbook import DocumentFile, FileChange

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_RETRY_BACKOFF = [2, 4, 8]  # seconds
DOCUMENT_EXTENSIONS = (".md", ".mdx")


class GithubRepositoryError(Exception):
    """Raised when a GitHub API call fails."""


class GithubDocumentRepository:
    """Client for the playbook document repository.

    Usage:
        repo = GithubDocumentRepository(repo="acme/playbook", token="...")
        files = repo.list_document_files()
        sha = repo.commit_files([FileChange(path, content)], "message")
    """

    def __init__(
        self,
        repo: str | None = None,
        token: str | None = None,
        branch: str | None = None,
        docs_root: str | None = None,
        sidebars_path: str | None = None,
        base_url: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.repo = repo or settings.github_repo
        self.token = token if token is not None else settings.github_token
        self.branch = branch or settings.github_branch
        self.docs_root = (docs_root or settings.docs_root).strip("/")
        self.sidebars_path = sidebars_path or settings.sidebars_path
        self.base_url = (base_url or settings.github_api_url).rstrip("/")
        self.session = session or requests.Session()

    # --- HTTP helpers ---

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> dict:
        """Call the GitHub API, retrying on rate limits and 5xx responses."""
        if not self.repo:
            raise GithubRepositoryError("GITHUB_REPO is not configured")

        url = f"{self.base_url}/repos/{self.repo}/{path.lstrip('/')}"
        for attempt in range(_MAX_RETRIES):
            try:
                resp = self.session.request(
                    method,
                    url,
                    headers=self._headers(),
                    timeout=settings.github_timeout_seconds,
                    **kwargs,
                )
            except requests.exceptions.RequestException as e:
                if attempt < _MAX_RETRIES - 1:
                    logger.warning("GitHub %s %s failed (%s), retrying", method, path, e)
                    time.sleep(_RETRY_BACKOFF[attempt])
                    continue
                raise GithubRepositoryError(f"GitHub {method} {path} failed: {e}") from e

            retryable = resp.status_code in (403, 429) or resp.status_code >= 500
            if retryable and attempt < _MAX_RETRIES - 1:
                wait = _RETRY_BACKOFF[attempt]
                logger.warning("GitHub %s %s returned %d (attempt %d), retrying in %ds", method, path, resp.status_code, attempt + 1, wait)
                time.sleep(wait)
                continue
            if resp.status_code >= 400:
                raise GithubRepositoryError(
                    f"GitHub {method} {path} returned {resp.status_code}: {resp.text[:200]}"
                )
            return resp.json()

        raise GithubRepositoryError(f"GitHub {method} {path} failed after {_MAX_RETRIES} attempts")

    # --- Reads ---

    def _branch_head(self) -> tuple[str, str]:
        """Return (commit sha, tree sha) at the tip of the branch."""
        ref = self._request("GET", f"git/ref/heads/{self.branch}")
        commit_sha = ref["object"]["sha"]
        commit = self._request("GET", f"git/commits/{commit_sha}")
        return commit_sha, commit["tree"]["sha"]

    def _read_blob(self, sha: str) -> str:
        blob = self._request("GET", f"git/blobs/{sha}")
        if blob.get("encoding") == "base64":
            return base64.b64decode(blob.get("content", "")).decode("utf-8")
        return blob.get("content", "")

    def fetch_file(self, path: str) -> str:
        """Read a single file's text at the branch head."""
        data = self._request("GET", f"contents/{path}", params={"ref": self.branch})
        if data.get("encoding") == "base64":
            return base64.b64decode(data.get("content", "")).decode("utf-8")
        return data.get("content", "")

    def list_document_files(self) -> list[DocumentFile]:
        """All Markdown/MDX documents under ``docs_root``, sorted by path."""
        _, tree_sha = self._branch_head()
        tree = self._request("GET", f"git/trees/{tree_sha}", params={"recursive": "1"})
        if tree.get("truncated"):
            logger.warning("GitHub tree listing was truncated; some documents may be missing")

        prefix = f"{self.docs_root}/" if self.docs_root else ""
        files: list[DocumentFile] = []
        for item in tree.get("tree", []):
            path = item.get("path", "")
            if item.get("type") != "blob" or not path.startswith(prefix):
                continue
            if not path.endswith(DOCUMENT_EXTENSIONS):
                continue
            files.append(DocumentFile(path=path, content=self._read_blob(item["sha"])))

        files.sort(key=lambda f: f.path)
        logger.info("Fetched %d document files from %s@%s", len(files), self.repo, self.branch)
        return files

    def fetch_sidebars(self) -> DocumentFile:
        """The sidebar index file."""
        return DocumentFile(path=self.sidebars_path, content=self.fetch_file(self.sidebars_path))

    # --- Writes ---

    def commit_files(self, changes: list[FileChange], message: str) -> str:
        """Commit all changes as one commit on the branch. Returns the commit sha."""
        if not changes:
            raise GithubRepositoryError("Refusing to create an empty commit")

        parent_sha, base_tree = self._branch_head()
        tree = self._request(
            "POST",
            "git/trees",
            json={
                "base_tree": base_tree,
                "tree": [
                    {"path": c.path, "mode": "100644", "type": "blob", "content": c.content}
                    for c in changes
                ],
            },
        )
        commit = self._request(
            "POST",
            "git/commits",
            json={"message": message, "tree": tree["sha"], "parents": [parent_sha]},
        )
        self._request(
            "PATCH",
            f"git/refs/heads/{self.branch}",
            json={"sha": commit["sha"], "force": False},
        )
        logger.info("Committed %d files to %s@%s (%s)", len(changes), self.repo, self.branch, commit["sha"][:7])
        return commit["sha"]
