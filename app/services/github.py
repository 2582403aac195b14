"""GitHub content fetcher: recursive tree listing with branch fallback, and decoded file bodies."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import posixpath
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from app.schemas.scan import FileTreeEntry, RepositoryReference, RepositoryTree

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

# Only these extensions are fetched; everything else is excluded before any request.
TEXT_FILE_EXTENSIONS = frozenset(
    {
        ".js", ".ts", ".jsx", ".tsx", ".json", ".yml", ".yaml", ".env", ".txt",
        ".md", ".html", ".css", ".scss", ".php", ".py", ".rb", ".java", ".go",
        ".sh", ".cfg", ".ini", ".toml", ".xml", ".properties",
    }
)


class GitHubError(Exception):
    """Base class for GitHub fetch failures."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class GitHubNotFoundError(GitHubError):
    """Repository, branch, or path does not exist (or is private to this credential)."""


class GitHubUnauthorizedError(GitHubError):
    """Credential missing or rejected."""


class GitHubRateLimitedError(GitHubError):
    """Upstream signalled throttling."""


class GitHubFetchError(GitHubError):
    """Transport error or unexpected upstream response."""


def resolve_credential(user_token: str | None, settings: Settings) -> str:
    """
    Pick the credential for upstream calls: caller token first, then the service token.

    Raises GitHubUnauthorizedError when neither is usable.
    """
    if user_token and user_token.strip():
        return user_token.strip()
    if settings.GITHUB_SERVICE_TOKEN is not None:
        service_token = settings.GITHUB_SERVICE_TOKEN.get_secret_value().strip()
        if service_token:
            return service_token
    raise GitHubUnauthorizedError("No usable GitHub credential (caller token or service token).")


def is_eligible(entry: FileTreeEntry, max_bytes: int) -> bool:
    """True if the entry is a file with an allow-listed extension and within the size bound."""
    if entry.kind != "file":
        return False
    if entry.size > max_bytes:
        return False
    basename = posixpath.basename(entry.path).lower()
    # Dotfiles such as ".env" have no extension in splitext terms.
    if basename.startswith(".") and basename.count(".") == 1:
        ext = basename
    else:
        ext = posixpath.splitext(basename)[1]
    return ext in TEXT_FILE_EXTENSIONS


def decode_content(payload: dict[str, Any]) -> str | None:
    """
    Decode a contents API payload to text.

    Returns None when there is no inline content or the bytes are binary / not UTF-8.
    """
    content = payload.get("content")
    if not isinstance(content, str) or not content:
        return None
    encoding = payload.get("encoding", "base64")
    if encoding != "base64":
        return None
    try:
        raw = base64.b64decode(content.replace("\n", ""), validate=False)
    except (binascii.Error, ValueError):
        return None
    if b"\x00" in raw:
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return None


def _raise_for_status(resp: httpx.Response, what: str) -> None:
    """Map upstream status codes to fetcher errors."""
    status = resp.status_code
    if status < 400:
        return
    # Primary limit: remaining quota 0. Secondary limit: 403 with Retry-After.
    throttled = resp.headers.get("x-ratelimit-remaining") == "0" or "retry-after" in resp.headers
    if status == 429 or (status == 403 and throttled):
        raise GitHubRateLimitedError(f"GitHub rate limit reached while fetching {what}.", status)
    if status in (401, 403):
        raise GitHubUnauthorizedError(f"GitHub rejected the credential for {what}.", status)
    if status in (404, 422):
        raise GitHubNotFoundError(f"GitHub resource not found: {what}.", status)
    raise GitHubFetchError(f"GitHub returned {status} for {what}.", status)


class GitHubContentFetcher:
    """
    Reads repository trees and file bodies from the GitHub REST API.

    The httpx client is shared across scans; credentials are sent per request so
    concurrent scans never share mutable auth state.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=settings.GITHUB_API_URL,
            timeout=httpx.Timeout(settings.GITHUB_REQUEST_TIMEOUT_SEC),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, credential: str) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "User-Agent": self._settings.GITHUB_USER_AGENT,
            "Authorization": f"Bearer {credential}",
        }

    async def _get(self, url: str, credential: str, what: str, params: dict | None = None) -> httpx.Response:
        try:
            return await self._client.get(url, headers=self._headers(credential), params=params)
        except httpx.TimeoutException as e:
            raise GitHubFetchError(f"GitHub request timed out for {what}.") from e
        except httpx.HTTPError as e:
            raise GitHubFetchError(f"GitHub request failed for {what}: {e!s}") from e

    async def _list_branch(self, ref: RepositoryReference, branch: str, credential: str) -> RepositoryTree:
        url = f"/repos/{ref.owner}/{ref.name}/git/trees/{quote(branch, safe='')}"
        what = f"{ref.full_name}@{branch}"
        resp = await self._get(url, credential, what, params={"recursive": "1"})
        if resp.status_code == 409:
            # "Git Repository is empty"
            logger.info("Repository is empty", extra={"repo": ref.full_name, "branch": branch})
            return RepositoryTree(branch=branch, entries=[])
        _raise_for_status(resp, what)
        try:
            body = resp.json()
        except json.JSONDecodeError as e:
            raise GitHubFetchError(f"GitHub tree response is not valid JSON for {what}.") from e
        tree = body.get("tree") if isinstance(body, dict) else None
        if not isinstance(tree, list):
            raise GitHubFetchError(f"GitHub tree response has no tree data for {what}.")
        entries = [
            FileTreeEntry(
                path=item["path"],
                kind="file" if item.get("type") == "blob" else "other",
                size=int(item.get("size") or 0),
            )
            for item in tree
            if isinstance(item, dict) and item.get("path")
        ]
        truncated = bool(body.get("truncated"))
        if truncated:
            logger.warning(
                "GitHub tree listing truncated; scanning listed entries only",
                extra={"repo": ref.full_name, "branch": branch, "entry_count": len(entries)},
            )
        return RepositoryTree(branch=branch, entries=entries, truncated=truncated)

    async def list_tree(self, ref: RepositoryReference, credential: str) -> RepositoryTree:
        """
        List the repository tree recursively on the primary branch, falling back to the
        secondary branch when the primary is not found.

        Raises GitHubNotFoundError only after both branches failed.
        """
        primary = self._settings.GITHUB_PRIMARY_BRANCH
        fallback = self._settings.GITHUB_FALLBACK_BRANCH
        try:
            return await self._list_branch(ref, primary, credential)
        except GitHubNotFoundError:
            if fallback == primary:
                raise
            logger.info(
                "Primary branch not found, trying fallback branch",
                extra={"repo": ref.full_name, "primary": primary, "fallback": fallback},
            )
        return await self._list_branch(ref, fallback, credential)

    async def get_file_text(
        self,
        ref: RepositoryReference,
        path: str,
        credential: str,
        branch: str | None = None,
    ) -> str | None:
        """
        Fetch one file through the contents API and decode it to text.

        Returns None for undecodable or non-inline content. Raises GitHubNotFoundError
        for missing paths and GitHubFetchError (or auth / rate-limit errors) otherwise.
        """
        url = f"/repos/{ref.owner}/{ref.name}/contents/{quote(path)}"
        params = {"ref": branch} if branch else None
        resp = await self._get(url, credential, f"{ref.full_name}:{path}", params=params)
        _raise_for_status(resp, f"{ref.full_name}:{path}")
        try:
            payload = resp.json()
        except json.JSONDecodeError as e:
            raise GitHubFetchError(f"GitHub contents response is not valid JSON for {path}.") from e
        if not isinstance(payload, dict):
            # A directory listing comes back as an array.
            return None
        return decode_content(payload)
