"""Scan engine: evaluates a repository's text files against the detector catalogs.

CorpusScanner is the capability the job orchestrator depends on. PatternScanEngine
is the in-process default; TruffleHogScanner (app.services.trufflehog) is the
external-process variant with the same output contract.
"""

from __future__ import annotations

import abc
import asyncio
import json
import logging
import time
from collections.abc import Iterable
from typing import TYPE_CHECKING

from app.schemas.scan import (
    DependencyAdvisory,
    Finding,
    RepositoryReference,
    ScanResult,
)
from app.services import detectors
from app.services.github import (
    GitHubContentFetcher,
    GitHubError,
    GitHubNotFoundError,
    GitHubRateLimitedError,
    GitHubUnauthorizedError,
    is_eligible,
    resolve_credential,
)

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

# Conventional dependency manifest, fetched from the repository root.
MANIFEST_PATH = "package.json"


class ScanError(Exception):
    """Raised when a scan cannot produce a result. code is stable and stored on the job."""

    code = "upstream_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RepositoryNotFoundError(ScanError):
    """Repository or branch absent. Private repositories collapse into this outcome too."""

    code = "repository_not_accessible"


class RepositoryInaccessibleError(ScanError):
    """Credential missing or rejected by upstream."""

    code = "upstream_auth_failed"


class UpstreamError(ScanError):
    """Rate limiting, transport failure, or scanner backend failure."""

    code = "upstream_error"


NOT_ACCESSIBLE_MESSAGE = "Repository not found or not accessible."


def to_scan_error(exc: GitHubError) -> ScanError:
    """Map a fetcher error from the tree listing to the engine's error kinds."""
    if isinstance(exc, GitHubNotFoundError):
        return RepositoryNotFoundError(NOT_ACCESSIBLE_MESSAGE)
    if isinstance(exc, GitHubUnauthorizedError):
        return RepositoryInaccessibleError(
            "GitHub rejected the credential. Re-authenticate and try again."
        )
    if isinstance(exc, GitHubRateLimitedError):
        return UpstreamError("GitHub rate limit reached. Try again later.")
    return UpstreamError(exc.message)


def manifest_advisories(manifest_text: str | None) -> list[DependencyAdvisory]:
    """
    Advisories triggered by a dependency manifest.

    Any manifest that parses as a JSON object includes every advisory in the table;
    declared versions are not compared.
    """
    if manifest_text is None:
        return []
    try:
        manifest = json.loads(manifest_text)
    except json.JSONDecodeError:
        logger.info("Dependency manifest is not valid JSON; skipping advisories")
        return []
    if not isinstance(manifest, dict):
        return []
    return list(detectors.advisories().values())


def build_result(
    secrets: Iterable[Finding],
    insecure_patterns: Iterable[Finding],
    dependencies: Iterable[DependencyAdvisory],
) -> ScanResult:
    """Assemble a ScanResult with findings sorted by (file, rule) and advisories by name."""
    return ScanResult(
        secrets=sorted(secrets, key=lambda f: (f.file, f.rule)),
        insecure_patterns=sorted(insecure_patterns, key=lambda f: (f.file, f.rule)),
        dependencies=sorted(dependencies, key=lambda a: a.name),
    )


class CorpusScanner(abc.ABC):
    """Scans a repository's file corpus and returns a ScanResult."""

    @abc.abstractmethod
    async def scan(self, ref: RepositoryReference, credential: str | None) -> ScanResult:
        """Raises RepositoryNotFoundError, RepositoryInaccessibleError, or UpstreamError."""

    async def aclose(self) -> None:
        return None


class PatternScanEngine(CorpusScanner):
    """In-process scanner: GitHub tree + contents API, regex catalogs, bounded fan-out."""

    def __init__(self, fetcher: GitHubContentFetcher, settings: Settings) -> None:
        self._fetcher = fetcher
        self._settings = settings

    async def aclose(self) -> None:
        await self._fetcher.aclose()

    async def _scan_file(
        self,
        ref: RepositoryReference,
        path: str,
        branch: str,
        credential: str,
        semaphore: asyncio.Semaphore,
    ) -> tuple[list[Finding], list[Finding]] | None:
        """Fetch and evaluate one file. Returns None when the file was skipped."""
        async with semaphore:
            try:
                text = await asyncio.wait_for(
                    self._fetcher.get_file_text(ref, path, credential, branch=branch),
                    timeout=self._settings.SCAN_FILE_TIMEOUT_SEC,
                )
            except asyncio.TimeoutError:
                logger.warning("File fetch timed out; skipping", extra={"repo": ref.full_name, "path": path})
                return None
            except GitHubError as e:
                logger.warning(
                    "File fetch failed; skipping",
                    extra={"repo": ref.full_name, "path": path, "reason": e.message[:200]},
                )
                return None
        if text is None:
            logger.debug("File is binary or has no inline content; skipping", extra={"path": path})
            return None
        return (
            detectors.evaluate(path, text, detectors.secret_rules()),
            detectors.evaluate(path, text, detectors.insecure_rules()),
        )

    async def _fetch_manifest(
        self,
        ref: RepositoryReference,
        branch: str,
        credential: str,
        semaphore: asyncio.Semaphore,
    ) -> str | None:
        async with semaphore:
            try:
                return await asyncio.wait_for(
                    self._fetcher.get_file_text(ref, MANIFEST_PATH, credential, branch=branch),
                    timeout=self._settings.SCAN_FILE_TIMEOUT_SEC,
                )
            except GitHubNotFoundError:
                return None
            except (asyncio.TimeoutError, GitHubError) as e:
                logger.warning(
                    "Dependency manifest fetch failed; skipping advisories",
                    extra={"repo": ref.full_name, "reason": str(e)[:200]},
                )
                return None

    async def scan(self, ref: RepositoryReference, credential: str | None) -> ScanResult:
        """
        Scan a repository. Only the tree listing can fail the scan; per-file
        failures are logged and skipped.
        """
        start = time.perf_counter()
        try:
            token = resolve_credential(credential, self._settings)
            tree = await self._fetcher.list_tree(ref, token)
        except GitHubError as e:
            raise to_scan_error(e) from e

        eligible = [
            entry.path
            for entry in tree.entries
            if is_eligible(entry, self._settings.SCAN_MAX_FILE_BYTES)
        ]
        semaphore = asyncio.Semaphore(self._settings.SCAN_CONCURRENCY)
        file_tasks = [
            self._scan_file(ref, path, tree.branch, token, semaphore) for path in eligible
        ]
        manifest_text, *file_results = await asyncio.gather(
            self._fetch_manifest(ref, tree.branch, token, semaphore),
            *file_tasks,
        )

        secrets: list[Finding] = []
        patterns: list[Finding] = []
        skipped = 0
        for outcome in file_results:
            if outcome is None:
                skipped += 1
                continue
            file_secrets, file_patterns = outcome
            secrets.extend(file_secrets)
            patterns.extend(file_patterns)

        result = build_result(secrets, patterns, manifest_advisories(manifest_text))
        logger.info(
            "Scan completed",
            extra={
                "repo": ref.full_name,
                "branch": tree.branch,
                "tree_entries": len(tree.entries),
                "eligible_files": len(eligible),
                "skipped_files": skipped,
                "secret_findings": len(result.secrets),
                "pattern_findings": len(result.insecure_patterns),
                "dependency_advisories": len(result.dependencies),
                "scan_seconds": round(time.perf_counter() - start, 3),
            },
        )
        return result


def build_corpus_scanner(settings: Settings, fetcher: GitHubContentFetcher | None = None) -> CorpusScanner:
    """Select the scanner implementation configured by SCANNER_BACKEND."""
    if settings.SCANNER_BACKEND == "trufflehog":
        from app.services.trufflehog import TruffleHogScanner

        return TruffleHogScanner(settings)
    return PatternScanEngine(fetcher or GitHubContentFetcher(settings), settings)
