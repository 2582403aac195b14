"""Pydantic schemas for repository scans: references, tree entries, findings, results, and API bodies."""

import re
from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

SeverityLevel = Literal["Critical", "High", "Medium", "Low"]
JobStatus = Literal["pending", "running", "completed", "failed"]

# github.com/<owner>/<name> over https, http or ssh (git@github.com:owner/name.git)
_GITHUB_URL_RE = re.compile(
    r"^(?:(?:https?://)?(?:www\.)?github\.com/|git@github\.com:)"
    r"(?P<owner>[^/\s?#]+)/(?P<name>[^/\s?#]+)"
)


class InvalidRepositoryURLError(ValueError):
    """Raised when a repository URL cannot be parsed into owner and name."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RepositoryReference(BaseModel):
    """Owner and name of a GitHub repository; immutable once parsed."""

    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., min_length=1, description="Repository owner (user or organization).")
    name: str = Field(..., min_length=1, description="Repository name without a .git suffix.")

    @field_validator("name")
    @classmethod
    def strip_git_suffix(cls, v: str) -> str:
        name = v[:-4] if v.endswith(".git") else v
        if not name:
            raise ValueError("repository name must be non-empty")
        return name

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def from_url(cls, url: str) -> "RepositoryReference":
        """Parse a GitHub URL. Raises InvalidRepositoryURLError when owner or name is missing."""
        match = _GITHUB_URL_RE.match((url or "").strip())
        if match is None:
            raise InvalidRepositoryURLError("Invalid GitHub repository URL")
        owner = match.group("owner")
        name = match.group("name")
        if name.endswith(".git"):
            name = name[:-4]
        if not owner or not name:
            raise InvalidRepositoryURLError("Invalid GitHub repository URL")
        return cls(owner=owner, name=name)


class FileTreeEntry(BaseModel):
    """One entry of a repository tree snapshot."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Slash-separated path relative to the repository root.")
    kind: Literal["file", "other"] = Field(..., description="'file' for blobs, 'other' for trees and submodules.")
    size: int = Field(default=0, ge=0, description="Size in bytes (0 when unknown).")


class RepositoryTree(BaseModel):
    """A recursive tree listing for one branch."""

    branch: str
    entries: list[FileTreeEntry] = Field(default_factory=list)
    truncated: bool = False


class Finding(BaseModel):
    """One rule matching one file. Records provenance only, never the matched text."""

    model_config = ConfigDict(frozen=True)

    file: str = Field(..., description="Path of the file that matched.")
    rule: str = Field(..., description="Name of the detection rule.")
    severity: SeverityLevel
    count: int = Field(..., ge=1, description="Number of non-overlapping matches in the file.")


class DependencyAdvisory(BaseModel):
    """Static advisory for a dependency with a known-vulnerable version range."""

    model_config = ConfigDict(frozen=True)

    name: str
    current_version: str
    vulnerable_versions: str
    severity: SeverityLevel
    description: str


class ScanResult(BaseModel):
    """The three result groups of a scan, in deterministic order."""

    secrets: list[Finding] = Field(default_factory=list)
    insecure_patterns: list[Finding] = Field(default_factory=list)
    dependencies: list[DependencyAdvisory] = Field(default_factory=list)


class GatedFindings(BaseModel):
    """Visible slice of one finding category plus the true total."""

    items: list[Finding] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    hidden: int = Field(..., ge=0, description="Items withheld from this viewer (total - len(items)).")


class GatedAdvisories(BaseModel):
    """Visible slice of the dependency advisories plus the true total."""

    items: list[DependencyAdvisory] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    hidden: int = Field(..., ge=0)


class GatedScanResult(BaseModel):
    """Scan result as rendered for one viewer."""

    full_access: bool
    secrets: GatedFindings
    insecure_patterns: GatedFindings
    dependencies: GatedAdvisories


class ScanRequest(BaseModel):
    """Body of POST /scans."""

    model_config = ConfigDict(extra="ignore")

    repo_url: str = Field(
        ...,
        min_length=1,
        max_length=2048,
        validation_alias=AliasChoices("repo_url", "repoUrl"),
        description="GitHub repository URL, e.g. https://github.com/acme/widgets",
    )
    github_token: str | None = Field(
        default=None,
        max_length=1024,
        validation_alias=AliasChoices("github_token", "githubToken"),
        description="Optional caller GitHub token; takes precedence over the service credential.",
    )


class ScanSubmitResponse(BaseModel):
    """Response after accepting a scan."""

    job_id: str
    status: JobStatus


class RepositoryInfo(BaseModel):
    owner: str
    name: str


class JobError(BaseModel):
    """Why a job failed; code is stable, message is human readable."""

    code: str
    message: str


class ScanStatusResponse(BaseModel):
    """Response of GET /scans/status."""

    job_id: str
    status: JobStatus
    repository: RepositoryInfo
    created_at: datetime | None = None
    result: GatedScanResult | None = None
    error: JobError | None = None


class JobRecord(BaseModel):
    """Snapshot of a persisted scan job."""

    model_config = ConfigDict(from_attributes=True)

    job_id: str
    status: JobStatus
    repo_owner: str
    repo_name: str
    created_at: datetime | None = None
    completed_at: datetime | None = None
    error_code: str | None = None
    error_message: str | None = None
    result: dict | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")

    def scan_result(self) -> ScanResult | None:
        """Stored result as a ScanResult, or None when the job has not completed."""
        if self.status != "completed" or self.result is None:
            return None
        return ScanResult.model_validate(self.result)
