"""
options.py
==========
Typed option structs built from CLI flags. Every defaulting rule for a flag
that several commands share lives here instead of at each call site.
"""

from dataclasses import dataclass
from enum import Enum

from core.config import DEFAULT_GITHUB_HOST, DEFAULT_REGION, Settings

MAX_RUN_LIMIT = 1000


class OptionsError(Exception):
    pass


class BuildStatusFilter(str, Enum):
    FAILED = "FAILED"
    SUCCEEDED = "SUCCEEDED"
    STOPPED = "STOPPED"
    ALL = "all"

    @property
    def api_value(self) -> str | None:
        """Status to match against CodeBuild, or None for every completed build."""
        return None if self is BuildStatusFilter.ALL else self.value


class OutputFormat(str, Enum):
    TABLE = "table"
    JSON = "json"


class DetailLevel(str, Enum):
    SUMMARY = "summary"
    DETAILED = "detailed"
    FULL = "full"


@dataclass(frozen=True)
class AwsTarget:
    profile: str | None
    region: str

    @classmethod
    def resolve(
        cls, profile: str | None, region: str | None, settings: Settings | None = None
    ) -> "AwsTarget":
        settings = settings or Settings()
        return cls(
            profile=profile or settings.aws.default_profile,
            region=region or settings.aws.default_region or DEFAULT_REGION,
        )


@dataclass(frozen=True)
class GitHubTarget:
    repo: str | None
    hostname: str = DEFAULT_GITHUB_HOST

    @classmethod
    def resolve(
        cls, repo: str | None, hostname: str | None, settings: Settings | None = None
    ) -> "GitHubTarget":
        settings = settings or Settings()
        if repo is not None and repo.count("/") != 1:
            raise OptionsError(f"Repository must be in owner/repo format, got '{repo}'")
        return cls(repo=repo, hostname=hostname or settings.github.hostname or DEFAULT_GITHUB_HOST)


@dataclass(frozen=True)
class CodeBuildLogsOptions:
    build_id: str | None = None
    project: str | None = None
    status: BuildStatusFilter = BuildStatusFilter.FAILED
    grep: str | None = None
    copy: bool = False

    def __post_init__(self) -> None:
        if self.grep is not None and not self.grep.strip():
            raise OptionsError("--grep pattern must not be empty")


@dataclass(frozen=True)
class WorkflowRunFilter:
    branch: str | None = None
    workflow: str | None = None
    status: str | None = None
    limit: int = 20

    def __post_init__(self) -> None:
        if not 1 <= self.limit <= MAX_RUN_LIMIT:
            raise OptionsError(f"--limit must be between 1 and {MAX_RUN_LIMIT}, got {self.limit}")
