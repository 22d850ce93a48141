"""
github.py
=========
GitHub Actions and pull request lookups through the GitHub CLI (``gh``).
Output is requested as JSON and parsed here; failures are translated into
actionable messages.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from core.config import DEFAULT_GITHUB_HOST
from core.exec import ExecResult, execute
from core.options import GitHubTarget, WorkflowRunFilter

RUN_FIELDS = "databaseId,displayTitle,workflowName,status,conclusion,headBranch,event,createdAt,url"


class GitHubError(Exception):
    pass


@dataclass
class WorkflowRun:
    id: int
    display_title: str
    workflow_name: str
    status: str
    conclusion: str
    branch: str
    event: str
    created_at: str
    url: str

    @classmethod
    def from_gh(cls, raw: dict[str, Any]) -> "WorkflowRun":
        return cls(
            id=int(raw["databaseId"]),
            display_title=raw.get("displayTitle", ""),
            workflow_name=raw.get("workflowName", ""),
            status=raw.get("status", ""),
            conclusion=raw.get("conclusion") or "",
            branch=raw.get("headBranch", ""),
            event=raw.get("event", ""),
            created_at=raw.get("createdAt", ""),
            url=raw.get("url", ""),
        )


def gh_env(hostname: str) -> dict[str, str] | None:
    """Point gh at a GitHub Enterprise host; None keeps gh's own default."""
    if hostname and hostname != DEFAULT_GITHUB_HOST:
        return {"GH_HOST": hostname}
    return None


def describe_gh_failure(result: ExecResult, repo: str | None) -> str:
    if result.spawn_error is not None:
        return "GitHub CLI (gh) is not installed. Install with: brew install gh"
    stderr = result.stderr.strip()
    if "not a git repository" in stderr:
        return "Not in a git repository. Please specify a repository with --repo owner/repo"
    if "Could not resolve to a Repository" in stderr:
        return f"Repository not found: {repo}"
    if "not logged into" in stderr or "gh auth login" in stderr:
        return "Not authenticated with GitHub. Run: gh auth login"
    return stderr or f"gh exited with code {result.exit_code}"


def repo_args(target: GitHubTarget) -> list[str]:
    return ["--repo", target.repo] if target.repo else []


def _gh(target: GitHubTarget, args: list[str]) -> ExecResult:
    return execute("gh", [*args, *repo_args(target)], capture=True, env=gh_env(target.hostname))


def get_current_repo(target: GitHubTarget) -> str | None:
    result = execute(
        "gh",
        ["repo", "view", "--json", "nameWithOwner", "-q", ".nameWithOwner"],
        capture=True,
        env=gh_env(target.hostname),
    )
    if not result.ok:
        return None
    return result.stdout.strip() or None


def list_workflow_runs(target: GitHubTarget, run_filter: WorkflowRunFilter) -> list[WorkflowRun]:
    args = ["run", "list", "--json", RUN_FIELDS, "--limit", str(run_filter.limit)]
    if run_filter.branch:
        args += ["--branch", run_filter.branch]
    if run_filter.workflow:
        args += ["--workflow", run_filter.workflow]
    if run_filter.status:
        args += ["--status", run_filter.status]

    result = _gh(target, args)
    if not result.ok:
        raise GitHubError(f"Failed to list workflow runs: {describe_gh_failure(result, target.repo)}")
    try:
        return [WorkflowRun.from_gh(raw) for raw in json.loads(result.stdout or "[]")]
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise GitHubError(f"Unexpected output from gh run list: {e}") from e


def rerun_failed_jobs(target: GitHubTarget, run_id: int) -> None:
    result = _gh(target, ["run", "rerun", str(run_id), "--failed"])
    if not result.ok:
        raise GitHubError(f"Failed to rerun run {run_id}: {describe_gh_failure(result, target.repo)}")


def cancel_workflow_run(target: GitHubTarget, run_id: int) -> None:
    result = _gh(target, ["run", "cancel", str(run_id)])
    if not result.ok:
        raise GitHubError(f"Failed to cancel run {run_id}: {describe_gh_failure(result, target.repo)}")


# ── Pull requests ─────────────────────────────────────────────────────────────


PR_FIELDS = "number,title,body,author,state,url,headRefName,baseRefName,createdAt,comments,reviews"


@dataclass
class PullRequestNote:
    author: str
    body: str
    created_at: str
    kind: str = "comment"


@dataclass
class PullRequestActivity:
    number: int
    title: str
    body: str
    author: str
    state: str
    url: str
    head: str
    base: str
    created_at: str
    notes: list[PullRequestNote] = field(default_factory=list)

    @classmethod
    def from_gh(cls, raw: dict[str, Any]) -> "PullRequestActivity":
        notes = [
            PullRequestNote(_login(c), c.get("body", ""), c.get("createdAt", ""))
            for c in raw.get("comments") or []
        ]
        notes += [
            PullRequestNote(_login(r), r.get("body", ""), r.get("submittedAt", ""), r.get("state", "").lower())
            for r in raw.get("reviews") or []
            if r.get("body") or r.get("state") not in (None, "COMMENTED")
        ]
        return cls(
            number=int(raw["number"]),
            title=raw.get("title", ""),
            body=raw.get("body") or "",
            author=_login(raw),
            state=raw.get("state", ""),
            url=raw.get("url", ""),
            head=raw.get("headRefName", ""),
            base=raw.get("baseRefName", ""),
            created_at=raw.get("createdAt", ""),
            notes=sorted(notes, key=lambda n: n.created_at),
        )


def _login(raw: dict[str, Any]) -> str:
    return (raw.get("author") or {}).get("login", "unknown")


def get_pr_activity(target: GitHubTarget, number: int) -> PullRequestActivity:
    result = _gh(target, ["pr", "view", str(number), "--json", PR_FIELDS])
    if not result.ok:
        raise GitHubError(f"Failed to fetch PR #{number}: {describe_gh_failure(result, target.repo)}")
    try:
        return PullRequestActivity.from_gh(json.loads(result.stdout))
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise GitHubError(f"Unexpected output from gh pr view: {e}") from e


def render_pr_markdown(pr: PullRequestActivity) -> str:
    """Description first, then every comment and review in time order."""
    lines = [
        f"# PR #{pr.number}: {pr.title}",
        "",
        f"- **Author**: {pr.author}",
        f"- **State**: {pr.state}",
        f"- **Branch**: {pr.head} -> {pr.base}",
        f"- **Created**: {pr.created_at}",
        f"- **URL**: {pr.url}",
        "",
        "## Description",
        "",
        pr.body.strip() or "_No description provided._",
        "",
        f"## Activity ({len(pr.notes)})",
    ]
    for note in pr.notes:
        label = "comment" if note.kind == "comment" else f"review: {note.kind}"
        lines += ["", f"### {note.author} ({label}) - {note.created_at}", ""]
        lines.append(note.body.strip() or "_No comment._")
    return "\n".join(lines) + "\n"


def auth_login_args(with_token: bool = False, hostname: str | None = None) -> list[str]:
    args = ["auth", "login", "--with-token" if with_token else "--web"]
    if hostname:
        args += ["--hostname", hostname]
    return args
