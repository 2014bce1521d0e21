"""Adapter classes to wrap PyGithub objects with our protocol interfaces."""

from typing import Iterable, Optional
import logging

from github import Github
from github.IssueComment import IssueComment
from github.PullRequest import PullRequest as PyGithubPullRequest
from github.Repository import Repository
from github.GithubObject import NotSet

from . import (
    PyGithubProtocol,
    GitHubRepoProtocol,
    GitHubPullRequestProtocol,
    GitHubIssueCommentProtocol,
    GitHubRefProtocol,
)

logger = logging.getLogger(__name__)


class PyGithubIssueCommentAdapter(GitHubIssueCommentProtocol):
    """Adapter for PyGithub IssueComment objects."""

    def __init__(self, comment: IssueComment) -> None:
        self._comment = comment

    @property
    def id(self) -> int:
        return self._comment.id

    @property
    def body(self) -> str:
        return self._comment.body or ""

    def edit(self, body: str) -> None:
        self._comment.edit(body)


class PyGithubPullRequestAdapter(GitHubPullRequestProtocol):
    """Adapter for PyGithub PullRequest objects."""

    def __init__(self, pr: PyGithubPullRequest) -> None:
        self._pr = pr

    @property
    def number(self) -> int:
        return self._pr.number

    @property
    def title(self) -> str:
        return self._pr.title

    @property
    def state(self) -> str:
        return self._pr.state

    @property
    def draft(self) -> bool:
        return bool(self._pr.draft)

    @property
    def merged(self) -> bool:
        return bool(self._pr.merged)

    @property
    def html_url(self) -> Optional[str]:
        return self._pr.html_url

    @property
    def base(self) -> GitHubRefProtocol:
        return self._pr.base

    @property
    def head(self) -> GitHubRefProtocol:
        return self._pr.head

    def edit(self, title: Optional[str] = None, body: Optional[str] = None,
             state: Optional[str] = None, base: Optional[str] = None) -> None:
        """Edit the pull request."""
        # PyGithub wants NotSet, not None, for fields left alone
        self._pr.edit(
            title=title if title is not None else NotSet,
            body=body if body is not None else NotSet,
            state=state if state is not None else NotSet,
            base=base if base is not None else NotSet
        )

    def get_issue_comments(self) -> Iterable[GitHubIssueCommentProtocol]:
        """Iterate comments; PaginatedList fetches the next page only when needed."""
        for comment in self._pr.get_issue_comments():
            yield PyGithubIssueCommentAdapter(comment)

    def get_issue_comment(self, id: int) -> GitHubIssueCommentProtocol:
        return PyGithubIssueCommentAdapter(self._pr.get_issue_comment(id))

    def create_issue_comment(self, body: str) -> GitHubIssueCommentProtocol:
        return PyGithubIssueCommentAdapter(self._pr.create_issue_comment(body))


class PyGithubRepoAdapter(GitHubRepoProtocol):
    """Adapter for PyGithub Repository objects."""

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def get_pull(self, number: int) -> GitHubPullRequestProtocol:
        """Get a pull request by number."""
        return PyGithubPullRequestAdapter(self._repo.get_pull(number))

    def create_pull(self, title: str, body: str, base: str, head: str,
                    maintainer_can_modify: bool = True, draft: bool = False) -> GitHubPullRequestProtocol:
        """Create a new pull request."""
        pr = self._repo.create_pull(
            title=title,
            body=body,
            base=base,
            head=head,
            maintainer_can_modify=maintainer_can_modify,
            draft=draft
        )
        return PyGithubPullRequestAdapter(pr)


class PyGithubAdapter(PyGithubProtocol):
    """Adapter for the main PyGithub object."""

    def __init__(self, github: Github) -> None:
        self._github = github

    def get_repo(self, full_name_or_id: str) -> GitHubRepoProtocol:
        """Get a repository by full name without fetching it up front."""
        return PyGithubRepoAdapter(self._github.get_repo(full_name_or_id, lazy=True))
