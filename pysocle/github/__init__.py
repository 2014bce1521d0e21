"""GitHub interfaces and implementation."""

import os
import logging
import subprocess
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Protocol, runtime_checkable

import requests
import yaml
from github import GithubException

from ..config.models import SocleConfig
from ..typing import RemoteAPIError, RemoteNotFoundError, StackTrackingError, UserCancelledError
from .counter import APICallCounter
from .types import CommentInfo, PRInfo

# Get module logger
logger = logging.getLogger(__name__)

# Define protocols for GitHub objects
@runtime_checkable
class GitHubRefProtocol(Protocol):
    """Protocol for GitHub ref objects (base/head references)."""
    @property
    def ref(self) -> str:
        """Get the ref name (e.g., 'main', 'feature-branch')."""
        ...

@runtime_checkable
class GitHubIssueCommentProtocol(Protocol):
    """Protocol for issue comment objects (real or fake)."""
    @property
    def id(self) -> int:
        ...

    @property
    def body(self) -> str:
        ...

    def edit(self, body: str) -> None:
        """Replace the comment body."""
        ...

@runtime_checkable
class GitHubPullRequestProtocol(Protocol):
    """Protocol for GitHub pull request objects (real or fake)."""
    @property
    def number(self) -> int:
        """Get the PR number."""
        ...

    @property
    def title(self) -> str:
        """Get the PR title."""
        ...

    @property
    def state(self) -> str:
        """Get the PR state (open, closed)."""
        ...

    @property
    def draft(self) -> bool:
        ...

    @property
    def merged(self) -> bool:
        ...

    @property
    def html_url(self) -> Optional[str]:
        ...

    @property
    def base(self) -> GitHubRefProtocol:
        """Get the base reference."""
        ...

    @property
    def head(self) -> GitHubRefProtocol:
        """Get the head reference."""
        ...

    def edit(self, title: Optional[str] = None, body: Optional[str] = None, state: Optional[str] = None,
             base: Optional[str] = None) -> None:
        """Edit the pull request."""
        ...

    def get_issue_comments(self) -> Iterable[GitHubIssueCommentProtocol]:
        """Iterate comments, fetching pages one after another."""
        ...

    def get_issue_comment(self, id: int) -> GitHubIssueCommentProtocol:
        ...

    def create_issue_comment(self, body: str) -> GitHubIssueCommentProtocol:
        """Add a comment to the pull request."""
        ...

@runtime_checkable
class GitHubRepoProtocol(Protocol):
    """Protocol for GitHub repository objects (real or fake)."""
    def get_pull(self, number: int) -> GitHubPullRequestProtocol:
        """Get a pull request by number."""
        ...

    def create_pull(self, title: str, body: str, base: str, head: str,
                    maintainer_can_modify: bool = True, draft: bool = False) -> GitHubPullRequestProtocol:
        """Create a new pull request."""
        ...

@runtime_checkable
class PyGithubProtocol(Protocol):
    """Protocol for PyGithub implementations (real or fake).

    Both the adapter around the real PyGithub library and the fake used in
    tests satisfy this.
    """
    def get_repo(self, full_name_or_id: str) -> GitHubRepoProtocol:
        """Get a repository by full name."""
        ...


def find_github_token(host: str = "github.com") -> Optional[str]:
    """Find GitHub token from env var, gh CLI config, or the gh CLI itself."""
    # First try environment variable
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    # Then try gh CLI config at ~/.config/gh/hosts.yml
    gh_config_path = Path.home() / ".config" / "gh" / "hosts.yml"
    try:
        if gh_config_path.exists():
            with open(gh_config_path, "r") as f:
                gh_config = yaml.safe_load(f)
            if isinstance(gh_config, dict) and isinstance(gh_config.get(host), dict):
                host_config: Dict[str, object] = gh_config[host]
                token = host_config.get("oauth_token")
                if isinstance(token, str) and token:
                    return token
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Error reading gh CLI config: {e}")

    # Finally ask gh, which may keep the token in the system keyring
    try:
        result = subprocess.run(["gh", "auth", "token", "--hostname", host],
                                capture_output=True, text=True, timeout=10)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"gh auth token unavailable: {e}")
        return None
    if result.returncode == 0 and result.stdout.strip():
        return result.stdout.strip()
    return None


def _pr_info(pr: GitHubPullRequestProtocol) -> PRInfo:
    return PRInfo(
        number=pr.number,
        title=pr.title or "",
        state=pr.state,
        base_ref=pr.base.ref,
        head_ref=pr.head.ref,
        draft=bool(pr.draft),
        merged=bool(pr.merged),
        html_url=pr.html_url,
    )


def _comment_info(comment: GitHubIssueCommentProtocol) -> CommentInfo:
    return CommentInfo(id=comment.id, body=comment.body or "")


class GitHubClient:
    """GitHub client implementation.

    Every call checks the cancel token first, is counted when a counter is
    given, and surfaces failures as RemoteNotFoundError (404) or
    RemoteAPIError. Calls are never retried.
    """
    def __init__(self, config: SocleConfig, github_client: PyGithubProtocol,
                 counter: Optional[APICallCounter] = None,
                 cancel_event: Optional[threading.Event] = None):
        self.config = config
        self.client = github_client
        self.counter = counter
        self.cancel_event = cancel_event
        self._repo: Optional[GitHubRepoProtocol] = None

    @property
    def repo(self) -> GitHubRepoProtocol:
        """Get GitHub repository."""
        if self._repo is None:
            owner = self.config.repo.github_repo_owner
            name = self.config.repo.github_repo_name
            if not owner or not name:
                raise StackTrackingError(
                    "GitHub repository unknown; set repo.github_repo_owner/github_repo_name in .socle.yaml")
            self._repo = self.client.get_repo(f"{owner}/{name}")
        return self._repo

    @contextmanager
    def _api_call(self, operation: str, target: str) -> Iterator[None]:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise UserCancelledError(f"cancelled before github {operation}")
        if self.counter is not None:
            self.counter.increment(operation)
        try:
            yield
        except GithubException as e:
            if e.status == 404:
                raise RemoteNotFoundError(target) from e
            message = e.data.get("message") if isinstance(e.data, dict) else e.data
            raise RemoteAPIError(operation, message, status=e.status) from e
        except requests.exceptions.RequestException as e:
            raise RemoteAPIError(operation, e) from e

    def get_pull_request(self, number: int) -> PRInfo:
        logger.info(f"> github get #{number}")
        with self._api_call("get_pull_request", f"pull request #{number}"):
            return _pr_info(self.repo.get_pull(number))

    def create_pull_request(self, head: str, base: str, title: str, body: str,
                            draft: bool = False) -> PRInfo:
        logger.info(f"> github create {head} -> {base} : {title}")
        with self._api_call("create_pull_request", f"branch {head}"):
            pr = self.repo.create_pull(title=title, body=body, base=base, head=head, draft=draft)
            return _pr_info(pr)

    def update_pull_request_base(self, number: int, base: str) -> PRInfo:
        logger.info(f"> github update base #{number} -> {base}")
        with self._api_call("update_pull_request_base", f"pull request #{number}"):
            pr = self.repo.get_pull(number)
            pr.edit(base=base)
            return _pr_info(self.repo.get_pull(number))

    def iter_comments(self, number: int) -> Iterator[CommentInfo]:
        """Yield a PR's comments, fetching each page only when it is reached."""
        logger.info(f"> github list comments #{number}")
        with self._api_call("iter_comments", f"pull request #{number}"):
            pr = self.repo.get_pull(number)
            for comment in pr.get_issue_comments():
                yield _comment_info(comment)

    def find_comment_with_marker(self, number: int, marker: str) -> int:
        """Find the first comment on a PR whose body contains marker. 0 if none."""
        logger.info(f"> github search comments #{number}")
        with self._api_call("find_comment_with_marker", f"pull request #{number}"):
            pr = self.repo.get_pull(number)
            for comment in pr.get_issue_comments():
                if marker in (comment.body or ""):
                    return comment.id
        return 0

    def create_comment(self, number: int, body: str) -> CommentInfo:
        logger.info(f"> github add comment #{number}")
        with self._api_call("create_comment", f"pull request #{number}"):
            pr = self.repo.get_pull(number)
            return _comment_info(pr.create_issue_comment(body))

    def update_comment(self, number: int, comment_id: int, body: str) -> CommentInfo:
        logger.info(f"> github update comment #{number} ({comment_id})")
        with self._api_call("update_comment", f"comment {comment_id}"):
            comment = self.repo.get_pull(number).get_issue_comment(comment_id)
            comment.edit(body)
            return CommentInfo(id=comment_id, body=body)


def create_github_client(config: SocleConfig, counter: Optional[APICallCounter] = None,
                         cancel_event: Optional[threading.Event] = None) -> GitHubClient:
    """Build a GitHubClient around the real PyGithub library."""
    from github import Auth, Github
    from .adapters import PyGithubAdapter

    token = find_github_token(config.repo.github_host)
    if not token:
        raise StackTrackingError(
            "No GitHub token found. Try one of:\n1. Set GITHUB_TOKEN env var\n2. Log in with 'gh auth login'")

    base_url = "https://api.github.com"
    if config.repo.github_host != "github.com":
        base_url = f"https://{config.repo.github_host}/api/v3"
    real_github = Github(auth=Auth.Token(token), base_url=base_url,
                         timeout=config.tool.api_timeout, retry=None, per_page=50)
    return GitHubClient(config, PyGithubAdapter(real_github), counter=counter, cancel_event=cancel_event)
