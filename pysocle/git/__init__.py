"""Git interfaces and implementation."""

import os
import re
import shlex
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from ..config.models import SocleConfig
from ..typing import CommitHash, GitCommandFailedError, GitInterface, StackTrackingError

# Get module logger
logger = logging.getLogger(__name__)

# Checked in order, relative to the repository root
PR_TEMPLATE_PATHS = [
    ".github/pull_request_template.md",
    ".github/PULL_REQUEST_TEMPLATE.md",
    "pull_request_template.md",
    "docs/pull_request_template.md",
]

REPO_URL_REGEX = re.compile(r'(?::|/)([^/:]+)/([^/]+?)(?:\.git)?$')

# Commands that change refs, the index or the remote. Logged at INFO.
MUTATING_COMMANDS = ("push", "fetch", "rebase", "checkout", "branch", "commit", "add", "merge")


def _clean_stderr(err: GitCommandError) -> str:
    """Pull the raw stderr text back out of GitPython's decorated message."""
    stderr = err.stderr or ""
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    stderr = stderr.strip()
    match = re.match(r"^stderr: '(.*)'$", stderr, re.DOTALL)
    if match:
        stderr = match.group(1).strip()
    return stderr


class RealGit:
    """Real Git implementation backed by GitPython."""
    def __init__(self, config: SocleConfig, repo_dir: Optional[str] = None):
        """Initialize with config and the directory to run in (default: cwd)."""
        self.config: SocleConfig = config
        self.repo_dir = repo_dir

    def _repo(self) -> git.Repo:
        try:
            return git.Repo(self.repo_dir or os.getcwd(), search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError):
            raise StackTrackingError("Not in a git repository")

    def run_cmd(self, command: str) -> str:
        """Run git command given as one string."""
        return self.run_args(*shlex.split(command.strip()))

    def run_args(self, *args: str) -> str:
        """Run git command given as split arguments."""
        cmd_str = " ".join(shlex.quote(a) for a in args)
        git_command = args[0]

        if self.config.tool.pretend and git_command == "push":
            logger.info(f"> git {cmd_str} (pretend)")
            return ""

        if git_command in MUTATING_COMMANDS or self.config.user.log_git_commands:
            logger.info(f"> git {cmd_str}")
        else:
            logger.debug(f"> git {cmd_str}")

        repo = self._repo()
        method = getattr(repo.git, git_command.replace('-', '_'))
        try:
            result = method(*args[1:])
        except GitCommandError as e:
            stderr = _clean_stderr(e)
            logger.debug(f"git {cmd_str} exited {e.status}: {stderr}")
            raise GitCommandFailedError(cmd_str, e.status if isinstance(e.status, int) else None, stderr) from e
        return result if isinstance(result, str) else str(result)

    def must_git(self, command: str) -> str:
        """Run git command, failing on error."""
        return self.run_cmd(command)


def get_current_branch(git_cmd: GitInterface) -> str:
    """Get the checked-out branch name. Detached HEAD is an error."""
    branch = git_cmd.must_git("rev-parse --abbrev-ref HEAD").strip()
    if branch == "HEAD":
        raise StackTrackingError("HEAD is detached; check out a branch first")
    return branch

def get_current_commit(git_cmd: GitInterface) -> CommitHash:
    """Get the commit HEAD points at."""
    return CommitHash(git_cmd.must_git("rev-parse HEAD").strip())

def get_branch_commit(git_cmd: GitInterface, branch: str) -> CommitHash:
    """Get the tip commit of a local branch."""
    commit = git_cmd.run_args("rev-parse", "--verify", f"refs/heads/{branch}").strip()
    if not commit:
        raise GitCommandFailedError(f"rev-parse --verify refs/heads/{branch}", None, "empty output")
    return CommitHash(commit)

def get_merge_base(git_cmd: GitInterface, ref_a: str, ref_b: str) -> CommitHash:
    """Get the best common ancestor of two refs."""
    base = git_cmd.run_args("merge-base", ref_a, ref_b).strip()
    if not base:
        raise GitCommandFailedError(f"merge-base {ref_a} {ref_b}", None, "empty output")
    return CommitHash(base)

def has_diff(git_cmd: GitInterface, parent: str, branch: str) -> bool:
    """Check whether branch introduces content changes relative to parent."""
    try:
        git_cmd.run_args("diff", "--quiet", f"{parent}..{branch}")
    except GitCommandFailedError as e:
        if e.status == 1:
            return True
        raise
    return False

def branch_exists(git_cmd: GitInterface, name: str) -> bool:
    """Check whether a local branch exists."""
    try:
        git_cmd.run_args("rev-parse", "--verify", "--quiet", f"refs/heads/{name}")
    except GitCommandFailedError as e:
        if e.status in (1, 128):
            return False
        raise
    return True

def is_valid_branch_name(git_cmd: GitInterface, name: str) -> bool:
    """Check a candidate name against git's ref format rules."""
    if not name.strip():
        return False
    try:
        git_cmd.run_args("check-ref-format", "--branch", name)
    except GitCommandFailedError as e:
        if e.status in (1, 128):
            return False
        raise
    return True

def list_local_branches(git_cmd: GitInterface) -> List[str]:
    """List local branch names."""
    output = git_cmd.run_args("for-each-ref", "--format=%(refname:short)", "refs/heads/")
    return [line.strip() for line in output.splitlines() if line.strip()]

def create_branch(git_cmd: GitInterface, name: str, start_point: str) -> None:
    git_cmd.run_args("branch", name, start_point)

def checkout_branch(git_cmd: GitInterface, name: str) -> None:
    git_cmd.run_args("checkout", name)

def delete_branch(git_cmd: GitInterface, name: str) -> None:
    git_cmd.run_args("branch", "-D", name)

def has_uncommitted_changes(git_cmd: GitInterface) -> bool:
    """Check for staged, unstaged or untracked changes in the working tree."""
    return bool(git_cmd.run_args("status", "--porcelain").strip())

def has_staged_changes(git_cmd: GitInterface) -> bool:
    try:
        git_cmd.run_args("diff", "--cached", "--quiet")
    except GitCommandFailedError as e:
        if e.status == 1:
            return True
        raise
    return False

def stage_all_changes(git_cmd: GitInterface) -> None:
    git_cmd.run_args("add", "-A")

def commit_changes(git_cmd: GitInterface, message: str) -> None:
    git_cmd.run_args("commit", "-m", message)

def get_first_commit_subject(git_cmd: GitInterface, parent: str, branch: str) -> str:
    """Get the subject of the oldest commit on branch that parent lacks."""
    output = git_cmd.run_args("log", "--reverse", "--format=%s", f"{parent}..{branch}")
    lines = output.splitlines()
    return lines[0].strip() if lines else ""

def get_git_dir(git_cmd: GitInterface) -> Path:
    """Get the absolute path of the repository's git directory."""
    return Path(git_cmd.must_git("rev-parse --absolute-git-dir").strip())

def get_repo_root(git_cmd: GitInterface) -> Path:
    """Get the top level of the working tree."""
    return Path(git_cmd.must_git("rev-parse --show-toplevel").strip())

def is_rerere_enabled(git_cmd: GitInterface) -> bool:
    """Check rerere.enabled in any config scope. Absent means disabled."""
    try:
        value = git_cmd.run_args("config", "--get", "rerere.enabled").strip()
    except GitCommandFailedError as e:
        if e.status == 1:
            return False
        raise
    return value.lower() in ("true", "yes", "on", "1")


def get_remote_url(git_cmd: GitInterface, remote: str) -> str:
    """Get the fetch URL of a remote."""
    try:
        return git_cmd.run_args("remote", "get-url", remote).strip()
    except GitCommandFailedError as e:
        if e.status == 2 or "No such remote" in e.stderr:
            raise StackTrackingError(f"remote '{remote}' not found") from e
        raise

def remote_exists(git_cmd: GitInterface, remote: str) -> bool:
    output = git_cmd.run_args("remote")
    return remote in [line.strip() for line in output.splitlines()]

def parse_owner_and_repo(remote_url: str) -> Tuple[str, str]:
    """Extract (owner, repo) from an SSH or HTTPS remote URL."""
    url = remote_url.strip()
    if url.startswith("git@"):
        url = url.replace(":", "/", 1)
    match = REPO_URL_REGEX.search(url)
    if not match:
        raise ValueError(f"could not extract owner/repo from URL: {remote_url}")
    return match.group(1), match.group(2)

def push_branch(git_cmd: GitInterface, remote: str, branch: str,
                force: bool = False, force_with_lease: bool = False) -> None:
    """Push a local branch to the same name on remote."""
    args = ["push"]
    if force_with_lease:
        args.append("--force-with-lease")
    elif force:
        args.append("--force")
    args += [remote, f"refs/heads/{branch}:refs/heads/{branch}"]
    git_cmd.run_args(*args)

def fetch_and_fast_forward(git_cmd: GitInterface, remote: str, branch: str) -> bool:
    """Fetch remote and fast-forward the local branch to its remote-tracking ref.

    Returns False when the local branch has diverged and was left alone.
    """
    git_cmd.run_args("fetch", remote)
    tracking = f"{remote}/{branch}"
    current = get_current_branch(git_cmd)
    if current != branch:
        checkout_branch(git_cmd, branch)
    try:
        git_cmd.run_args("merge", "--ff-only", tracking)
    except GitCommandFailedError as e:
        logger.warning(f"Could not fast-forward '{branch}' from '{tracking}', using local version: {e.stderr}")
        return False
    finally:
        if current != branch:
            checkout_branch(git_cmd, current)
    return True

def find_pr_template(git_cmd: GitInterface) -> Optional[str]:
    """Read the first pull request template found in the repository."""
    root = get_repo_root(git_cmd)
    for relative in PR_TEMPLATE_PATHS:
        path = root / relative
        if path.is_file():
            logger.debug(f"Using PR template {relative}")
            return path.read_text(encoding="utf-8")
    return None
