"""Shared utilities for pysocle tests."""
import re
import subprocess
import logging
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

def run_cmd(cmd: str, cwd: Optional[str] = None, check: bool = True) -> str:
    """Run shell command and return output.

    Args:
        cmd: Command to run
        cwd: Working directory
        check: Whether to check return code

    Returns:
        str: Command output
    """
    logger.debug(f"Running command: {cmd}")
    result = subprocess.run(
        cmd, shell=True, check=check, cwd=cwd,
        capture_output=True, text=True
    )
    logger.debug(f"Command output: {result.stdout.strip()}")
    if result.stderr:
        logger.debug(f"Command stderr: {result.stderr.strip()}")
    return result.stdout.strip()

def git_version() -> Tuple[int, int]:
    """Installed git's (major, minor)."""
    match = re.search(r'(\d+)\.(\d+)', run_cmd("git --version"))
    if not match:
        return (0, 0)
    return int(match.group(1)), int(match.group(2))

def init_repo(path: Path) -> Path:
    """Create a repository with one commit on main."""
    path.mkdir(parents=True, exist_ok=True)
    cwd = str(path)
    run_cmd("git init -q", cwd)
    run_cmd("git symbolic-ref HEAD refs/heads/main", cwd)
    run_cmd("git config user.name 'Test User'", cwd)
    run_cmd("git config user.email test@example.com", cwd)
    run_cmd("git config commit.gpgsign false", cwd)
    commit_file(path, "README.md", "# test repo\n", "Initial commit")
    return path

def commit_file(repo: Path, name: str, content: str, message: str) -> str:
    """Write a file, commit it on the current branch and return the new HEAD."""
    target = repo / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    run_cmd(f"git add '{name}'", str(repo))
    run_cmd(f"git commit -q -m '{message}'", str(repo))
    return run_cmd("git rev-parse HEAD", str(repo))

def checkout(repo: Path, branch: str, create: bool = False) -> None:
    flag = "-b " if create else ""
    run_cmd(f"git checkout -q {flag}{branch}", str(repo))

def rev_parse(repo: Path, ref: str) -> str:
    return run_cmd(f"git rev-parse {ref}", str(repo))

def set_parent(repo: Path, branch: str, parent: str, base: str = "main") -> None:
    """Record stack tracking for a branch directly in git config."""
    run_cmd(f"git config branch.{branch}.socle-parent {parent}", str(repo))
    run_cmd(f"git config branch.{branch}.socle-base {base}", str(repo))

def build_stack(repo: Path, *branches: str) -> None:
    """Create main -> branches[0] -> branches[1] ... each with one commit, tracked."""
    parent = "main"
    for branch in branches:
        checkout(repo, parent)
        checkout(repo, branch, create=True)
        commit_file(repo, f"{branch}.txt", f"{branch}\n", f"Add {branch}")
        set_parent(repo, branch, parent)
        parent = branch
