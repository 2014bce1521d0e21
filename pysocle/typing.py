"""Common types and errors used across the codebase."""

from enum import Enum
from typing import Optional, Protocol, NewType

# Resolved commit object names
CommitHash = NewType('CommitHash', str)

class GitInterface(Protocol):
    """Protocol for the git command surface (real repo or test double)."""

    def run_cmd(self, command: str) -> str:
        """Run a git command given as a single shell-style string."""
        ...

    def run_args(self, *args: str) -> str:
        """Run a git command given as already-split arguments."""
        ...

    def must_git(self, command: str) -> str:
        """Run git command, failing on error."""
        ...


class ErrorKind(Enum):
    """Closed set of failure categories callers can branch on."""
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    API_FAILURE = "api_failure"
    CANCELLED = "cancelled"
    PERSISTENCE_DRIFT = "persistence_drift"
    GIT_FAILURE = "git_failure"
    INVALID_STATE = "invalid_state"


class SocleError(Exception):
    """Base class for every error pysocle raises on purpose."""
    kind: ErrorKind = ErrorKind.INVALID_STATE


class ConfigNotFoundError(SocleError):
    """A repository config key is absent."""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"config key '{key}' not found")


class GitCommandFailedError(SocleError):
    """A git command exited non-zero for a reason we do not classify further."""
    kind = ErrorKind.GIT_FAILURE

    def __init__(self, command: str, status: Optional[int] = None, stderr: str = ""):
        self.command = command
        self.status = status
        self.stderr = stderr
        message = f"git {command} failed"
        if status is not None:
            message += f" (exit {status})"
        if stderr:
            message += f": {stderr}"
        super().__init__(message)


class RebaseConflictError(SocleError):
    """A rebase stopped on conflicts and is waiting for manual resolution."""
    kind = ErrorKind.CONFLICT

    def __init__(self, branch: str, target: str, stderr: str = ""):
        self.branch = branch
        self.target = target
        self.stderr = stderr
        super().__init__(f"rebase of '{branch}' onto '{target}' stopped on conflicts")


class RemoteNotFoundError(SocleError):
    """The remote service reports the requested object does not exist (404)."""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, what: str):
        self.what = what
        super().__init__(f"{what} not found on remote")


class RemoteAPIError(SocleError):
    """Network failure, timeout or unexpected status from the remote service."""
    kind = ErrorKind.API_FAILURE

    def __init__(self, operation: str, cause: object = None, status: Optional[int] = None):
        self.operation = operation
        self.status = status
        message = f"github {operation} failed"
        if status is not None:
            message += f" (status {status})"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class UserCancelledError(SocleError):
    """The user interrupted an interactive prompt or the cancel token was set."""
    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "operation cancelled"):
        super().__init__(message)


class PersistenceDriftError(SocleError):
    """A remote mutation succeeded but recording it locally failed.

    The remote object exists but nothing locally points at it, so a retry
    may create a duplicate. Always surfaced, never swallowed.
    """
    kind = ErrorKind.PERSISTENCE_DRIFT

    def __init__(self, branch: str, key: str, value: int, cause: object = None):
        self.branch = branch
        self.key = key
        self.value = value
        message = f"failed to record {key}={value} for branch '{branch}'"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class StackTrackingError(SocleError):
    """Stack metadata or working tree is in a state the operation cannot use."""
    kind = ErrorKind.INVALID_STATE
