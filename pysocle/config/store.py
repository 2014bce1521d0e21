"""Repository-local persisted state kept in `git config --local`.

Every piece of state pysocle remembers between runs lives here:

    branch.<name>.socle-parent   parent branch in the stack
    branch.<name>.socle-base     trunk the stack is rooted on
    branch.<name>.pr-number      pull request number on the remote
    branch.<name>.comment-id     id of the stack overview comment

Absence of a key is a normal state and raises ConfigNotFoundError;
any other git failure propagates as GitCommandFailedError.
"""

import re
import logging
from typing import Dict

from ..typing import ConfigNotFoundError, GitCommandFailedError, GitInterface
from ..util import parse_int

logger = logging.getLogger(__name__)

PARENT_KEY = "socle-parent"
BASE_KEY = "socle-base"
PR_NUMBER_KEY = "pr-number"
COMMENT_ID_KEY = "comment-id"

_PARENT_KEY_REGEX = re.compile(r'^branch\.(.+)\.' + re.escape(PARENT_KEY) + r'$')

# git config exit codes
_EXIT_KEY_NOT_FOUND = 1
_EXIT_NOTHING_TO_UNSET = 5


def branch_key(branch: str, name: str) -> str:
    return f"branch.{branch}.{name}"


class ConfigStore:
    """Key/value access to the repository's local git config."""

    def __init__(self, git_cmd: GitInterface):
        self.git_cmd = git_cmd

    def get(self, key: str) -> str:
        try:
            return self.git_cmd.run_args("config", "--local", "--get", key).strip()
        except GitCommandFailedError as e:
            if e.status == _EXIT_KEY_NOT_FOUND:
                raise ConfigNotFoundError(key) from e
            raise

    def set(self, key: str, value: str) -> None:
        self.git_cmd.run_args("config", "--local", key, value)

    def unset(self, key: str) -> None:
        """Remove a key. Removing an absent key is not an error."""
        try:
            self.git_cmd.run_args("config", "--local", "--unset", key)
        except GitCommandFailedError as e:
            if e.status == _EXIT_NOTHING_TO_UNSET:
                logger.debug(f"Config key {key} already absent")
                return
            raise

    def get_all_parents(self) -> Dict[str, str]:
        """Get every child -> parent edge, in config file order."""
        pattern = r'^branch\..+\.' + re.escape(PARENT_KEY) + r'$'
        try:
            output = self.git_cmd.run_args("config", "--local", "--get-regexp", pattern)
        except GitCommandFailedError as e:
            if e.status == _EXIT_KEY_NOT_FOUND:
                return {}
            raise

        edges: Dict[str, str] = {}
        for line in output.splitlines():
            parts = line.strip().split(None, 1)
            if len(parts) != 2:
                continue
            match = _PARENT_KEY_REGEX.match(parts[0])
            if match:
                edges[match.group(1)] = parts[1].strip()
        return edges

    # Stack edges

    def get_parent(self, branch: str) -> str:
        return self.get(branch_key(branch, PARENT_KEY))

    def set_parent(self, branch: str, parent: str) -> None:
        self.set(branch_key(branch, PARENT_KEY), parent)

    def unset_parent(self, branch: str) -> None:
        self.unset(branch_key(branch, PARENT_KEY))

    def get_base(self, branch: str) -> str:
        return self.get(branch_key(branch, BASE_KEY))

    def set_base(self, branch: str, base: str) -> None:
        self.set(branch_key(branch, BASE_KEY), base)

    def unset_base(self, branch: str) -> None:
        self.unset(branch_key(branch, BASE_KEY))

    # Remote links

    def _get_int(self, branch: str, name: str) -> int:
        key = branch_key(branch, name)
        try:
            raw = self.get(key)
        except ConfigNotFoundError:
            return 0
        value = parse_int(raw)
        if value is None:
            if raw:
                logger.warning(f"Ignoring unparsable value '{raw}' for {key}")
            return 0
        return value

    def get_pr_number(self, branch: str) -> int:
        """Get the stored PR number, 0 when none is recorded."""
        return self._get_int(branch, PR_NUMBER_KEY)

    def set_pr_number(self, branch: str, number: int) -> None:
        self.set(branch_key(branch, PR_NUMBER_KEY), str(number))

    def unset_pr_number(self, branch: str) -> None:
        self.unset(branch_key(branch, PR_NUMBER_KEY))

    def get_comment_id(self, branch: str) -> int:
        """Get the stored stack comment id, 0 when none is recorded."""
        return self._get_int(branch, COMMENT_ID_KEY)

    def set_comment_id(self, branch: str, comment_id: int) -> None:
        self.set(branch_key(branch, COMMENT_ID_KEY), str(comment_id))

    def unset_comment_id(self, branch: str) -> None:
        self.unset(branch_key(branch, COMMENT_ID_KEY))
