"""Tracking branches in a stack: track, untrack and create."""

import logging
from typing import Iterable, Optional

from ..config.store import ConfigStore
from ..git import (
    branch_exists, checkout_branch, commit_changes, create_branch as git_create_branch,
    delete_branch, get_current_branch, get_current_commit, has_staged_changes,
    has_uncommitted_changes, is_valid_branch_name, stage_all_changes,
)
from ..typing import ConfigNotFoundError, GitInterface, SocleError, StackTrackingError
from . import StackInfo, children_of, derive_child_map, get_current_stack_info

logger = logging.getLogger(__name__)


def track_branch(git_cmd: GitInterface, store: ConfigStore, branch: str, parent: str,
                 base_branches: Iterable[str], default_base: str = "main") -> str:
    """Record parent (and inherited base) for an untracked branch.

    Returns the base branch the new edge is rooted on.
    """
    bases = set(base_branches)
    if branch in bases:
        raise StackTrackingError(f"'{branch}' is a base branch and cannot be tracked")
    if branch == parent:
        raise StackTrackingError("a branch cannot be its own parent")
    if not branch_exists(git_cmd, parent):
        raise StackTrackingError(f"parent branch '{parent}' does not exist")

    try:
        existing_parent = store.get_parent(branch)
        existing_base = store.get_base(branch)
    except ConfigNotFoundError:
        pass
    else:
        logger.info(f"'{branch}' is already tracked (parent: {existing_parent}, base: {existing_base})")
        return existing_base

    if parent in bases:
        base = parent
    else:
        try:
            base = store.get_base(parent)
        except ConfigNotFoundError:
            logger.warning(f"Parent '{parent}' is not tracked; assuming base '{default_base}'")
            base = default_base

    store.set_parent(branch, parent)
    try:
        store.set_base(branch, base)
    except SocleError:
        store.unset_parent(branch)
        raise

    logger.info(f"Tracking '{branch}' on top of '{parent}' (base: {base})")
    return base


def untrack_branch(store: ConfigStore, branch: str, base_branches: Iterable[str]) -> None:
    """Forget a branch's stack metadata. Branches with children are refused."""
    if branch in set(base_branches):
        raise StackTrackingError(f"'{branch}' is a base branch and is never tracked")

    try:
        store.get_parent(branch)
    except ConfigNotFoundError:
        raise StackTrackingError(f"'{branch}' is not tracked")

    children = children_of(branch, derive_child_map(store.get_all_parents()))
    if children:
        raise StackTrackingError(
            f"'{branch}' has tracked children ({', '.join(children)}); untrack those first")

    store.unset_parent(branch)
    store.unset_base(branch)
    logger.info(f"Stopped tracking '{branch}'")


def create_branch(git_cmd: GitInterface, store: ConfigStore, name: str,
                  base_branches: Iterable[str], message: Optional[str] = None) -> StackInfo:
    """Create a branch on top of the current one and track it.

    Uncommitted changes are staged and committed on the new branch when a
    message is given. On any failure after the branch exists, the parent is
    checked out again and the new branch is deleted.
    """
    bases = set(base_branches)
    parent = get_current_branch(git_cmd)
    parent_commit = get_current_commit(git_cmd)

    if parent in bases:
        base = parent
    else:
        try:
            store.get_parent(parent)
            base = store.get_base(parent)
        except ConfigNotFoundError:
            raise StackTrackingError(
                f"current branch '{parent}' is not tracked and is not a base branch; run 'socle track' on it first")

        # Only trunks may fan out
        existing = children_of(parent, derive_child_map(store.get_all_parents()))
        if existing:
            raise StackTrackingError(
                f"'{parent}' already has child branch(es): {', '.join(existing)}; "
                f"only base branches can have multiple children")

    if not is_valid_branch_name(git_cmd, name):
        raise StackTrackingError(f"invalid branch name '{name}'")
    if branch_exists(git_cmd, name):
        raise StackTrackingError(f"branch '{name}' already exists")

    dirty = has_uncommitted_changes(git_cmd)
    if dirty and not message:
        logger.info("Uncommitted changes will stay in the working tree (no commit message given)")

    git_create_branch(git_cmd, name, parent_commit)
    try:
        checkout_branch(git_cmd, name)
        if dirty and message:
            stage_all_changes(git_cmd)
            if has_staged_changes(git_cmd):
                commit_changes(git_cmd, message)
            else:
                logger.info("No changes were staged, skipping commit")
        store.set_parent(name, parent)
        try:
            store.set_base(name, base)
        except SocleError:
            store.unset_parent(name)
            raise
    except SocleError:
        logger.error(f"Cleaning up branch '{name}' after failure")
        checkout_branch(git_cmd, parent)
        delete_branch(git_cmd, name)
        raise

    logger.info(f"Created and tracked '{name}' on top of '{parent}'")
    return get_current_stack_info(git_cmd, store, bases)
