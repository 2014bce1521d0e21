"""Restack detection and cascading rebases.

A branch needs restacking when its parent's tip is no longer the merge
base of the two. Rebases are attempted, never resolved: when git stops on
conflicts the working tree is left paused and RebaseConflictError tells the
caller to hand control back to the user.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from ..config.models import SocleConfig
from ..config.store import ConfigStore
from ..git import (
    checkout_branch, fetch_and_fast_forward, get_branch_commit, get_current_branch,
    get_git_dir, get_merge_base, has_uncommitted_changes, is_rerere_enabled,
    push_branch, remote_exists,
)
from ..stack import get_current_stack_info, load_full_stack_for_submit
from ..typing import GitCommandFailedError, GitInterface, RebaseConflictError, StackTrackingError

logger = logging.getLogger(__name__)

REBASE_MARKERS = ("rebase-merge", "rebase-apply")


class RebaseState(Enum):
    CLEAN = "clean"
    PAUSED_ON_CONFLICT = "paused_on_conflict"


def needs_restack(git_cmd: GitInterface, parent: str, child: str) -> bool:
    """Check whether child must be rebased onto parent's current tip.

    Failures of either lookup propagate; not knowing is never "no".
    """
    parent_tip = get_branch_commit(git_cmd, parent)
    merge_base = get_merge_base(git_cmd, parent, child)
    logger.debug(f"needs_restack {parent} -> {child}: tip={parent_tip[:8]} merge-base={merge_base[:8]}")
    return merge_base != parent_tip


def rebase_state(git_cmd: GitInterface) -> RebaseState:
    """Observe whether git has a rebase paused in this repository."""
    git_dir = get_git_dir(git_cmd)
    for marker in REBASE_MARKERS:
        if (git_dir / marker).exists():
            return RebaseState.PAUSED_ON_CONFLICT
    return RebaseState.CLEAN


def is_rebase_in_progress(git_cmd: GitInterface) -> bool:
    return rebase_state(git_cmd) is RebaseState.PAUSED_ON_CONFLICT


def _run_rebase(git_cmd: GitInterface, target: str, *extra: str) -> RebaseState:
    branch = get_current_branch(git_cmd)
    try:
        git_cmd.run_args("rebase", target, *extra)
    except GitCommandFailedError as e:
        if is_rebase_in_progress(git_cmd):
            raise RebaseConflictError(branch, target, e.stderr) from e
        raise
    return RebaseState.CLEAN


def rebase_current_branch_onto(git_cmd: GitInterface, target: str) -> RebaseState:
    """Rebase the checked-out branch onto a commit or ref."""
    return _run_rebase(git_cmd, target)


def rebase_update_refs(git_cmd: GitInterface, base: str) -> RebaseState:
    """Rebase the checked-out branch and move any branch refs inside the range along."""
    return _run_rebase(git_cmd, base, "--update-refs")


def conflict_instructions(git_cmd: GitInterface) -> List[str]:
    """Lines telling the user how to finish a paused rebase."""
    lines = [
        "Rebase paused due to conflicts. Resolve them manually:",
        "  1. Edit conflicted files (see 'git status').",
        "  2. Run 'git add <resolved-files...>'.",
        "  3. Run 'git rebase --continue'.",
        "  (To cancel, run 'git rebase --abort')",
        "Once the rebase is complete, run 'socle restack' again.",
    ]
    try:
        rerere = is_rerere_enabled(git_cmd)
    except GitCommandFailedError as e:
        logger.warning(f"Could not check git rerere config: {e}")
        rerere = True
    if not rerere:
        lines.append("Tip: enable 'git rerere' ('git config --global rerere.enabled true') "
                     "so git remembers how you resolved these conflicts.")
    return lines


@dataclass
class BranchStatus:
    """Restack status of one branch, for display."""
    branch: str
    parent: str
    needs_restack: bool
    pr_number: int = 0


def _parent_pairs(stack: List[str], edges: Optional[Mapping[str, str]]) -> List[Tuple[str, str]]:
    # Without edges the stack is a plain chain
    if not edges:
        return list(zip(stack, stack[1:]))
    return [(edges[branch], branch) for branch in stack[1:]]


def stack_status(git_cmd: GitInterface, store: ConfigStore, stack: List[str],
                 edges: Optional[Mapping[str, str]] = None) -> List[BranchStatus]:
    """Restack status for each branch above the base.

    A branch whose ancestor needs restacking needs it too, even when its
    own merge base still matches its parent. Pass edges when the stack
    fans out above the current branch.
    """
    statuses: List[BranchStatus] = []
    stale_by_branch: Dict[str, bool] = {}
    for parent, branch in _parent_pairs(stack, edges):
        stale = needs_restack(git_cmd, parent, branch) or stale_by_branch.get(parent, False)
        stale_by_branch[branch] = stale
        statuses.append(BranchStatus(branch, parent, stale, store.get_pr_number(branch)))
    return statuses


def is_linear(stack: List[str], edges: Mapping[str, str]) -> bool:
    """True when every branch's parent is the branch listed just before it."""
    return all(edges.get(branch) == parent for parent, branch in zip(stack, stack[1:]))


@dataclass
class RestackResult:
    """What a restack run did."""
    paused: bool = False
    rebased: List[str] = field(default_factory=list)
    up_to_date: List[str] = field(default_factory=list)
    pushed: List[str] = field(default_factory=list)
    push_failures: List[str] = field(default_factory=list)


def _rebase_or_pause(git_cmd: GitInterface, result: 'RestackResult',
                     rebase: Callable[[GitInterface, str], RebaseState], target: str) -> None:
    try:
        rebase(git_cmd, target)
    except RebaseConflictError:
        result.paused = True
        raise


def restack_stack(git_cmd: GitInterface, store: ConfigStore, config: SocleConfig,
                  fetch: bool = True, push: Optional[bool] = False,
                  confirm: Optional[Callable[[str], bool]] = None,
                  update_refs: bool = False) -> RestackResult:
    """Rebase every branch of the full stack onto its parent, base first.

    The full stack is the chain below the current branch plus every
    descendant above it. With update_refs the tip is rebased onto the base
    in one go and git moves the intermediate branches along; a stack that
    fans out has no single tip and falls back to one rebase per branch.
    push=None asks `confirm` before force-pushing the rebased branches.
    A conflict stops the cascade with RebaseConflictError and leaves the
    repository paused on the conflicting branch.
    """
    result = RestackResult()
    if is_rebase_in_progress(git_cmd):
        logger.warning("A git rebase is already in progress; finish it with 'git rebase --continue' or --abort")
        result.paused = True
        return result
    if has_uncommitted_changes(git_cmd):
        raise StackTrackingError("working tree has uncommitted changes; commit or stash them first")

    info = get_current_stack_info(git_cmd, store, config.repo.base_branches)
    if len(info.stack) <= 1:
        logger.info("Current branch is a base branch. Nothing to restack.")
        return result

    full_stack, edges = load_full_stack_for_submit(store, info.stack)
    original_branch = info.current_branch
    remote = config.repo.github_remote
    try:
        if fetch:
            if remote_exists(git_cmd, remote):
                fetch_and_fast_forward(git_cmd, remote, info.base_branch)
            else:
                logger.info(f"Remote '{remote}' not found, skipping fetch")

        if update_refs and not is_linear(full_stack, edges):
            logger.warning("Stack fans out above the current branch; rebasing branch by branch "
                           "instead of with --update-refs")
            update_refs = False

        if update_refs:
            # One rebase of the tip carries every branch pointer inside the range
            tip = full_stack[-1]
            logger.info(f"Rebasing '{tip}' onto '{info.base_branch}' with --update-refs")
            checkout_branch(git_cmd, tip)
            _rebase_or_pause(git_cmd, result, rebase_update_refs, info.base_branch)
            result.rebased.extend(full_stack[1:])
        else:
            # Discovery order puts every parent before its children
            for branch in full_stack[1:]:
                parent = edges[branch]
                if not needs_restack(git_cmd, parent, branch):
                    logger.info(f"'{branch}' is up to date with '{parent}'")
                    result.up_to_date.append(branch)
                    continue
                parent_tip = get_branch_commit(git_cmd, parent)
                logger.info(f"Rebasing '{branch}' onto '{parent}' ({parent_tip[:8]})")
                checkout_branch(git_cmd, branch)
                _rebase_or_pause(git_cmd, result, rebase_current_branch_onto, parent_tip)
                result.rebased.append(branch)
    finally:
        if not result.paused:
            checkout_branch(git_cmd, original_branch)

    if result.rebased:
        should_push = push
        if should_push is None:
            should_push = bool(confirm and confirm(
                f"Force push {len(result.rebased)} rebased branch(es) to '{remote}'?"))
        if should_push:
            for branch in result.rebased:
                try:
                    push_branch(git_cmd, remote, branch, force_with_lease=True)
                    result.pushed.append(branch)
                except GitCommandFailedError as e:
                    logger.error(f"Failed to push '{branch}': {e}")
                    result.push_failures.append(branch)

    return result
