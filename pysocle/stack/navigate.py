"""Moving between the branches of a stack: up, down, top and bottom."""

import logging
from enum import Enum
from typing import Iterable, List, Optional

from ..config.store import ConfigStore
from ..git import checkout_branch
from ..prompt import PromptInterface
from ..typing import GitCommandFailedError, GitInterface, StackTrackingError
from . import ChildMap, MAX_STACK_DEPTH, derive_child_map, find_descendants, get_current_stack_info

logger = logging.getLogger(__name__)


class Direction(Enum):
    UP = "up"
    DOWN = "down"
    TOP = "top"
    BOTTOM = "bottom"


def _stack_option(child: str, child_map: ChildMap, direction: Direction) -> str:
    count = 1 + len(find_descendants(child, child_map))
    if direction is Direction.TOP:
        return f"{child} (top of stack with {count} branches)"
    return f"{child} (stack with {count} branches)"


def _pick_child(prompt: Optional[PromptInterface], branch: str, children: List[str],
                child_map: ChildMap, direction: Direction) -> str:
    if len(children) == 1:
        return children[0]
    if prompt is None:
        raise StackTrackingError(
            f"'{branch}' has {len(children)} child branches ({', '.join(children)}); "
            f"check one out directly")
    labels = [_stack_option(child, child_map, direction) for child in children]
    if direction is Direction.TOP:
        message = f"Multiple stacks available from '{branch}'. Select a stack to go to the top of:"
    else:
        message = f"Multiple stacks available from '{branch}'. Select a stack:"
    chosen = prompt.choose(message, labels)
    return children[labels.index(chosen)]


def _top_of(prompt: Optional[PromptInterface], branch: str, child_map: ChildMap) -> str:
    for _ in range(MAX_STACK_DEPTH):
        children = child_map.get(branch, [])
        if not children:
            return branch
        branch = _pick_child(prompt, branch, children, child_map, Direction.TOP)
    raise StackTrackingError(
        f"stack above '{branch}' is deeper than {MAX_STACK_DEPTH} branches; parent pointers may form a cycle")


def navigation_target(git_cmd: GitInterface, store: ConfigStore, base_branches: Iterable[str],
                      direction: Direction, prompt: Optional[PromptInterface] = None) -> Optional[str]:
    """Work out which branch a move lands on, or None when already there.

    Where the stack forks the prompt picks the way; without one a fork is
    an error.
    """
    info = get_current_stack_info(git_cmd, store, base_branches)
    current = info.current_branch
    child_map = derive_child_map(store.get_all_parents())
    on_base = len(info.stack) <= 1

    if direction is Direction.DOWN:
        if on_base:
            logger.info(f"Already on the base branch '{current}'.")
            return None
        return info.stack[-2]

    if direction is Direction.BOTTOM and not on_base:
        if len(info.stack) == 2:
            logger.info(f"Already on the bottom branch: '{current}'")
            return None
        return info.stack[1]

    children = child_map.get(current, [])
    if not children:
        if on_base:
            logger.info(f"No stacks found starting from base branch '{current}'.")
        else:
            logger.info(f"Already on the top branch: '{current}'.")
        return None

    if direction is Direction.TOP:
        return _top_of(prompt, current, child_map)
    # UP from anywhere, or BOTTOM from the base: one step onto a child
    return _pick_child(prompt, current, children, child_map, direction)


def navigate(git_cmd: GitInterface, store: ConfigStore, base_branches: Iterable[str],
             direction: Direction, prompt: Optional[PromptInterface] = None) -> Optional[str]:
    """Check out the branch a move lands on. Returns it, or None if nothing moved."""
    target = navigation_target(git_cmd, store, base_branches, direction, prompt)
    if target is None:
        return None
    logger.info(f"Checking out '{target}'")
    try:
        checkout_branch(git_cmd, target)
    except GitCommandFailedError as e:
        if "commit your changes or stash them" in e.stderr:
            raise StackTrackingError(
                f"cannot checkout '{target}': uncommitted changes would be overwritten; "
                f"commit or stash them first") from e
        raise
    return target
