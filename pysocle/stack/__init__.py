"""Stack topology: parent edges, child maps and descendant traversal."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Set, Tuple

from ..config.store import ConfigStore
from ..git import get_current_branch
from ..typing import ConfigNotFoundError, GitInterface, StackTrackingError

logger = logging.getLogger(__name__)

# Upper bound on parent hops when walking to the base; guards against cycles
MAX_STACK_DEPTH = 50

Edges = Dict[str, str]          # child -> parent
ChildMap = Dict[str, List[str]]  # parent -> children


@dataclass
class StackInfo:
    """The chain of branches from the base up to the current branch."""
    current_branch: str
    base_branch: str
    stack: List[str] = field(default_factory=list)  # base first


def derive_child_map(edges: Mapping[str, str]) -> ChildMap:
    """Group child -> parent edges by parent.

    Children keep the iteration order of `edges`. Callers should treat that
    order as incidental.
    """
    child_map: ChildMap = {}
    for child, parent in edges.items():
        child_map.setdefault(parent, []).append(child)
    return child_map


def find_descendants(start: str, child_map: Mapping[str, List[str]]) -> List[str]:
    """Find every branch reachable from start through child edges.

    Iterative DFS with an explicit frontier. A branch is emitted once, the
    first time it is discovered, even if corrupted config reaches it twice.
    The result is discovery order, not a topological order.
    """
    descendants: List[str] = []
    visited: Set[str] = {start}
    frontier: List[str] = [start]

    while frontier:
        node = frontier.pop()
        children = child_map.get(node, [])
        # Reverse so the first listed child is explored first
        for child in reversed(children):
            if child in visited:
                continue
            visited.add(child)
            descendants.append(child)
            frontier.append(child)

    return descendants


def children_of(branch: str, child_map: Mapping[str, List[str]]) -> List[str]:
    return list(child_map.get(branch, []))


def full_stack_for_submit(current_stack: List[str], edges: Edges) -> Tuple[List[str], Edges]:
    """Extend a base->current chain with every descendant of its tip.

    A chain of length <= 1 holds only the base and is returned unchanged so
    the caller can decide what an empty submit means.
    """
    if len(current_stack) <= 1:
        return list(current_stack), edges

    full_stack = list(current_stack)
    seen = set(full_stack)
    tip = current_stack[-1]
    for branch in find_descendants(tip, derive_child_map(edges)):
        if branch not in seen:
            seen.add(branch)
            full_stack.append(branch)

    logger.debug(f"Full stack for submit: {' -> '.join(full_stack)}")
    return full_stack, edges


def load_full_stack_for_submit(store: ConfigStore, current_stack: List[str]) -> Tuple[List[str], Edges]:
    """Read all parent edges from the store and extend the chain."""
    if len(current_stack) <= 1:
        return list(current_stack), {}
    return full_stack_for_submit(current_stack, store.get_all_parents())


def get_current_stack_info(git_cmd: GitInterface, store: ConfigStore,
                           base_branches: Iterable[str]) -> StackInfo:
    """Walk parent pointers from the checked-out branch down to its base."""
    current = get_current_branch(git_cmd)
    if current in set(base_branches):
        return StackInfo(current_branch=current, base_branch=current, stack=[current])

    try:
        base = store.get_base(current)
    except ConfigNotFoundError:
        raise StackTrackingError(
            f"branch '{current}' is not tracked; run 'socle track' first")

    chain = [current]
    branch = current
    for _ in range(MAX_STACK_DEPTH):
        if branch == base:
            break
        try:
            parent = store.get_parent(branch)
        except ConfigNotFoundError:
            raise StackTrackingError(
                f"stack is broken: '{branch}' has no parent recorded but has not reached base '{base}'")
        chain.append(parent)
        branch = parent
    else:
        raise StackTrackingError(
            f"stack for '{current}' is deeper than {MAX_STACK_DEPTH} branches; parent pointers may form a cycle")

    chain.reverse()
    return StackInfo(current_branch=current, base_branch=base, stack=chain)

