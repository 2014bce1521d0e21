"""Submitting a stack: one pull request per branch plus a stack overview comment.

Local bookkeeping (PR number, comment id) lives in git config; GitHub is the
source of truth. Each reconciler reads the stored link, checks it against the
remote, repairs whichever side drifted and only then mutates. A remote
mutation whose result cannot be recorded locally raises PersistenceDriftError.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from ..config.models import SocleConfig
from ..config.store import COMMENT_ID_KEY, PR_NUMBER_KEY, ConfigStore
from ..git import (
    checkout_branch, find_pr_template, get_branch_commit, get_first_commit_subject,
    has_diff, push_branch,
)
from ..github import GitHubClient
from ..github.types import PRInfo
from ..prompt import PromptInterface
from ..restack import is_rebase_in_progress, needs_restack, rebase_current_branch_onto
from ..stack import get_current_stack_info, load_full_stack_for_submit
from ..typing import (
    GitCommandFailedError, GitInterface, PersistenceDriftError, RemoteNotFoundError,
    SocleError, UserCancelledError,
)

logger = logging.getLogger(__name__)


@dataclass
class SubmitOptions:
    """How to submit. title/body override the prompt when set.

    With pretend GitHub is only read and no links are recorded.
    """
    draft: bool = False
    push: bool = True
    force: bool = False
    restack: bool = False
    non_interactive: bool = False
    title: Optional[str] = None
    body: Optional[str] = None
    pretend: bool = False


def _persist_pr_number(store: ConfigStore, branch: str, number: int) -> None:
    try:
        store.set_pr_number(branch, number)
    except SocleError as e:
        logger.critical(f"PR #{number} exists on GitHub but could not be recorded for '{branch}'. "
                        f"Run 'git config branch.{branch}.{PR_NUMBER_KEY} {number}' before submitting again "
                        f"or a duplicate PR may be created.")
        raise PersistenceDriftError(branch, PR_NUMBER_KEY, number, e) from e


def _persist_comment_id(store: ConfigStore, branch: str, comment_id: int) -> None:
    try:
        store.set_comment_id(branch, comment_id)
    except SocleError as e:
        logger.critical(f"Stack comment {comment_id} exists on GitHub but could not be recorded for '{branch}'")
        raise PersistenceDriftError(branch, COMMENT_ID_KEY, comment_id, e) from e


def default_title(git_cmd: GitInterface, branch: str, parent: str) -> str:
    """First commit subject unique to branch, else the branch name spelled out."""
    try:
        subject = get_first_commit_subject(git_cmd, parent, branch)
    except GitCommandFailedError as e:
        logger.debug(f"Could not read first commit subject of '{branch}': {e}")
        subject = ""
    return subject or branch.replace("-", " ")


def pr_title_and_body(git_cmd: GitInterface, prompt: PromptInterface, branch: str, parent: str,
                      options: SubmitOptions) -> Tuple[str, str]:
    title = options.title
    if title is None:
        title = default_title(git_cmd, branch, parent)
        if not options.non_interactive:
            title = prompt.ask_title(branch, title)

    body = options.body
    if body is None:
        body = find_pr_template(git_cmd) or ""
        if not options.non_interactive:
            body = prompt.ask_body(branch, body)

    if not title.strip():
        raise UserCancelledError("empty PR title")
    return title, body


def submit_branch(store: ConfigStore, git_cmd: GitInterface, github: GitHubClient,
                  prompt: PromptInterface, branch: str, parent: str,
                  options: SubmitOptions) -> Optional[PRInfo]:
    """Make sure branch has an open PR against parent.

    Returns the PR, or None when the branch has no changes relative to
    parent and therefore nothing to open a PR for. In pretend mode a PR
    that would be created comes back with number 0.
    """
    try:
        pr_number = store.get_pr_number(branch)
    except SocleError as e:
        logger.warning(f"Could not read stored PR number for '{branch}', treating as none: {e}")
        pr_number = 0

    if pr_number:
        pr: Optional[PRInfo]
        try:
            pr = github.get_pull_request(pr_number)
        except RemoteNotFoundError:
            logger.warning(f"PR #{pr_number} for '{branch}' no longer exists; a new one will be created")
            if not options.pretend:
                try:
                    store.unset_pr_number(branch)
                except SocleError as e:
                    logger.critical(f"Could not clear stale PR number {pr_number} for '{branch}': {e}")
            pr = None

        if pr is not None:
            if pr.state != "open":
                logger.warning(f"PR #{pr.number} for '{branch}' is {pr.state}")
            if pr.base_ref != parent:
                if options.pretend:
                    logger.info(f"[PRETEND] Would retarget PR #{pr.number} from '{pr.base_ref}' to '{parent}'")
                    return pr
                logger.info(f"PR #{pr.number} targets '{pr.base_ref}', retargeting to '{parent}'")
                pr = github.update_pull_request_base(pr.number, parent)
            if not options.pretend:
                _persist_pr_number(store, branch, pr.number)
            return pr

    try:
        if not has_diff(git_cmd, parent, branch):
            logger.info(f"'{branch}' has no changes relative to '{parent}', skipping PR")
            return None
    except GitCommandFailedError as e:
        logger.error(f"Could not compare '{branch}' with '{parent}', skipping PR: {e}")
        return None

    title, body = pr_title_and_body(git_cmd, prompt, branch, parent, options)
    if options.pretend:
        logger.info(f"[PRETEND] Would create PR for '{branch}' -> '{parent}': {title}")
        return PRInfo(number=0, title=title, base_ref=parent, head_ref=branch, draft=options.draft)
    pr = github.create_pull_request(head=branch, base=parent, title=title, body=body, draft=options.draft)
    logger.info(f"Created PR #{pr.number} for '{branch}'")
    _persist_pr_number(store, branch, pr.number)
    return pr


def render_stack_comment_body(stack: List[str], current_branch: str, marker: str,
                              pr_numbers: Mapping[str, int]) -> str:
    """Markdown overview of the stack, tip first, base last, marker at the end."""
    lines = ["**Stack Overview:**", ""]
    for branch in reversed(stack[1:]):
        indicator = " 👈" if branch == current_branch else ""
        number = pr_numbers.get(branch)
        if number:
            lines.append(f"* **#{number}**{indicator}")
        else:
            lines.append(f"* `{branch}` (Coming soon 🤞){indicator}")
    lines.append(f"* `{stack[0]}` (base)")
    lines.append("")
    lines.append(marker)
    return "\n".join(lines) + "\n"


def ensure_stack_comment(store: ConfigStore, github: GitHubClient, branch: str,
                         pr_number: int, body: str, marker: str) -> List[str]:
    """Keep exactly one marker-tagged comment on the PR, and its id recorded.

    The marker search decides which comment is live; the stored id is only
    a hint. Returns warnings describing corrected inconsistencies, empty
    when everything already matched.
    """
    warnings: List[str] = []
    try:
        stored_id = store.get_comment_id(branch)
    except SocleError as e:
        warnings.append(f"could not read stored comment id for '{branch}': {e}")
        stored_id = 0

    found_id = github.find_comment_with_marker(pr_number, marker)

    if found_id:
        if found_id != stored_id:
            if stored_id:
                warnings.append(f"stored comment id {stored_id} for '{branch}' was stale; now tracking {found_id}")
            _persist_comment_id(store, branch, found_id)
        github.update_comment(pr_number, found_id, body)
    else:
        if stored_id:
            try:
                store.unset_comment_id(branch)
                warnings.append(f"stored comment id {stored_id} for '{branch}' no longer exists; cleared")
            except SocleError as e:
                warnings.append(f"could not clear stale comment id {stored_id} for '{branch}': {e}")
        comment = github.create_comment(pr_number, body)
        _persist_comment_id(store, branch, comment.id)

    for warning in warnings:
        logger.warning(warning)
    return warnings


@dataclass
class SubmitResult:
    """Outcome of submitting a stack."""
    stack: List[str] = field(default_factory=list)
    submitted: Dict[str, PRInfo] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    warnings: Dict[str, List[str]] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def pr_numbers(self) -> Dict[str, int]:
        return {branch: pr.number for branch, pr in self.submitted.items() if pr.number}


class StackSubmitter:
    """Submit every branch of the current stack, base to tip.

    Branches in sibling sub-trees come in traversal order, not a
    topological order; each branch only needs its own parent pushed first,
    which traversal order does guarantee.
    """

    def __init__(self, config: SocleConfig, git_cmd: GitInterface, store: ConfigStore,
                 github: GitHubClient, prompt: PromptInterface):
        self.config = config
        self.git_cmd = git_cmd
        self.store = store
        self.github = github
        self.prompt = prompt

    def submit(self, options: SubmitOptions) -> SubmitResult:
        result = SubmitResult()
        info = get_current_stack_info(self.git_cmd, self.store, self.config.repo.base_branches)
        full_stack, edges = load_full_stack_for_submit(self.store, info.stack)
        result.stack = full_stack
        if len(full_stack) <= 1:
            logger.info(f"'{info.current_branch}' is a base branch. Nothing to submit.")
            return result

        logger.info(f"Submitting stack: {' -> '.join(full_stack)}")
        try:
            for branch in full_stack[1:]:
                self._submit_one(branch, edges.get(branch), options, result)
        finally:
            if options.restack and not is_rebase_in_progress(self.git_cmd):
                checkout_branch(self.git_cmd, info.current_branch)

        self._update_stack_comments(full_stack, result, options)
        return result

    def _submit_one(self, branch: str, parent: Optional[str], options: SubmitOptions,
                    result: SubmitResult) -> None:
        if not parent:
            result.errors[branch] = "no parent recorded"
            logger.error(f"'{branch}' has no parent recorded, skipping")
            return

        if options.restack and needs_restack(self.git_cmd, parent, branch):
            target = get_branch_commit(self.git_cmd, parent)
            logger.info(f"Restacking '{branch}' onto '{parent}'")
            checkout_branch(self.git_cmd, branch)
            rebase_current_branch_onto(self.git_cmd, target)

        if options.push and options.pretend:
            logger.info(f"[PRETEND] Would push '{branch}' to '{self.config.repo.github_remote}'")
        elif options.push:
            push_branch(self.git_cmd, self.config.repo.github_remote, branch,
                        force=options.force, force_with_lease=not options.force)

        pr = submit_branch(self.store, self.git_cmd, self.github, self.prompt, branch, parent, options)
        if pr is None:
            result.skipped.append(branch)
        else:
            result.submitted[branch] = pr

    def _update_stack_comments(self, full_stack: List[str], result: SubmitResult,
                               options: SubmitOptions) -> None:
        marker = self.config.repo.stack_comment_marker
        pr_numbers = result.pr_numbers
        for branch in full_stack[1:]:
            number = pr_numbers.get(branch)
            if not number:
                continue
            if options.pretend:
                logger.info(f"[PRETEND] Would update stack comment on #{number} ({branch})")
                continue
            body = render_stack_comment_body(full_stack, branch, marker, pr_numbers)
            try:
                warnings = ensure_stack_comment(self.store, self.github, branch, number, body, marker)
            except (UserCancelledError, PersistenceDriftError):
                raise
            except SocleError as e:
                logger.error(f"Failed to update stack comment on #{number} ({branch}): {e}")
                result.errors[branch] = str(e)
                continue
            if warnings:
                result.warnings[branch] = warnings
