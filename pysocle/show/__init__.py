"""Stack status together with the live state of each pull request."""

import logging
from enum import Enum
from typing import Dict, List, Optional

from ..config.store import ConfigStore
from ..github import GitHubClient
from ..pretty import format_stack
from ..restack import stack_status
from ..stack import get_current_stack_info, load_full_stack_for_submit
from ..typing import GitInterface, RemoteAPIError, RemoteNotFoundError, StackTrackingError

logger = logging.getLogger(__name__)


class PRStatus(Enum):
    NOT_SUBMITTED = "Not Submitted"
    CONFIG_ERROR = "Config Err"
    LOGIN_NEEDED = "Login/Setup Needed"
    API_ERROR = "API Error"
    NOT_FOUND = "Not Found"
    OPEN = "Open"
    DRAFT = "Draft"
    MERGED = "Merged"
    CLOSED = "Closed"


# Statuses that describe the setup rather than a particular pull request
_UNNUMBERED = {PRStatus.NOT_SUBMITTED, PRStatus.CONFIG_ERROR, PRStatus.LOGIN_NEEDED}


def pull_request_status(github: GitHubClient, number: int) -> PRStatus:
    """Fetch a pull request and classify it. Merged wins over closed, closed over draft."""
    try:
        pr = github.get_pull_request(number)
    except RemoteNotFoundError:
        return PRStatus.NOT_FOUND
    except RemoteAPIError as e:
        logger.warning(f"Could not fetch PR #{number}: {e}")
        return PRStatus.API_ERROR
    except StackTrackingError as e:
        logger.warning(f"{e}")
        return PRStatus.CONFIG_ERROR
    if pr.merged:
        return PRStatus.MERGED
    if pr.state == "closed":
        return PRStatus.CLOSED
    if pr.draft:
        return PRStatus.DRAFT
    return PRStatus.OPEN


def pr_status_text(number: int, status: PRStatus) -> str:
    if status in _UNNUMBERED:
        return f"(PR: {status.value})"
    return f"(PR #{number}: {status.value})"


def show_stack(git_cmd: GitInterface, store: ConfigStore, base_branches: List[str],
               github: Optional[GitHubClient]) -> str:
    """Render the full stack with restack state and remote PR state.

    Pass github=None when no client could be built; branches with a PR
    then read "Login/Setup Needed" instead of failing the whole report.
    """
    info = get_current_stack_info(git_cmd, store, base_branches)
    lines = [f"Current branch: {info.current_branch} (Stack base: {info.base_branch})", "",
             "Current Stack Status:"]
    if len(info.stack) <= 1:
        lines.append(f"  {info.base_branch} (base) *")
        return "\n".join(lines)

    full_stack, edges = load_full_stack_for_submit(store, info.stack)
    statuses = stack_status(git_cmd, store, full_stack, edges)
    pr_texts: Dict[str, str] = {}
    for status in statuses:
        if not status.pr_number:
            pr_status = PRStatus.NOT_SUBMITTED
        elif github is None:
            pr_status = PRStatus.LOGIN_NEEDED
        else:
            pr_status = pull_request_status(github, status.pr_number)
        pr_texts[status.branch] = pr_status_text(status.pr_number, pr_status)

    lines.append(format_stack(info.base_branch, statuses, info.current_branch, pr_texts))
    return "\n".join(lines)
