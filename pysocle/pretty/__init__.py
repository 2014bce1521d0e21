"""Pretty formatting utilities for CLI output."""

import shutil
import sys
from typing import IO, List, Mapping, Optional

from ..restack import BranchStatus


def get_term_width() -> int:
    """Get terminal width, default to 80 if can't detect."""
    try:
        return shutil.get_terminal_size().columns
    except (AttributeError, ValueError, OSError):
        return 80


def header(text: str, use_emoji: bool = True) -> str:
    """Create a boxed header with optional emoji."""
    width = max(get_term_width(), len(text) + 8)
    h_line = "─" * (width - 2)
    v_line = "│"
    emoji = "🥞 " if use_emoji else ""
    # The emoji renders two columns wide
    padding = width - len(text) - (4 if use_emoji else 0) - 3

    return "\n".join([
        f"┌{h_line}┐",
        f"{v_line} {emoji}{text}{' ' * max(padding, 0)}{v_line}",
        f"└{h_line}┘",
    ])


def format_stack(base: str, statuses: List[BranchStatus], current_branch: str,
                 pr_texts: Optional[Mapping[str, str]] = None) -> str:
    """Render stack status, base first, one line per branch.

    pr_texts replaces the locally recorded PR column for the branches it names.
    """
    marker = " *" if base == current_branch else ""
    lines = [f"  {base} (base){marker}"]
    for status in statuses:
        restack = "(Needs Restack)" if status.needs_restack else "(Up-to-date)"
        pr = f"(PR #{status.pr_number})" if status.pr_number else "(PR: Not Submitted)"
        if pr_texts and status.branch in pr_texts:
            pr = pr_texts[status.branch]
        marker = " *" if status.branch == current_branch else ""
        lines.append(f"  -> {status.branch} {restack} {pr}{marker}")
    return "\n".join(lines)


def print_header(text: str, use_emoji: bool = True, file: Optional[IO[str]] = None) -> None:
    """Print a header to file (default stdout)."""
    if file is None:
        file = sys.stdout
    print(header(text, use_emoji), file=file)
