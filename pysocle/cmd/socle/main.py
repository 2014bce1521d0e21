"""CLI entry point."""

import os
import sys
import click
import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple
from click import Context

from ... import setup_logging
from ...config import Config, default_config
from ...config.config_parser import parse_config
from ...config.store import ConfigStore
from ...git import RealGit, get_current_branch, list_local_branches
from ...github import create_github_client
from ...github.counter import APICallCounter
from ...pretty import format_stack, print_header
from ...prompt import InteractivePrompt
from ...restack import conflict_instructions, restack_stack, stack_status
from ...show import show_stack
from ...stack import get_current_stack_info, load_full_stack_for_submit
from ...stack.navigate import Direction, navigate
from ...stack.lifecycle import create_branch, track_branch, untrack_branch
from ...submit import StackSubmitter, SubmitOptions
from ...typing import RebaseConflictError, SocleError, StackTrackingError, UserCancelledError

# Get module logger
logger = logging.getLogger(__name__)

class AliasedGroup(click.Group):
    """Command group with support for aliases."""

    def __init__(self, name: Optional[str] = None, commands: Optional[Dict[str, click.Command]] = None, **attrs: Any) -> None:
        """Initialize with aliases map."""
        super().__init__(name, commands, **attrs)
        self.aliases: Dict[str, str] = {}

    def get_command(self, ctx: Context, cmd_name: str) -> Optional[click.Command]:
        """Get a command by name, supporting aliases."""
        if cmd_name in self.aliases:
            cmd_name = self.aliases[cmd_name]
        return super().get_command(ctx, cmd_name)

@click.group(cls=AliasedGroup)
@click.pass_context
def cli(ctx: Context) -> None:
    """socle - stacked branches and pull requests on GitHub."""
    ctx.obj = {}

def setup_git(directory: Optional[str] = None, verbose: int = 0) -> Tuple[Config, RealGit, ConfigStore]:
    """Setup Git command, config and state store."""
    if directory:
        os.chdir(directory)

    git_cmd = RealGit(default_config())
    try:
        git_cmd.run_cmd("rev-parse --git-dir")
    except SocleError as e:
        logger.error(f"{e}")
        sys.exit(2)

    config = Config(parse_config(git_cmd))
    if verbose >= 1:
        config.user.log_git_commands = True
    git_cmd = RealGit(config)
    return config, git_cmd, ConfigStore(git_cmd)

def run_guarded(action: Callable[[], None], git_cmd: Optional[RealGit] = None) -> None:
    """Run a command body, turning pysocle errors into log lines and exit codes."""
    try:
        action()
    except UserCancelledError as e:
        logger.info(f"Cancelled: {e}")
    except RebaseConflictError as e:
        logger.error(f"{e}")
        if git_cmd is not None:
            for line in conflict_instructions(git_cmd):
                logger.error(line)
        sys.exit(1)
    except SocleError as e:
        logger.error(f"{e}")
        sys.exit(1)

@cli.command(name="track", help="Track the current branch on top of PARENT")
@click.argument('parent', required=False)
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if socle was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def track(parent: Optional[str], directory: Optional[str], verbose: int) -> None:
    """Track command."""
    setup_logging(verbose)
    config, git_cmd, store = setup_git(directory, verbose)

    def action() -> None:
        branch = get_current_branch(git_cmd)
        chosen = parent
        if not chosen:
            candidates = [b for b in list_local_branches(git_cmd) if b != branch]
            if not candidates:
                raise SocleError("no other local branches to use as parent")
            try:
                chosen = click.prompt(f"Parent branch for '{branch}'", type=click.Choice(candidates),
                                      default=config.repo.default_base if config.repo.default_base in candidates else None)
            except click.Abort:
                raise UserCancelledError("track cancelled")
        track_branch(git_cmd, store, branch, chosen, config.repo.base_branches, config.repo.default_base)

    run_guarded(action, git_cmd)

@cli.command(name="untrack", help="Stop tracking a branch (default: the current branch)")
@click.argument('branch', required=False)
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if socle was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def untrack(branch: Optional[str], directory: Optional[str], verbose: int) -> None:
    """Untrack command."""
    setup_logging(verbose)
    config, git_cmd, store = setup_git(directory, verbose)

    def action() -> None:
        untrack_branch(store, branch or get_current_branch(git_cmd), config.repo.base_branches)

    run_guarded(action, git_cmd)

@cli.command(name="create", help="Create a new branch on top of the current one and track it")
@click.argument('name')
@click.option('-m', '--message', help="Commit uncommitted changes on the new branch with this message")
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if socle was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def create(name: str, message: Optional[str], directory: Optional[str], verbose: int) -> None:
    """Create command."""
    setup_logging(verbose)
    config, git_cmd, store = setup_git(directory, verbose)

    def action() -> None:
        create_branch(git_cmd, store, name, config.repo.base_branches, message)

    run_guarded(action, git_cmd)

@cli.command(name="log", help="List the current stack and which branches need restacking")
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if socle was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def log(directory: Optional[str], verbose: int) -> None:
    """Log command."""
    setup_logging(verbose)
    config, git_cmd, store = setup_git(directory, verbose)

    def action() -> None:
        info = get_current_stack_info(git_cmd, store, config.repo.base_branches)
        full_stack, edges = load_full_stack_for_submit(store, info.stack)
        print_header("Current stack")
        click.echo(format_stack(info.base_branch, stack_status(git_cmd, store, full_stack, edges),
                                info.current_branch))

    run_guarded(action, git_cmd)

@cli.command(name="restack", help="Rebase each branch of the stack, including those above the current branch, onto its parent")
@click.option('--no-fetch', is_flag=True, help="Do not fetch the base branch from the remote first")
@click.option('--push/--no-push', default=None, help="Force push rebased branches (default: ask)")
@click.option('--update-refs', is_flag=True, help="Rebase the whole stack at once with git's --update-refs")
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if socle was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def restack(no_fetch: bool, push: Optional[bool], update_refs: bool, directory: Optional[str], verbose: int) -> None:
    """Restack command."""
    setup_logging(verbose)
    config, git_cmd, store = setup_git(directory, verbose)
    prompt = InteractivePrompt()

    def action() -> None:
        result = restack_stack(git_cmd, store, config, fetch=not no_fetch, push=push,
                               confirm=prompt.confirm, update_refs=update_refs)
        if result.paused:
            return
        if result.rebased:
            logger.info(f"Rebased: {', '.join(result.rebased)}")
        else:
            logger.info("Stack is up to date")
        if result.push_failures:
            raise SocleError(f"failed to push: {', '.join(result.push_failures)}")

    run_guarded(action, git_cmd)

@cli.command(name="submit", help="Create or update pull requests for every branch in the stack")
@click.option('--draft', is_flag=True, help="Open new pull requests as drafts")
@click.option('--no-push', is_flag=True, help="Do not push branches before submitting")
@click.option('--force', is_flag=True, help="Push with --force instead of --force-with-lease")
@click.option('--restack', 'restack_first', is_flag=True, help="Restack branches that need it before pushing")
@click.option('--title', help="Title for new pull requests (skips the prompt)")
@click.option('--body', help="Body for new pull requests (skips the prompt)")
@click.option('--non-interactive', is_flag=True, help="Never prompt; use default titles and bodies")
@click.option('--pretend', is_flag=True, help="Don't push or change anything on GitHub, just show what would happen")
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if socle was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def submit(draft: bool, no_push: bool, force: bool, restack_first: bool, title: Optional[str],
           body: Optional[str], non_interactive: bool, pretend: bool, directory: Optional[str], verbose: int) -> None:
    """Submit command."""
    setup_logging(verbose)
    config, git_cmd, store = setup_git(directory, verbose)
    config.tool.pretend = pretend or config.tool.pretend
    options = SubmitOptions(
        draft=draft or config.user.draft,
        push=not no_push,
        force=force,
        restack=restack_first,
        non_interactive=non_interactive or config.user.non_interactive,
        title=title,
        body=body,
        pretend=config.tool.pretend,
    )
    counter = APICallCounter()
    cancel_event = threading.Event()

    def action() -> None:
        github = create_github_client(config, counter=counter, cancel_event=cancel_event)
        submitter = StackSubmitter(config, git_cmd, store, github, InteractivePrompt())
        try:
            result = submitter.submit(options)
        except KeyboardInterrupt:
            cancel_event.set()
            raise UserCancelledError("submit interrupted")

        for branch, pr in result.submitted.items():
            if not pr.number:
                click.echo(f"  {branch}: would open PR against {pr.base_ref}")
                continue
            suffix = f" {pr.html_url}" if pr.html_url else ""
            click.echo(f"  {branch}: #{pr.number}{suffix}")
        for branch in result.skipped:
            click.echo(f"  {branch}: no changes, skipped")
        logger.debug(f"GitHub API calls: {counter.get_counts()}")
        if result.errors:
            for branch, error in result.errors.items():
                logger.error(f"{branch}: {error}")
            raise SocleError(f"{len(result.errors)} branch(es) had errors")

    run_guarded(action, git_cmd)

@cli.command(name="show", help="Show the current stack with live pull request status from GitHub")
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if socle was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def show(directory: Optional[str], verbose: int) -> None:
    """Show command."""
    setup_logging(verbose)
    config, git_cmd, store = setup_git(directory, verbose)

    def action() -> None:
        try:
            github = create_github_client(config)
        except StackTrackingError as e:
            logger.warning(f"{e}")
            github = None
        click.echo(show_stack(git_cmd, store, config.repo.base_branches, github))

    run_guarded(action, git_cmd)

def run_navigation(direction: Direction, directory: Optional[str], verbose: int) -> None:
    """Shared body of up, down, top and bottom."""
    setup_logging(verbose)
    config, git_cmd, store = setup_git(directory, verbose)

    def action() -> None:
        navigate(git_cmd, store, config.repo.base_branches, direction, InteractivePrompt())

    run_guarded(action, git_cmd)

@cli.command(name="up", help="Check out the child of the current branch")
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if socle was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def up(directory: Optional[str], verbose: int) -> None:
    run_navigation(Direction.UP, directory, verbose)

@cli.command(name="down", help="Check out the parent of the current branch")
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if socle was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def down(directory: Optional[str], verbose: int) -> None:
    run_navigation(Direction.DOWN, directory, verbose)

@cli.command(name="top", help="Check out the top branch of the current stack")
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if socle was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def top(directory: Optional[str], verbose: int) -> None:
    run_navigation(Direction.TOP, directory, verbose)

@cli.command(name="bottom", help="Check out the first branch above the base")
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if socle was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def bottom(directory: Optional[str], verbose: int) -> None:
    run_navigation(Direction.BOTTOM, directory, verbose)


def main() -> None:
    """Main entry point."""
    cli.aliases['ls'] = 'log'
    cli.aliases['ss'] = 'submit'
    cli(obj={})

if __name__ == "__main__":
    main()
