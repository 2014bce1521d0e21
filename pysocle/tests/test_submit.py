"""Tests for PR and stack comment reconciliation."""

import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from github import GithubException

from pysocle.config import Config
from pysocle.config.models import STACK_COMMENT_MARKER
from pysocle.config.store import ConfigStore
from pysocle.git import RealGit
from pysocle.github import GitHubClient
from pysocle.prompt import ScriptedPrompt
from pysocle.restack import is_rebase_in_progress
from pysocle.submit import (
    StackSubmitter, SubmitOptions, ensure_stack_comment, render_stack_comment_body, submit_branch,
)
from pysocle.tests.fake_pygithub import FakeGithub
from pysocle.tests.utils import build_stack, checkout, commit_file, run_cmd
from pysocle.typing import (
    ErrorKind, GitCommandFailedError, PersistenceDriftError, RebaseConflictError, RemoteAPIError,
    UserCancelledError,
)

QUIET = SubmitOptions(push=False, non_interactive=True)
MARKER = STACK_COMMENT_MARKER


class TestSubmitBranch:
    """Tests for reconciling one branch with its pull request."""

    def test_creates_once(self, store: ConfigStore, git_cmd: RealGit, github: GitHubClient,
                          fake_github: FakeGithub, repo_path: Path) -> None:
        """Test that a second submit finds the stored PR instead of creating another."""
        build_stack(repo_path, "feature-a")
        prompt = ScriptedPrompt()

        first = submit_branch(store, git_cmd, github, prompt, "feature-a", "main", QUIET)
        assert first is not None
        assert first.title == "Add feature-a"
        assert store.get_pr_number("feature-a") == first.number

        second = submit_branch(store, git_cmd, github, prompt, "feature-a", "main", QUIET)
        assert second is not None and second.number == first.number
        assert fake_github.call_count("create_pull") == 1
        assert prompt.asked == []

    def test_deleted_pr_is_recreated(self, store: ConfigStore, git_cmd: RealGit, github: GitHubClient,
                                     fake_github: FakeGithub, repo_path: Path, caplog) -> None:
        build_stack(repo_path, "feature-a")
        store.set_pr_number("feature-a", 77)

        pr = submit_branch(store, git_cmd, github, ScriptedPrompt(), "feature-a", "main", QUIET)

        assert pr is not None and pr.number != 77
        assert store.get_pr_number("feature-a") == pr.number
        assert fake_github.call_count("create_pull") == 1
        assert "no longer exists" in caplog.text

    def test_base_is_retargeted(self, store: ConfigStore, git_cmd: RealGit, github: GitHubClient,
                                fake_github: FakeGithub, repo_path: Path) -> None:
        build_stack(repo_path, "feature-a", "feature-b")
        existing = fake_github.add_pull_request("feature-b", "main")
        store.set_pr_number("feature-b", existing.number)

        pr = submit_branch(store, git_cmd, github, ScriptedPrompt(), "feature-b", "feature-a", QUIET)

        assert pr is not None and pr.base_ref == "feature-a"
        assert fake_github.call_count("edit_pull") == 1
        assert fake_github.call_count("create_pull") == 0

    def test_branch_without_changes_is_skipped(self, store: ConfigStore, git_cmd: RealGit,
                                               github: GitHubClient, fake_github: FakeGithub,
                                               repo_path: Path) -> None:
        checkout(repo_path, "empty", create=True)
        assert submit_branch(store, git_cmd, github, ScriptedPrompt(), "empty", "main", QUIET) is None
        assert fake_github.call_count("create_pull") == 0

    def test_prompted_title_and_template_body(self, store: ConfigStore, git_cmd: RealGit,
                                              github: GitHubClient, fake_github: FakeGithub,
                                              repo_path: Path) -> None:
        template = repo_path / ".github" / "pull_request_template.md"
        template.parent.mkdir()
        template.write_text("## Summary\n")
        build_stack(repo_path, "feature-a")
        prompt = ScriptedPrompt(title="Custom title")

        pr = submit_branch(store, git_cmd, github, prompt, "feature-a", "main", SubmitOptions(push=False))

        assert pr is not None and pr.title == "Custom title"
        assert fake_github.pull_requests[pr.number].body == "## Summary\n"
        assert prompt.asked == [("title", "feature-a"), ("body", "feature-a")]

    def test_empty_title_cancels(self, store: ConfigStore, git_cmd: RealGit, github: GitHubClient,
                                 fake_github: FakeGithub, repo_path: Path) -> None:
        build_stack(repo_path, "feature-a")
        with pytest.raises(UserCancelledError):
            submit_branch(store, git_cmd, github, ScriptedPrompt(title="  "), "feature-a", "main",
                          SubmitOptions(push=False))
        assert fake_github.call_count("create_pull") == 0

    def test_persistence_drift(self, git_cmd: RealGit, github: GitHubClient,
                               fake_github: FakeGithub, repo_path: Path, caplog) -> None:
        """Test that a PR created but not recorded is reported loudly."""
        build_stack(repo_path, "feature-a")
        store = MagicMock(spec=ConfigStore)
        store.get_pr_number.return_value = 0
        store.set_pr_number.side_effect = GitCommandFailedError("config", 255, "could not lock config file")

        with pytest.raises(PersistenceDriftError) as exc_info:
            submit_branch(store, git_cmd, github, ScriptedPrompt(), "feature-a", "main", QUIET)

        assert exc_info.value.kind is ErrorKind.PERSISTENCE_DRIFT
        assert fake_github.call_count("create_pull") == 1
        assert "git config branch.feature-a.pr-number 1" in caplog.text
        assert any(r.levelname == "CRITICAL" for r in caplog.records)

    def test_create_failure_records_nothing(self, store: ConfigStore, git_cmd: RealGit,
                                            github: GitHubClient, fake_github: FakeGithub,
                                            repo_path: Path) -> None:
        build_stack(repo_path, "feature-a")
        fake_github.failures["create_pull"] = GithubException(500, {"message": "timeout"}, None)
        with pytest.raises(RemoteAPIError):
            submit_branch(store, git_cmd, github, ScriptedPrompt(), "feature-a", "main", QUIET)
        assert store.get_pr_number("feature-a") == 0

    def test_existing_pr_number_is_rewritten(self, git_cmd: RealGit, github: GitHubClient,
                                             fake_github: FakeGithub, repo_path: Path) -> None:
        """Test that finding the stored PR records its number again."""
        build_stack(repo_path, "feature-a")
        existing = fake_github.add_pull_request("feature-a", "main")
        store = MagicMock(spec=ConfigStore)
        store.get_pr_number.return_value = existing.number

        pr = submit_branch(store, git_cmd, github, ScriptedPrompt(), "feature-a", "main", QUIET)

        assert pr is not None and pr.number == existing.number
        store.set_pr_number.assert_called_once_with("feature-a", existing.number)
        assert fake_github.call_count("create_pull") == 0

    def test_pretend_creates_nothing(self, store: ConfigStore, git_cmd: RealGit, github: GitHubClient,
                                     fake_github: FakeGithub, repo_path: Path, caplog) -> None:
        caplog.set_level(logging.INFO)
        build_stack(repo_path, "feature-a")
        options = SubmitOptions(push=False, non_interactive=True, pretend=True)

        pr = submit_branch(store, git_cmd, github, ScriptedPrompt(), "feature-a", "main", options)

        assert pr is not None and pr.number == 0
        assert pr.title == "Add feature-a"
        assert fake_github.call_count("create_pull") == 0
        assert store.get_pr_number("feature-a") == 0
        assert "[PRETEND] Would create PR for 'feature-a'" in caplog.text

    def test_pretend_does_not_retarget(self, store: ConfigStore, git_cmd: RealGit, github: GitHubClient,
                                       fake_github: FakeGithub, repo_path: Path, caplog) -> None:
        caplog.set_level(logging.INFO)
        build_stack(repo_path, "feature-a", "feature-b")
        existing = fake_github.add_pull_request("feature-b", "main")
        store.set_pr_number("feature-b", existing.number)
        options = SubmitOptions(push=False, non_interactive=True, pretend=True)

        pr = submit_branch(store, git_cmd, github, ScriptedPrompt(), "feature-b", "feature-a", options)

        assert pr is not None and pr.base_ref == "main"
        assert fake_github.call_count("edit_pull") == 0
        assert "[PRETEND] Would retarget PR" in caplog.text


class TestRenderStackComment:
    """Tests for the overview comment body."""

    def test_tip_first_base_last(self) -> None:
        body = render_stack_comment_body(["main", "feature-a", "feature-b"], "feature-a", MARKER,
                                         {"feature-a": 1})
        assert body == (
            "**Stack Overview:**\n"
            "\n"
            "* `feature-b` (Coming soon 🤞)\n"
            "* **#1** 👈\n"
            "* `main` (base)\n"
            "\n"
            f"{MARKER}\n"
        )

    def test_all_submitted(self) -> None:
        body = render_stack_comment_body(["main", "a", "b"], "b", MARKER, {"a": 1, "b": 2})
        assert "* **#2** 👈\n* **#1**\n" in body
        assert body.rstrip().endswith(MARKER)


class TestEnsureStackComment:
    """Tests for stored-id versus marker-search reconciliation."""

    @pytest.fixture
    def pr_number(self, fake_github: FakeGithub) -> int:
        return fake_github.add_pull_request("feature-a", "main").number

    def test_nothing_stored_nothing_found(self, store: ConfigStore, github: GitHubClient,
                                          fake_github: FakeGithub, pr_number: int) -> None:
        warnings = ensure_stack_comment(store, github, "feature-a", pr_number, f"v1\n{MARKER}", MARKER)
        comments = fake_github.comments(pr_number)
        assert warnings == []
        assert len(comments) == 1
        assert store.get_comment_id("feature-a") == comments[0].id

    def test_found_without_stored_id_is_adopted(self, store: ConfigStore, github: GitHubClient,
                                                fake_github: FakeGithub, pr_number: int) -> None:
        existing = fake_github.add_comment(pr_number, f"old\n{MARKER}")
        warnings = ensure_stack_comment(store, github, "feature-a", pr_number, f"new\n{MARKER}", MARKER)
        assert warnings == []
        assert store.get_comment_id("feature-a") == existing.id
        assert existing.body == f"new\n{MARKER}"
        assert fake_github.call_count("create_comment") == 0

    def test_stored_and_found_agree(self, store: ConfigStore, github: GitHubClient,
                                    fake_github: FakeGithub, pr_number: int) -> None:
        existing = fake_github.add_comment(pr_number, f"old\n{MARKER}")
        store.set_comment_id("feature-a", existing.id)
        warnings = ensure_stack_comment(store, github, "feature-a", pr_number, f"new\n{MARKER}", MARKER)
        assert warnings == []
        assert fake_github.call_count("edit_comment") == 1
        assert fake_github.call_count("create_comment") == 0

    def test_stale_stored_id_replaced_by_found(self, store: ConfigStore, github: GitHubClient,
                                               fake_github: FakeGithub, pr_number: int) -> None:
        existing = fake_github.add_comment(pr_number, f"old\n{MARKER}")
        store.set_comment_id("feature-a", 5)
        warnings = ensure_stack_comment(store, github, "feature-a", pr_number, f"new\n{MARKER}", MARKER)
        assert len(warnings) == 1 and "stale" in warnings[0]
        assert store.get_comment_id("feature-a") == existing.id
        assert fake_github.call_count("create_comment") == 0

    def test_stale_stored_id_nothing_found(self, store: ConfigStore, github: GitHubClient,
                                           fake_github: FakeGithub, pr_number: int) -> None:
        """Test that a deleted comment is recreated, then updated on later runs."""
        store.set_comment_id("feature-a", 5)

        warnings = ensure_stack_comment(store, github, "feature-a", pr_number, f"v1\n{MARKER}", MARKER)
        assert len(warnings) == 1 and "cleared" in warnings[0]
        new_id = store.get_comment_id("feature-a")
        assert new_id not in (0, 5)
        assert fake_github.call_count("create_comment") == 1

        warnings = ensure_stack_comment(store, github, "feature-a", pr_number, f"v2\n{MARKER}", MARKER)
        assert warnings == []
        assert fake_github.call_count("create_comment") == 1
        assert [c.body for c in fake_github.comments(pr_number)] == [f"v2\n{MARKER}"]

    def test_only_first_marker_comment_is_live(self, store: ConfigStore, github: GitHubClient,
                                               fake_github: FakeGithub, pr_number: int) -> None:
        fake_github.add_comment(pr_number, "unrelated")
        first = fake_github.add_comment(pr_number, f"a\n{MARKER}")
        second = fake_github.add_comment(pr_number, f"b\n{MARKER}")
        ensure_stack_comment(store, github, "feature-a", pr_number, f"c\n{MARKER}", MARKER)
        assert first.body == f"c\n{MARKER}"
        assert second.body == f"b\n{MARKER}"

    def test_unreadable_stored_id_is_a_warning(self, github: GitHubClient, fake_github: FakeGithub,
                                               pr_number: int) -> None:
        store = MagicMock(spec=ConfigStore)
        store.get_comment_id.side_effect = GitCommandFailedError("config", 128, "bad config line")
        warnings = ensure_stack_comment(store, github, "feature-a", pr_number, f"v1\n{MARKER}", MARKER)
        assert len(warnings) == 1 and "could not read" in warnings[0]
        assert len(fake_github.comments(pr_number)) == 1

    def test_unrecorded_new_comment_is_drift(self, github: GitHubClient, fake_github: FakeGithub,
                                             pr_number: int) -> None:
        store = MagicMock(spec=ConfigStore)
        store.get_comment_id.return_value = 0
        store.set_comment_id.side_effect = GitCommandFailedError("config", 255, "could not lock config file")
        with pytest.raises(PersistenceDriftError):
            ensure_stack_comment(store, github, "feature-a", pr_number, f"v1\n{MARKER}", MARKER)
        assert len(fake_github.comments(pr_number)) == 1


class TestStackSubmitter:
    """Tests for submitting a whole stack."""

    def test_submit_stack_twice(self, config: Config, git_cmd: RealGit, store: ConfigStore,
                                github: GitHubClient, fake_github: FakeGithub, repo_path: Path) -> None:
        """Test that a re-submit creates nothing new and refreshes the comments."""
        build_stack(repo_path, "feature-a", "feature-b")
        submitter = StackSubmitter(config, git_cmd, store, github, ScriptedPrompt())

        result = submitter.submit(QUIET)

        assert result.stack == ["main", "feature-a", "feature-b"]
        assert result.submitted["feature-a"].base_ref == "main"
        assert result.submitted["feature-b"].base_ref == "feature-a"
        assert result.errors == {}
        for branch, number in result.pr_numbers.items():
            comments = fake_github.comments(number)
            assert len(comments) == 1 and MARKER in comments[0].body
            assert store.get_comment_id(branch) == comments[0].id
        assert fake_github.call_count("create_pull") == 2
        assert fake_github.call_count("create_comment") == 2

        again = submitter.submit(QUIET)

        assert again.pr_numbers == result.pr_numbers
        assert again.warnings == {}
        assert fake_github.call_count("create_pull") == 2
        assert fake_github.call_count("create_comment") == 2
        assert fake_github.call_count("edit_comment") == 2

    def test_submit_from_middle_includes_descendants(self, config: Config, git_cmd: RealGit,
                                                     store: ConfigStore, github: GitHubClient,
                                                     repo_path: Path) -> None:
        build_stack(repo_path, "feature-a", "feature-b")
        checkout(repo_path, "feature-a")
        result = StackSubmitter(config, git_cmd, store, github, ScriptedPrompt()).submit(QUIET)
        assert set(result.submitted) == {"feature-a", "feature-b"}

    def test_nothing_to_submit_on_base(self, config: Config, git_cmd: RealGit, store: ConfigStore,
                                       github: GitHubClient, fake_github: FakeGithub) -> None:
        result = StackSubmitter(config, git_cmd, store, github, ScriptedPrompt()).submit(QUIET)
        assert result.stack == ["main"]
        assert fake_github.calls == []

    def test_push_to_remote(self, config: Config, git_cmd: RealGit, store: ConfigStore,
                            github: GitHubClient, repo_path: Path, remote_path: Path) -> None:
        build_stack(repo_path, "feature-a", "feature-b")
        StackSubmitter(config, git_cmd, store, github, ScriptedPrompt()).submit(
            SubmitOptions(non_interactive=True))
        for branch in ("feature-a", "feature-b"):
            assert run_cmd(f"git rev-parse {branch}", str(remote_path)) == \
                run_cmd(f"git rev-parse {branch}", str(repo_path))

    def test_comment_failure_is_recorded(self, config: Config, git_cmd: RealGit, store: ConfigStore,
                                         github: GitHubClient, repo_path: Path) -> None:
        build_stack(repo_path, "feature-a")
        failure = RemoteAPIError("find_comment_with_marker", "rate limited", status=403)
        with patch.object(github, "find_comment_with_marker", side_effect=failure):
            result = StackSubmitter(config, git_cmd, store, github, ScriptedPrompt()).submit(QUIET)
        assert "feature-a" in result.submitted
        assert "rate limited" in result.errors["feature-a"]

    def test_cancel_propagates(self, config: Config, git_cmd: RealGit, store: ConfigStore,
                               github: GitHubClient, fake_github: FakeGithub, repo_path: Path) -> None:
        build_stack(repo_path, "feature-a")
        submitter = StackSubmitter(config, git_cmd, store, github, ScriptedPrompt(cancel=True))
        with pytest.raises(UserCancelledError):
            submitter.submit(SubmitOptions(push=False))
        assert fake_github.call_count("create_pull") == 0

    def test_restack_before_submit(self, config: Config, git_cmd: RealGit, store: ConfigStore,
                                   github: GitHubClient, repo_path: Path) -> None:
        build_stack(repo_path, "feature-a", "feature-b")
        checkout(repo_path, "feature-a")
        run_cmd("git commit -q --allow-empty -m 'Amend feature-a'", str(repo_path))
        checkout(repo_path, "feature-b")

        StackSubmitter(config, git_cmd, store, github, ScriptedPrompt()).submit(
            SubmitOptions(push=False, non_interactive=True, restack=True))

        assert run_cmd("git merge-base feature-a feature-b", str(repo_path)) == \
            run_cmd("git rev-parse feature-a", str(repo_path))
        assert run_cmd("git rev-parse --abbrev-ref HEAD", str(repo_path)) == "feature-b"

    def test_pretend_writes_nothing(self, config: Config, git_cmd: RealGit, store: ConfigStore,
                                    github: GitHubClient, fake_github: FakeGithub, repo_path: Path,
                                    remote_path: Path) -> None:
        """Test that a pretend run reads existing PRs but creates, edits and pushes nothing."""
        build_stack(repo_path, "feature-a", "feature-b")
        existing = fake_github.add_pull_request("feature-a", "main")
        store.set_pr_number("feature-a", existing.number)

        result = StackSubmitter(config, git_cmd, store, github, ScriptedPrompt()).submit(
            SubmitOptions(non_interactive=True, pretend=True))

        assert result.pr_numbers == {"feature-a": existing.number}
        assert result.submitted["feature-b"].number == 0
        for call in ("create_pull", "edit_pull", "create_comment", "edit_comment"):
            assert fake_github.call_count(call) == 0
        assert store.get_pr_number("feature-b") == 0
        assert store.get_comment_id("feature-a") == 0
        assert run_cmd("git branch --list feature-a feature-b", str(remote_path)) == ""

    def test_conflict_halts_submit_and_keeps_earlier_prs(self, config: Config, git_cmd: RealGit,
                                                         store: ConfigStore, github: GitHubClient,
                                                         fake_github: FakeGithub, repo_path: Path) -> None:
        """Test that a restack conflict on feature-b leaves feature-a's PR in place."""
        commit_file(repo_path, "shared.txt", "original\n", "Add shared file")
        build_stack(repo_path, "feature-a", "feature-b")
        commit_file(repo_path, "shared.txt", "feature-b change\n", "Change shared on feature-b")
        checkout(repo_path, "feature-a")
        commit_file(repo_path, "shared.txt", "feature-a change\n", "Change shared on feature-a")
        checkout(repo_path, "feature-b")
        submitter = StackSubmitter(config, git_cmd, store, github, ScriptedPrompt())

        with pytest.raises(RebaseConflictError) as exc_info:
            submitter.submit(SubmitOptions(push=False, non_interactive=True, restack=True))

        assert exc_info.value.branch == "feature-b"
        assert is_rebase_in_progress(git_cmd)
        assert fake_github.call_count("create_pull") == 1
        pr_number = store.get_pr_number("feature-a")
        assert fake_github.pull_requests[pr_number].head.ref == "feature-a"
        assert fake_github.pull_requests[pr_number].state == "open"
        assert store.get_pr_number("feature-b") == 0
