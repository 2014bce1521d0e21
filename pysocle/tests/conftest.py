"""Configuration for pytest."""

import logging
from pathlib import Path
import pytest

from pysocle.config import Config, default_config
from pysocle.config.store import ConfigStore
from pysocle.git import RealGit
from pysocle.github import GitHubClient
from pysocle.github.counter import APICallCounter
from pysocle.tests.fake_pygithub import FakeGithub
from pysocle.tests.utils import init_repo, run_cmd

logger = logging.getLogger(__name__)

@pytest.fixture
def repo_path(tmp_path: Path) -> Path:
    """A fresh repository with an initial commit on main."""
    return init_repo(tmp_path / "repo")


@pytest.fixture
def remote_path(tmp_path: Path, repo_path: Path) -> Path:
    """A bare repository wired up as origin, with main pushed."""
    remote = tmp_path / "remote.git"
    run_cmd(f"git init -q --bare '{remote}'")
    run_cmd(f"git remote add origin '{remote}'", str(repo_path))
    run_cmd("git push -q origin main", str(repo_path))
    return remote


@pytest.fixture
def config() -> Config:
    cfg = default_config()
    cfg.repo.github_repo_owner = "yang"
    cfg.repo.github_repo_name = "teststack"
    return cfg


@pytest.fixture
def git_cmd(config: Config, repo_path: Path) -> RealGit:
    return RealGit(config, repo_dir=str(repo_path))


@pytest.fixture
def store(git_cmd: RealGit) -> ConfigStore:
    return ConfigStore(git_cmd)


@pytest.fixture
def fake_github() -> FakeGithub:
    return FakeGithub()


@pytest.fixture
def counter() -> APICallCounter:
    return APICallCounter()


@pytest.fixture
def github(config: Config, fake_github: FakeGithub, counter: APICallCounter) -> GitHubClient:
    """GitHubClient over the in-memory fake."""
    return GitHubClient(config, fake_github, counter=counter)
