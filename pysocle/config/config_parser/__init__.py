"""Config parser logic."""

from typing import Dict, Any
import logging
import yaml

from ...git import get_remote_url, get_repo_root, parse_owner_and_repo
from ...typing import GitCommandFailedError, GitInterface, StackTrackingError

# Get module logger
logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".socle.yaml"

ConfigSection = Dict[str, Any]  # yaml can return various types
Config = Dict[str, ConfigSection]

def parse_config(git_cmd: GitInterface) -> Config:
    """Parse config from defaults, the repository config file and the remote URL."""
    config: Config = {
        'repo': {
            'github_remote': 'origin',
            'github_host': 'github.com',
            'base_branches': ['main', 'master', 'develop'],
            'default_base': 'main',
        },
        'user': {},
        'tool': {
            'api_timeout': 15.0,
            'pretend': False,
        }
    }

    config_path = get_repo_root(git_cmd) / CONFIG_FILE_NAME
    try:
        with open(config_path, 'r') as f:
            logger.debug(f"Found {CONFIG_FILE_NAME}, loading...")
            repo_config = yaml.safe_load(f)
    except FileNotFoundError:
        logger.debug(f"No {CONFIG_FILE_NAME} found, using defaults")
        repo_config = None

    if repo_config:
        if not isinstance(repo_config, dict):
            raise StackTrackingError(f"{CONFIG_FILE_NAME} must contain a mapping, got {type(repo_config).__name__}")
        for section in ('repo', 'user', 'tool'):
            if section in repo_config and isinstance(repo_config[section], dict):
                logger.debug(f"Config from {CONFIG_FILE_NAME} [{section}]: {repo_config[section]}")
                config[section].update(repo_config[section])

    # Owner/name from the remote unless set explicitly
    if not config['repo'].get('github_repo_owner') or not config['repo'].get('github_repo_name'):
        remote = config['repo']['github_remote']
        try:
            owner, name = parse_owner_and_repo(get_remote_url(git_cmd, remote))
            if not config['repo'].get('github_repo_owner'):
                config['repo']['github_repo_owner'] = owner
            if not config['repo'].get('github_repo_name'):
                config['repo']['github_repo_name'] = name
        except (StackTrackingError, GitCommandFailedError, ValueError) as e:
            logger.warning(f"Could not determine GitHub repository from remote '{remote}': {e}")

    return config
