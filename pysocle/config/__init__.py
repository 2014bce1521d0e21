"""Config module."""

from typing import Dict, Any
from .models import RepoConfig, UserConfig, SocleConfig, ToolConfig

class Config(SocleConfig):
    """Config object holding repository, user and tool config.

    Built from the plain dict produced by the config parser so the
    sections can come from defaults, `.socle.yaml` or tests alike.
    """
    def __init__(self, config: Dict[str, Dict[str, Any]]):
        """Initialize with parsed config dict."""
        super().__init__(
            repo=RepoConfig.model_validate(config.get('repo', {})),
            user=UserConfig.model_validate(config.get('user', {})),
            tool=ToolConfig.model_validate(config.get('tool', {})),
        )

def default_config() -> Config:
    """Get default config without parsing git."""
    return Config({
        'repo': {
            'github_remote': 'origin',
        },
        'user': {},
        'tool': {},
    })
