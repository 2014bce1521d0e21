"""Pydantic models for config types."""

from typing import List, Optional
from pydantic import BaseModel, Field

STACK_COMMENT_MARKER = "<!-- socle-stack-overview -->"

class RepoConfig(BaseModel):
    """Repository configuration."""
    github_remote: str = "origin"
    github_host: str = "github.com"
    github_repo_owner: Optional[str] = None
    github_repo_name: Optional[str] = None
    base_branches: List[str] = Field(default_factory=lambda: ["main", "master", "develop"])
    default_base: str = "main"
    stack_comment_marker: str = STACK_COMMENT_MARKER

    class Config:
        """Pydantic config."""
        extra = "allow"

    def is_base_branch(self, branch: str) -> bool:
        """Check whether a branch is one of the trunks stacks are rooted on."""
        return branch in self.base_branches

class UserConfig(BaseModel):
    """User configuration."""
    draft: bool = False
    non_interactive: bool = False
    log_git_commands: bool = False

    class Config:
        """Pydantic config."""
        extra = "allow"

class ToolConfig(BaseModel):
    """Tool configuration."""
    api_timeout: float = 15.0
    pretend: bool = False

    class Config:
        """Pydantic config."""
        extra = "allow"

class SocleConfig(BaseModel):
    """Full pysocle configuration."""
    repo: RepoConfig = Field(default_factory=RepoConfig)
    user: UserConfig = Field(default_factory=UserConfig)
    tool: ToolConfig = Field(default_factory=ToolConfig)

    class Config:
        """Pydantic config."""
        extra = "allow"
