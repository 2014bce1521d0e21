"""Value types for objects read from the GitHub API."""

from typing import Optional
from pydantic import BaseModel

class PRInfo(BaseModel):
    """The parts of a pull request pysocle reconciles against."""
    number: int
    title: str = ""
    state: str = "open"
    base_ref: str
    head_ref: str
    draft: bool = False
    merged: bool = False
    html_url: Optional[str] = None

class CommentInfo(BaseModel):
    """An issue comment on a pull request."""
    id: int
    body: str = ""
