"""
GitHub Data Models

Plain snapshots of host objects, detached from PyGithub's lazy objects so the
fetcher never triggers network calls by touching an attribute.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class ChangedFile(BaseModel):
    """One file touched by a pull request or commit."""

    filename: str
    status: str = "modified"
    additions: int = 0
    deletions: int = 0
    patch: Optional[str] = None


class PullRequestData(BaseModel):
    number: int
    title: str
    body: Optional[str] = None
    html_url: str = ""
    author: str = "unknown"
    head_ref: Optional[str] = None
    labels: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: datetime
    merged_at: Optional[datetime] = None
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0


class CommitData(BaseModel):
    sha: str
    message: str
    html_url: str = ""
    author: str = "unknown"
    authored_at: datetime
    additions: int = 0
    deletions: int = 0
    files: List[ChangedFile] = Field(default_factory=list)

    @property
    def title(self) -> str:
        return self.message.split("\n", 1)[0]
