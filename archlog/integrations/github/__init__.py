"""
GitHub Integration Module

Provides read access to pull requests and commits of one repository.
"""

from archlog.integrations.github.client import GitHubClient, classify_github_error
from archlog.integrations.github.models import ChangedFile, CommitData, PullRequestData

__all__ = [
    "GitHubClient",
    "classify_github_error",
    "ChangedFile",
    "CommitData",
    "PullRequestData",
]
