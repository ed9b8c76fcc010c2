"""GitHub-side snapshots"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class SourceUser:
    login: str
    name: Optional[str] = None
    html_url: Optional[str] = None


@dataclass(frozen=True)
class SourceIssue:
    """A GitHub issue as fetched at the start of a run"""

    id: int
    number: int
    title: str
    body: str
    state: str
    labels: Tuple[str, ...]
    user: SourceUser
    updated_at: Optional[datetime] = None
    html_url: Optional[str] = None
    # "owner/repo"
    repository: Optional[str] = None
    comment_count: int = 0

    @property
    def label_string(self) -> str:
        """Labels in their original order, as stored in the Jira labels field"""
        return ",".join(self.labels)


@dataclass(frozen=True)
class SourceComment:
    id: int
    body: str
    user: SourceUser
    created_at: Optional[datetime] = None
    html_url: Optional[str] = None
