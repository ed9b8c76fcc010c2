"""GitHub API client wrapper"""

import logging
from typing import Callable, Dict, List, Optional, TypeVar

from github import Auth, Github, GithubException

from issuesync.exceptions import RetryExhaustedError, SourceRequestError
from issuesync.models import SourceComment, SourceIssue, SourceUser
from issuesync.services.retry import ResilientInvoker

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _repository_from_url(repository_url: Optional[str]) -> Optional[str]:
    """"https://api.github.com/repos/owner/repo" -> "owner/repo" """
    if not repository_url or "/repos/" not in repository_url:
        return None
    return repository_url.split("/repos/", 1)[1].strip("/") or None


class GitHubClient:
    """Read-only access to GitHub, returning snapshots instead of PyGithub objects"""

    def __init__(self, token: str, invoker: ResilientInvoker, *, timeout: Optional[float] = None):
        """Initialize GitHub client"""
        kwargs = {"auth": Auth.Token(token), "retry": None}
        if timeout:
            kwargs["timeout"] = int(timeout)
        self.gh = Github(**kwargs)
        self.invoker = invoker
        self._users: Dict[str, SourceUser] = {}

    def _request(self, fn: Callable[[], T], what: str) -> T:
        try:
            return self.invoker.invoke(fn)
        except RetryExhaustedError as e:
            err = e.last_error
            if isinstance(err, GithubException):
                detail = str(err.data) if err.data else str(err)
                logger.error(f"Error {what}: {detail}")
                raise SourceRequestError(detail, status_code=err.status) from e
            logger.error(f"Error {what}: {err}")
            raise SourceRequestError(str(err)) from e

    @staticmethod
    def _to_user(user) -> SourceUser:
        return SourceUser(
            login=user.login,
            name=getattr(user, "name", None) or None,
            html_url=getattr(user, "html_url", None),
        )

    @staticmethod
    def _to_issue(issue) -> SourceIssue:
        user = issue.user
        return SourceIssue(
            id=int(issue.id),
            number=int(issue.number),
            title=issue.title or "",
            body=issue.body or "",
            state=issue.state,
            labels=tuple(label.name for label in (issue.labels or [])),
            # Only fields present in the search payload; `name` would cost a request per issue.
            user=SourceUser(login=user.login, html_url=getattr(user, "html_url", None)),
            updated_at=issue.updated_at,
            html_url=issue.html_url,
            repository=_repository_from_url(getattr(issue, "repository_url", None)),
            comment_count=int(getattr(issue, "comments", 0) or 0),
        )

    def search_issues(self, query: str) -> List[SourceIssue]:
        """Search issues; the whole result set is fetched before returning"""
        logger.debug(f"Searching GitHub issues: {query}")
        issues = self._request(lambda: list(self.gh.search_issues(query)), "searching GitHub issues")
        logger.info(f"Found {len(issues)} GitHub issues")
        return [self._to_issue(i) for i in issues]

    def get_org_members(self, org: str) -> List[str]:
        """Logins of the members of an organisation"""
        members = self._request(
            lambda: [m.login for m in self.gh.get_organization(org).get_members()],
            f"listing members of {org}",
        )
        logger.debug(f"Organisation {org} has {len(members)} members")
        return members

    def get_user(self, login: str) -> SourceUser:
        """Get a user by login; looked-up users are kept for the client's lifetime"""
        if login not in self._users:
            user = self._request(lambda: self.gh.get_user(login), f"retrieving GitHub user {login}")
            self._users[login] = self._to_user(user)
        return self._users[login]

    def list_comments(self, issue: SourceIssue) -> List[SourceComment]:
        """All comments on an issue, oldest first"""
        if not issue.repository:
            raise SourceRequestError(f"Issue #{issue.number} has no repository")

        def _fetch():
            gh_issue = self.gh.get_repo(issue.repository, lazy=True).get_issue(issue.number)
            return list(gh_issue.get_comments())

        comments = self._request(_fetch, f"listing comments of {issue.repository}#{issue.number}")
        return [
            SourceComment(
                id=int(c.id),
                body=c.body or "",
                user=SourceUser(login=c.user.login, html_url=getattr(c.user, "html_url", None)),
                created_at=c.created_at,
                html_url=c.html_url,
            )
            for c in comments
        ]
