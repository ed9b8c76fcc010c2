"""Jira API client wrapper"""

import dataclasses
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Tuple, TypeVar

from jira import JIRA

from issuesync.exceptions import FieldValueError, RetryExhaustedError, TargetRequestError
from issuesync.models import (
    FieldKey,
    FieldMapping,
    FieldRegistry,
    SourceComment,
    TargetComment,
    TargetIssue,
)
from issuesync.services.markup import to_jira
from issuesync.services.retry import ResilientInvoker

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Above this many IDs the `in (...)` clause is dropped and results are filtered locally
MAX_JQL_ISSUE_LENGTH = 100
PAGE_SIZE = 50
MAX_BODY_LENGTH = 1 << 15


def truncate_body(body: str, limit: int = MAX_BODY_LENGTH) -> str:
    """Cut `body` to at most `limit` characters"""
    if len(body) <= limit:
        return body
    return body[:limit]


def format_comment_time(when: Optional[datetime]) -> str:
    """e.g. "15:04 PM, January 2 2006" """
    if when is None:
        return "unknown time"
    return f"{when:%H:%M %p, %B} {when.day} {when.year}"


def error_detail(error: BaseException) -> Tuple[str, Optional[int]]:
    """Server response text and status for a failed request.

    The response body is read once and the response closed; without a readable
    body the transport error itself is the detail.
    """
    response = getattr(error, "response", None)
    status = getattr(error, "status_code", None)
    if response is None:
        return str(error), status

    text = None
    try:
        text = response.text
    except Exception as read_error:
        logger.debug(f"Could not read error response body: {read_error}")
    finally:
        close = getattr(response, "close", None)
        if callable(close):
            close()

    if status is None:
        status = getattr(response, "status_code", None)
    return (text or str(error)), status


class JiraClient(ABC):
    """Access to a Jira project.

    Reads always hit the server. The write operations are left to the
    variants: LiveJiraClient performs them, PreviewJiraClient only logs them.
    """

    def __init__(
        self,
        jira: JIRA,
        project_key: str,
        fields: FieldMapping,
        github,
        invoker: ResilientInvoker,
        *,
        max_body_length: int = MAX_BODY_LENGTH,
    ):
        self.jira = jira
        self.project_key = project_key
        self.fields = fields
        self.github = github
        self.invoker = invoker
        self.max_body_length = max_body_length

    def _request(self, fn: Callable[[], T], what: str) -> T:
        try:
            return self.invoker.invoke(fn)
        except RetryExhaustedError as e:
            detail, status = error_detail(e.last_error)
            logger.error(f"Error {what}: {detail}")
            raise TargetRequestError(detail, status_code=status) from e

    def _search_page(self, jql: str, start: int) -> dict:
        return self._request(
            lambda: self.jira.search_issues(jql, startAt=start, maxResults=PAGE_SIZE, json_result=True),
            "listing JIRA issues",
        )

    def list_issues(self, ids: Iterable[int]) -> List[TargetIssue]:
        """Issues of the project whose GitHub ID is one of `ids`"""
        wanted = {int(i) for i in ids}
        if not wanted:
            return []

        field_id = self.fields.field_id(FieldKey.SOURCE_ID)
        if len(wanted) < MAX_JQL_ISSUE_LENGTH:
            id_list = ",".join(str(i) for i in sorted(wanted))
            jql = f"project='{self.project_key}' AND cf[{field_id}] in ({id_list})"
        else:
            jql = f"project='{self.project_key}'"

        raw_issues: List[dict] = []
        while True:
            page = self._search_page(jql, len(raw_issues))
            issues = page.get("issues") or []
            raw_issues.extend(issues)
            if not issues or len(raw_issues) >= int(page.get("total") or 0):
                break
        logger.debug(f"Fetched {len(raw_issues)} JIRA issues for {len(wanted)} GitHub IDs")

        matched = []
        for raw in raw_issues:
            issue = TargetIssue.from_raw(raw)
            try:
                source_id = issue.custom.get_int(self.fields, FieldKey.SOURCE_ID)
            except FieldValueError:
                continue
            if source_id in wanted:
                matched.append(issue)
        return matched

    def get_issue(self, key: str) -> TargetIssue:
        issue = self._request(lambda: self.jira.issue(key), f"retrieving JIRA issue {key}")
        return TargetIssue.from_raw(issue.raw)

    def comment_body(self, comment: SourceComment) -> str:
        """Mirrored comment text: a header identifying the GitHub comment, then its body"""
        user = self.github.get_user(comment.user.login)
        name = f" ({user.name})" if user.name else ""
        body = (
            f"Comment [(ID {comment.id})|{comment.html_url or ''}] "
            f"from GitHub user [{user.login}|{user.html_url or ''}]{name} "
            f"at {format_comment_time(comment.created_at)}:\n\n{to_jira(comment.body)}"
        )
        return truncate_body(body, self.max_body_length)

    @abstractmethod
    def create_issue(self, issue: TargetIssue) -> TargetIssue:
        ...

    @abstractmethod
    def update_issue(self, issue: TargetIssue) -> TargetIssue:
        ...

    @abstractmethod
    def create_comment(self, issue: TargetIssue, comment: SourceComment) -> TargetComment:
        ...

    @abstractmethod
    def update_comment(self, issue: TargetIssue, comment_id: str, comment: SourceComment) -> TargetComment:
        ...


class LiveJiraClient(JiraClient):
    """Applies every change to Jira"""

    def create_issue(self, issue: TargetIssue) -> TargetIssue:
        payload = issue.to_fields(self.project_key)
        # Without prefetch the retried call is the POST alone, so a failed read cannot repeat it
        created = self._request(
            lambda: self.jira.create_issue(fields=payload, prefetch=False), "creating JIRA issue"
        )
        logger.info(f"Created JIRA issue {created.key}")
        return dataclasses.replace(issue, key=created.key, id=str(created.id))

    def update_issue(self, issue: TargetIssue) -> TargetIssue:
        # Raw PUT: Issue.update() needs a fetched Issue resource first
        url = self.jira._get_url(f"issue/{issue.key}")
        data = json.dumps({"fields": issue.to_fields()})
        self._request(lambda: self.jira._session.put(url, data=data), f"updating JIRA issue {issue.key}")
        logger.info(f"Updated JIRA issue {issue.key}")
        return issue

    def create_comment(self, issue: TargetIssue, comment: SourceComment) -> TargetComment:
        body = self.comment_body(comment)
        created = self._request(
            lambda: self.jira.add_comment(issue.key, body), f"adding comment to JIRA issue {issue.key}"
        )
        logger.debug(f"Created JIRA comment {created.id} on {issue.key}")
        return TargetComment(id=str(created.id), body=body)

    def update_comment(self, issue: TargetIssue, comment_id: str, comment: SourceComment) -> TargetComment:
        body = self.comment_body(comment)
        url = self.jira._get_url(f"issue/{issue.key}/comment/{comment_id}")
        data = json.dumps({"body": body})
        self._request(
            lambda: self.jira._session.put(url, data=data),
            f"updating comment {comment_id} of JIRA issue {issue.key}",
        )
        logger.debug(f"Updated JIRA comment {comment_id} on {issue.key}")
        return TargetComment(id=str(comment_id), body=body)


def _preview(text: Optional[str], length: int = 50) -> str:
    if not text:
        return "empty"
    text = text.replace("\n", "\\n")
    if len(text) > length:
        return text[:length] + "..."
    return text


class PreviewJiraClient(JiraClient):
    """Logs the changes a live run would make without applying them"""

    def _custom(self, issue: TargetIssue, key: FieldKey) -> Any:
        return issue.custom.get(self.fields.field_key(key))

    def create_issue(self, issue: TargetIssue) -> TargetIssue:
        logger.info("")
        logger.info("Create new JIRA issue:")
        logger.info(f"  Summary: {issue.summary}")
        logger.info(f"  Description: {_preview(issue.description)}")
        logger.info(f"  GitHub ID: {self._custom(issue, FieldKey.SOURCE_ID)}")
        logger.info(f"  GitHub Number: {self._custom(issue, FieldKey.SOURCE_NUMBER)}")
        logger.info(f"  Labels: {self._custom(issue, FieldKey.SOURCE_LABELS)}")
        logger.info(f"  State: {self._custom(issue, FieldKey.SOURCE_STATUS)}")
        logger.info(f"  Reporter: {self._custom(issue, FieldKey.SOURCE_REPORTER)}")
        logger.info("")
        return issue

    def update_issue(self, issue: TargetIssue) -> TargetIssue:
        logger.info("")
        logger.info(f"Update JIRA issue {issue.key}:")
        logger.info(f"  Summary: {issue.summary}")
        logger.info(f"  Description: {_preview(issue.description)}")
        logger.info(f"  Labels: {self._custom(issue, FieldKey.SOURCE_LABELS)}")
        logger.info(f"  State: {self._custom(issue, FieldKey.SOURCE_STATUS)}")
        logger.info("")
        return issue

    def create_comment(self, issue: TargetIssue, comment: SourceComment) -> TargetComment:
        body = self.comment_body(comment)
        logger.info(f"Create comment on JIRA issue {issue.key or issue.summary}:")
        logger.info(f"  GitHub comment ID: {comment.id}")
        logger.info(f"  Body: {_preview(body)}")
        return TargetComment(id=None, body=body)

    def update_comment(self, issue: TargetIssue, comment_id: str, comment: SourceComment) -> TargetComment:
        body = self.comment_body(comment)
        logger.info(f"Update JIRA comment {comment_id} on issue {issue.key}:")
        logger.info(f"  Body: {_preview(body)}")
        return TargetComment(id=str(comment_id), body=body)


def connect_jira(settings) -> JIRA:
    """Authenticated JIRA connection; retries are left to ResilientInvoker"""
    options = {
        "server": settings.jira_uri,
        "timeout": settings.timeout_seconds,
        "max_retries": 0,
        "get_server_info": False,
    }
    if settings.basic_auth:
        options["basic_auth"] = (settings.jira_user, settings.jira_secret)
    else:
        with open(settings.jira_private_key_path, "r", encoding="utf-8") as f:
            key_cert = f.read()
        options["oauth"] = {
            "access_token": settings.jira_token,
            "access_token_secret": settings.jira_secret,
            "consumer_key": settings.jira_consumer_key,
            "key_cert": key_cert,
        }
    logger.debug(f"Connecting to JIRA at {settings.jira_uri}")
    return JIRA(**options)


def new_jira_client(settings, github, invoker: ResilientInvoker, jira: Optional[JIRA] = None) -> JiraClient:
    """Connect, look up the project and resolve custom fields.

    Returns a PreviewJiraClient when `settings.dry_run` is set. Raises
    MissingFieldError before anything is written if a custom field is absent.
    """
    if jira is None:
        jira = connect_jira(settings)

    def _project():
        return jira.project(settings.jira_project)

    def _fields():
        return jira.fields()

    try:
        project = invoker.invoke(_project)
        metadata = invoker.invoke(_fields)
    except RetryExhaustedError as e:
        detail, status = error_detail(e.last_error)
        logger.error(f"Error connecting to JIRA project {settings.jira_project}: {detail}")
        raise TargetRequestError(detail, status_code=status) from e

    fields = FieldRegistry.resolve(metadata)
    logger.debug(f"Resolved JIRA fields: {fields!r}")

    client_cls = PreviewJiraClient if settings.dry_run else LiveJiraClient
    return client_cls(
        jira,
        project.key,
        fields,
        github,
        invoker,
        max_body_length=settings.max_comment_length,
    )
