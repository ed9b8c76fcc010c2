"""Issue synchronization service"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from issuesync.config import DATE_FORMAT
from issuesync.exceptions import FieldValueError, SyncCancelled
from issuesync.models import CustomFields, FieldKey, SourceIssue, TargetComment, TargetIssue
from issuesync.services.github_client import GitHubClient
from issuesync.services.jira_client import JiraClient
from issuesync.services.markup import to_jira
from issuesync.services.query import build_query

logger = logging.getLogger(__name__)

DEFAULT_ISSUE_TYPE = "Task"


class SyncService:
    """Mirrors GitHub issues and their comments into a Jira project"""

    # Header written by JiraClient.comment_body; group 1 is the GitHub comment ID
    _COMMENT_RE = re.compile(
        r"^Comment \[\(ID (\d+)\)\|.*?\] from GitHub user \[.+?\|.*?\](?: \(.*?\))? at .+?:\n\n(.*)\Z",
        re.DOTALL,
    )

    def __init__(self, settings, github: GitHubClient, jira: JiraClient):
        self.settings = settings
        self.github = github
        self.jira = jira

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @property
    def fields(self):
        return self.jira.fields

    def did_issue_change(self, source: SourceIssue, target: TargetIssue) -> bool:
        """Whether any mirrored value of `target` differs from `source`"""
        logger.debug(f"Comparing GitHub issue #{source.number} and JIRA issue {target.key}")

        if source.title != target.summary:
            return True
        if to_jira(source.body) != (target.description or ""):
            return True

        try:
            if target.custom.get_str(self.fields, FieldKey.SOURCE_STATUS) != source.state:
                return True
            if target.custom.get_str(self.fields, FieldKey.SOURCE_REPORTER) != source.user.login:
                return True
        except FieldValueError as e:
            logger.debug(f"Treating JIRA issue {target.key} as changed: {e}")
            return True

        # Jira drops empty text fields, so no value means no labels
        labels = target.custom.get(self.fields.field_key(FieldKey.SOURCE_LABELS))
        if labels is None:
            labels = ""
        if not isinstance(labels, str) or labels != source.label_string:
            return True

        logger.debug(f"Issues have not changed: #{source.number} / {target.key}")
        return False

    def _mirrored_fields(self, source: SourceIssue) -> Dict[str, object]:
        f = self.fields
        return {
            f.field_key(FieldKey.SOURCE_STATUS): source.state,
            f.field_key(FieldKey.SOURCE_REPORTER): source.user.login,
            f.field_key(FieldKey.SOURCE_LABELS): source.label_string,
            f.field_key(FieldKey.SOURCE_URI): source.html_url or "",
            f.field_key(FieldKey.LAST_SYNC_UPDATE): self._now().strftime(DATE_FORMAT),
        }

    def update_issue(self, source: SourceIssue, target: TargetIssue) -> bool:
        """Bring `target` up to date with `source`; returns whether fields were written"""
        changed = self.did_issue_change(source, target)
        if changed:
            issue = TargetIssue(
                key=target.key,
                id=target.id,
                summary=source.title,
                description=to_jira(source.body),
                issue_type=target.issue_type,
                custom=CustomFields(self._mirrored_fields(source)),
            )
            self.jira.update_issue(issue)
            logger.debug(f"Successfully updated JIRA issue {target.key}!")
        else:
            logger.debug(f"JIRA issue {target.key} is already up to date!")

        refreshed = self.jira.get_issue(target.key)
        self.compare_comments(source, refreshed)
        return changed

    def create_issue(self, source: SourceIssue) -> TargetIssue:
        """Create a Jira issue mirroring `source`, then its comments"""
        logger.info(f"Creating JIRA issue based on GitHub issue #{source.number}")
        values = self._mirrored_fields(source)
        values[self.fields.field_key(FieldKey.SOURCE_ID)] = source.id
        values[self.fields.field_key(FieldKey.SOURCE_NUMBER)] = source.number

        issue = TargetIssue(
            summary=source.title,
            description=to_jira(source.body),
            issue_type=DEFAULT_ISSUE_TYPE,
            custom=CustomFields(values),
        )
        created = self.jira.create_issue(issue)
        if created.key:
            created = self.jira.get_issue(created.key)

        self.compare_comments(source, created)
        return created

    def _mirrored_comments(self, target: TargetIssue) -> Dict[int, Tuple[TargetComment, str]]:
        found: Dict[int, Tuple[TargetComment, str]] = {}
        for comment in target.comments:
            m = self._COMMENT_RE.match(comment.body or "")
            if m:
                found.setdefault(int(m.group(1)), (comment, m.group(2)))
        return found

    def _same_body(self, existing: TargetComment, mirrored: str, expected: str) -> bool:
        if mirrored == expected:
            return True
        # Bodies over the length limit are stored cut off
        return len(existing.body) >= self.jira.max_body_length and expected.startswith(mirrored)

    def compare_comments(self, source: SourceIssue, target: TargetIssue) -> Dict[str, int]:
        """Create or update the Jira comments mirroring the comments on `source`"""
        stats = {"created": 0, "updated": 0, "unchanged": 0}
        if source.comment_count == 0:
            logger.debug(f"GitHub issue #{source.number} has no comments")
            return stats

        comments = self.github.list_comments(source)
        mirrored = self._mirrored_comments(target)

        for comment in comments:
            match = mirrored.get(comment.id)
            if match is None:
                self.jira.create_comment(target, comment)
                stats["created"] += 1
                continue

            existing, body = match
            if self._same_body(existing, body, to_jira(comment.body)):
                stats["unchanged"] += 1
                continue
            self.jira.update_comment(target, existing.id, comment)
            stats["updated"] += 1

        logger.debug(f"Comments of GitHub issue #{source.number}: {stats}")
        return stats

    def compare_issues(self, source_issues: Sequence[SourceIssue]) -> Dict[str, int]:
        """Reconcile a batch of GitHub issues; one failing issue does not stop the rest"""
        stats = {"created": 0, "updated": 0, "unchanged": 0, "errors": 0}
        if not source_issues:
            logger.info("No GitHub issues to sync")
            return stats

        logger.debug("Collecting JIRA issues")
        targets = self.jira.list_issues([i.id for i in source_issues])

        by_source_id: Dict[int, TargetIssue] = {}
        for target in targets:
            try:
                source_id = target.custom.get_int(self.fields, FieldKey.SOURCE_ID)
            except FieldValueError:
                continue
            by_source_id.setdefault(source_id, target)

        for source in source_issues:
            target: Optional[TargetIssue] = by_source_id.get(source.id)
            try:
                if target is not None:
                    if self.update_issue(source, target):
                        stats["updated"] += 1
                    else:
                        stats["unchanged"] += 1
                else:
                    self.create_issue(source)
                    stats["created"] += 1
            except SyncCancelled:
                raise
            except Exception as e:
                if target is not None:
                    logger.error(f"Error updating JIRA issue {target.key}: {e}")
                else:
                    logger.error(f"Error creating JIRA issue for GitHub issue #{source.number}: {e}")
                stats["errors"] += 1

        logger.info(f"Sync completed: {stats}")
        return stats

    def sync(self, since: datetime) -> Dict[str, int]:
        """Search GitHub for issues updated since `since` and reconcile them"""
        users: List[str] = []
        if self.settings.github_user_source_org:
            users = self.github.get_org_members(self.settings.github_user_source_org)

        query = build_query(users, self.settings.repos, since)
        logger.info(f"Searching GitHub issues updated since {since.strftime(DATE_FORMAT)}")
        issues = self.github.search_issues(query)
        return self.compare_issues(issues)
