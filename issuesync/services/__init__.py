"""Services"""

from issuesync.services.github_client import GitHubClient
from issuesync.services.jira_client import JiraClient, LiveJiraClient, PreviewJiraClient, new_jira_client
from issuesync.services.retry import ResilientInvoker
from issuesync.services.sync_service import SyncService

__all__ = [
    "GitHubClient",
    "JiraClient",
    "LiveJiraClient",
    "PreviewJiraClient",
    "new_jira_client",
    "ResilientInvoker",
    "SyncService",
]
