"""Exceptions raised by issue-sync"""

from typing import Optional


class IssueSyncError(Exception):
    """Base class for all issue-sync errors"""


class ConfigurationError(IssueSyncError):
    """Fatal configuration problem, reported before any issue is processed"""


class MissingFieldError(ConfigurationError):
    """A required Jira custom field could not be found"""

    def __init__(self, field_key, field_name: str):
        self.field_key = field_key
        self.field_name = field_name
        super().__init__(
            f"could not find ID of '{field_name}' custom field ({field_key.name}); "
            "check that it is named correctly"
        )


class FieldValueError(IssueSyncError):
    """A custom field is missing or holds a value of an unexpected type"""


class SyncCancelled(IssueSyncError):
    """The run was cancelled while waiting between retries"""


class RetryExhaustedError(IssueSyncError):
    """A remote call kept failing until the elapsed-time budget ran out"""

    def __init__(self, last_error: BaseException, elapsed: float):
        self.last_error = last_error
        self.elapsed = elapsed
        super().__init__(f"gave up after {elapsed:.1f}s: {last_error}")


class RemoteRequestError(IssueSyncError):
    """Terminal failure of a remote call, carrying the server's response as detail"""

    def __init__(self, detail: str, status_code: Optional[int] = None):
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


class TargetRequestError(RemoteRequestError):
    """Terminal failure of a Jira request"""


class SourceRequestError(RemoteRequestError):
    """Terminal failure of a GitHub request"""
