"""Data model"""

from issuesync.models.fields import FieldKey, FieldMapping, FieldRegistry
from issuesync.models.source import SourceComment, SourceIssue, SourceUser
from issuesync.models.target import CustomFields, TargetComment, TargetIssue

__all__ = [
    "FieldKey",
    "FieldMapping",
    "FieldRegistry",
    "SourceIssue",
    "SourceComment",
    "SourceUser",
    "CustomFields",
    "TargetIssue",
    "TargetComment",
]
