"""Jira-side records"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from issuesync.exceptions import FieldValueError
from issuesync.models.fields import FieldKey, FieldMapping


class CustomFields(Mapping[str, Any]):
    """Read-only view of an issue's `customfield_*` values.

    Values are looked up through a FieldMapping and read with a typed accessor,
    so a number field that Jira returns as `12.0` and a text field holding a
    list are told apart instead of silently compared.
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = dict(values or {})

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self):
        return f"CustomFields({self._values!r})"

    def get_str(self, mapping: FieldMapping, key: FieldKey) -> str:
        name = mapping.field_key(key)
        value = self._values.get(name)
        if not isinstance(value, str):
            raise FieldValueError(f"{key.value} ({name}) is not a string: {value!r}")
        return value

    def get_int(self, mapping: FieldMapping, key: FieldKey) -> int:
        name = mapping.field_key(key)
        value = self._values.get(name)
        if isinstance(value, bool):
            raise FieldValueError(f"{key.value} ({name}) is not a number: {value!r}")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(float(value))
            except ValueError:
                pass
        raise FieldValueError(f"{key.value} ({name}) is not a number: {value!r}")


@dataclass(frozen=True)
class TargetComment:
    id: Optional[str]
    body: str
    author: Optional[str] = None
    created: Optional[str] = None


@dataclass(frozen=True)
class TargetIssue:
    """A Jira issue, or a field set to be submitted as one.

    Records returned by Jira carry a key and id; field sets built for a create
    have neither.
    """

    summary: str
    description: Optional[str] = None
    issue_type: Optional[str] = None
    custom: CustomFields = field(default_factory=CustomFields)
    key: Optional[str] = None
    id: Optional[str] = None
    comments: Tuple[TargetComment, ...] = ()

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "TargetIssue":
        """Build from the JSON of an issue as returned by the Jira REST API"""
        fields = raw.get("fields") or {}
        comments = []
        for c in (fields.get("comment") or {}).get("comments") or []:
            author = c.get("author") or {}
            comments.append(
                TargetComment(
                    id=str(c.get("id")) if c.get("id") is not None else None,
                    body=c.get("body") or "",
                    author=author.get("name") or author.get("displayName"),
                    created=c.get("created"),
                )
            )
        return cls(
            key=raw.get("key"),
            id=str(raw["id"]) if raw.get("id") is not None else None,
            summary=fields.get("summary") or "",
            description=fields.get("description"),
            issue_type=(fields.get("issuetype") or {}).get("name"),
            custom=CustomFields(
                {k: v for k, v in fields.items() if k.startswith("customfield_")}
            ),
            comments=tuple(comments),
        )

    def to_fields(self, project_key: Optional[str] = None) -> Dict[str, Any]:
        """Field payload for create/update requests"""
        fields: Dict[str, Any] = {"summary": self.summary, "description": self.description or ""}
        if self.issue_type:
            fields["issuetype"] = {"name": self.issue_type}
        if project_key:
            fields["project"] = {"key": project_key}
        fields.update(self.custom)
        return fields
