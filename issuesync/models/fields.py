"""Jira custom fields used to mirror GitHub data"""

import enum
import logging
from typing import Any, Dict, Iterable, Mapping

from issuesync.exceptions import MissingFieldError

logger = logging.getLogger(__name__)


class FieldKey(enum.Enum):
    """Semantic custom fields, valued by their display name in Jira"""

    SOURCE_ID = "GitHub ID"
    SOURCE_NUMBER = "GitHub Number"
    SOURCE_LABELS = "GitHub Labels"
    SOURCE_STATUS = "GitHub Status"
    SOURCE_REPORTER = "GitHub Reporter"
    LAST_SYNC_UPDATE = "Last Issue-Sync Update"
    SOURCE_URI = "GitHub URI"


class FieldMapping:
    """Resolved custom field IDs, one per FieldKey"""

    def __init__(self, ids: Mapping[FieldKey, str]):
        missing = [key for key in FieldKey if key not in ids]
        if missing:
            raise MissingFieldError(missing[0], missing[0].value)
        self._ids: Dict[FieldKey, str] = dict(ids)

    def field_id(self, key: FieldKey) -> str:
        """Numeric custom field ID, as used in JQL (`cf[10013]`)"""
        return self._ids[key]

    def field_key(self, key: FieldKey) -> str:
        """Field name as used in issue payloads (`customfield_10013`)"""
        return f"customfield_{self._ids[key]}"

    def __repr__(self):
        return f"<FieldMapping({', '.join(f'{k.name}={v}' for k, v in self._ids.items())})>"


class FieldRegistry:
    """Resolves FieldKeys to Jira custom field IDs from field metadata.

    The metadata is the JSON listing returned by `rest/api/2/field`; each entry
    carries a display `name` and, for custom fields, `schema.customId`.
    """

    @staticmethod
    def resolve(metadata: Iterable[Mapping[str, Any]]) -> FieldMapping:
        logger.debug("Collecting field IDs.")
        by_name = {key.value: key for key in FieldKey}
        ids: Dict[FieldKey, str] = {}

        for field in metadata:
            key = by_name.get(field.get("name"))
            if key is None or key in ids:
                continue
            custom_id = (field.get("schema") or {}).get("customId")
            if custom_id is None:
                continue
            ids[key] = str(custom_id)

        # Report the first missing key in declaration order
        for key in FieldKey:
            if key not in ids:
                raise MissingFieldError(key, key.value)

        logger.debug("All fields have been checked.")
        return FieldMapping(ids)
