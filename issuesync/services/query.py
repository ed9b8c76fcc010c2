"""GitHub issue search query construction"""

from datetime import datetime
from typing import Iterable, List


def build_user_query(users: Iterable[str]) -> List[str]:
    return [f"involves:{user}" for user in users]


def build_repo_query(org) -> List[str]:
    return [f"repo:{org.name}/{repo}" for repo in org.repos]


def build_org_query(organisations: Iterable) -> List[str]:
    """One `org:` term per organisation, or one `repo:` term per listed repository"""
    terms: List[str] = []
    for org in organisations:
        if org.repos:
            terms.extend(build_repo_query(org))
        else:
            terms.append(f"org:{org.name}")
    return terms


def build_since_query(since: datetime) -> str:
    # isoformat() renders the offset as +HH:MM, which the search API accepts
    return f"updated:>={since.replace(microsecond=0).isoformat()}"


def build_query(users: Iterable[str], organisations: Iterable, since: datetime) -> str:
    """Compose the search query for issues to reconcile.

    `users` are the logins an issue must involve, `organisations` are objects
    with `name` and `repos` (see config.Organisation) and `since` is the
    watermark.
    """
    terms = build_user_query(users)
    terms.extend(build_org_query(organisations))
    terms.append(build_since_query(since))
    return " ".join(terms)
