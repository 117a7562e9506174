"""Notification deliveries for issue activity.

Deliveries land in an in-process outbox (a mail transport would drain it).
Every call site checks the ambient suppression flag and the record's own
``notify`` attribute and does nothing when either asks for silence.
"""
from __future__ import annotations

import collections
import logging
import time
from typing import Any

from .models import Issue, IssueRelation, Journal
from .overrides import notifications_suppressed

log = logging.getLogger("extended_api.notifications")

OUTBOX: collections.deque[dict[str, Any]] = collections.deque(maxlen=1000)


def _silenced(record: Any) -> bool:
    if notifications_suppressed():
        return True
    return getattr(record, "notify", True) is False


def deliver(event: str, **payload: Any) -> bool:
    if notifications_suppressed():
        log.debug("notification %s suppressed", event)
        return False
    OUTBOX.append({"ts": time.time(), "event": event, **payload})
    return True


def issue_added(issue: Issue) -> bool:
    if _silenced(issue):
        return False
    return deliver("issue_added", issue_id=issue.id, author_id=issue.author_id)


def issue_edited(journal: Journal) -> bool:
    if _silenced(journal):
        return False
    return deliver("issue_edited", issue_id=journal.journalized_id, journal_id=journal.id, user_id=journal.user_id)


def relation_changed(relation: IssueRelation, change: str) -> bool:
    if _silenced(relation):
        return False
    return deliver(
        "relation_" + change,
        relation_id=relation.id,
        issue_from_id=relation.issue_from_id,
        issue_to_id=relation.issue_to_id,
    )


def clear_outbox() -> None:
    OUTBOX.clear()


__all__ = ["OUTBOX", "deliver", "issue_added", "issue_edited", "relation_changed", "clear_outbox"]
