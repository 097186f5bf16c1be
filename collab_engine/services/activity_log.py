"""Append-only activity log shared by every lifecycle component."""

from typing import Any, Optional
from datetime import datetime

from collab_engine.models.activity import ActivityKind, ActivityRecord
from collab_engine.models.collaboration import Collaboration, utc_now

MAX_MESSAGE_LENGTH = 500


class ActivityLog:
    """Single append interface over ``Collaboration.activities``.

    Records are frozen and the sequence is a tuple, so appending rebinds the
    field to a longer tuple; existing entries are never edited or dropped.
    The log is for display and audit only; state lives on the aggregate.
    """

    @staticmethod
    def append(
        collaboration: Collaboration,
        kind: ActivityKind,
        message: str,
        author_ref: str,
        metadata: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> ActivityRecord:
        if len(message) > MAX_MESSAGE_LENGTH:
            message = message[:MAX_MESSAGE_LENGTH - 3] + "..."
        record = ActivityRecord(
            kind=kind,
            message=message,
            author_ref=author_ref,
            created_at=now or utc_now(),
            metadata=metadata or {},
        )
        collaboration.activities = collaboration.activities + (record,)
        return record

    @staticmethod
    def timeline(
        collaboration: Collaboration,
        kind: Optional[ActivityKind] = None,
    ) -> list[ActivityRecord]:
        """Records in insertion order, optionally filtered by kind."""
        if kind is None:
            return list(collaboration.activities)
        return [record for record in collaboration.activities if record.kind == kind]
