"""Notification collaborator - informed fire-and-forget after each write."""

import asyncio
from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from collab_engine.models.collaboration import utc_now
from collab_engine.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

# Strong references to in-flight deliveries so they are not garbage collected
_pending: set[asyncio.Task] = set()


class CollaborationEvent(BaseModel):
    """Something the other party should hear about."""
    type: str = Field(..., description="Event type, e.g. collab:proposal_received")
    collaboration_id: str
    recipient_id: str
    actor_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)


class Notifier:
    """Delivery interface; implementations push to email, sockets, etc."""

    async def notify(self, event: CollaborationEvent) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Default notifier: records the event in the structured log."""

    async def notify(self, event: CollaborationEvent) -> None:
        logger.info(
            "Collaboration notification",
            notification_type=event.type,
            collaboration_id=event.collaboration_id,
            recipient_id=mask_user_id(event.recipient_id),
            actor_id=mask_user_id(event.actor_id),
        )


async def _deliver(notifier: Notifier, event: CollaborationEvent) -> None:
    try:
        await notifier.notify(event)
    except Exception as e:
        # Delivery is best effort; the write it reports on is already committed
        logger.warning(
            f"Notification delivery failed (non-fatal): {e}",
            notification_type=event.type,
            collaboration_id=event.collaboration_id,
            error=str(e),
        )


def dispatch_notification(notifier: Optional[Notifier], event: CollaborationEvent) -> Optional[asyncio.Task]:
    """Schedule delivery without waiting for it."""
    if notifier is None:
        return None
    task = asyncio.create_task(_deliver(notifier, event))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain_notifications() -> None:
    """Wait for in-flight deliveries (shutdown hooks and tests)."""
    if _pending:
        await asyncio.gather(*list(_pending))
