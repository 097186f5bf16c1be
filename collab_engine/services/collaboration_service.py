"""Collaboration service - the operations offered to API/controller layers.

Every mutation is applied as one all-or-nothing write against a single
aggregate: a per-aggregate lock serializes writers inside this process and
the repository's version check rejects writes based on a stale read made by
another process.
"""

import asyncio
import weakref
from typing import Callable, Optional, Union
from datetime import datetime
from pydantic import ValidationError

from collab_engine.models.activity import ActivityKind
from collab_engine.models.collaboration import (
    Collaboration,
    CollaborationStatus,
    Compensation,
    CompensationScheme,
    PROGRESS_STEP_TITLES,
    utc_now,
)
from collab_engine.models.party import Party, PartyRole, PostReference, UserType
from collab_engine.services import contract_signing, progress_tracker, status_engine
from collab_engine.services.activity_log import ActivityLog
from collab_engine.services.compensation import describe_compensation
from collab_engine.services.listing_directory import (
    InMemoryListingDirectory,
    ListingDirectory,
    SupabaseListingDirectory,
)
from collab_engine.services.notifications import (
    CollaborationEvent,
    LoggingNotifier,
    Notifier,
    dispatch_notification,
)
from collab_engine.services.repository import (
    CollaborationRepository,
    InMemoryCollaborationRepository,
    SupabaseCollaborationRepository,
)
from collab_engine.utils.errors import (
    CollabEngineError,
    InvalidTransition,
    PreconditionFailed,
    Unauthorized,
)
from collab_engine.utils.logging import (
    get_structured_logger,
    log_timing,
    mask_user_id,
    sanitize_message_text,
)
from collab_engine.utils.settings import EngineConfig

logger = get_structured_logger(__name__)

# Returns the notifications to send, or None when nothing changed
Mutation = Callable[[Collaboration, datetime], Optional[list[CollaborationEvent]]]


def other_role(role: PartyRole) -> PartyRole:
    return PartyRole.COLLABORATOR if role == PartyRole.OWNER else PartyRole.OWNER


def _event(
    collaboration: Collaboration,
    event_type: str,
    actor_role: PartyRole,
    recipient_role: PartyRole,
    **data,
) -> CollaborationEvent:
    return CollaborationEvent(
        type=event_type,
        collaboration_id=collaboration.id,
        recipient_id=collaboration.party_for(recipient_role).user_id,
        actor_id=collaboration.party_for(actor_role).user_id,
        data=data,
    )


class CollaborationService:
    """Async facade over the lifecycle components."""

    def __init__(
        self,
        repository: Optional[CollaborationRepository] = None,
        notifier: Optional[Notifier] = None,
        auto_activate: Optional[bool] = None,
        listing_directory: Optional[ListingDirectory] = None,
    ):
        self.repository = repository or InMemoryCollaborationRepository()
        self.listing_directory = listing_directory or InMemoryListingDirectory()
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.auto_activate = EngineConfig.AUTO_ACTIVATE_ON_SIGNATURE if auto_activate is None else auto_activate
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _notify(self, events: list[CollaborationEvent]) -> None:
        for event in events:
            dispatch_notification(self.notifier, event)

    async def _mutate(
        self,
        collaboration_id: str,
        operation: str,
        acting_role: PartyRole,
        mutation: Mutation,
    ) -> Collaboration:
        with log_timing(operation, logger=logger, collaboration_id=collaboration_id):
            async with self._lock_for(collaboration_id):
                current = await self.repository.get(collaboration_id)
                working = current.model_copy(deep=True)
                now = utc_now()
                try:
                    events = mutation(working, now)
                except CollabEngineError as e:
                    logger.warning(
                        f"Collaboration {operation} rejected: {e.message}",
                        operation=operation,
                        collaboration_id=collaboration_id,
                        acting_role=acting_role.value,
                        status=current.overall_status.value,
                        error_code=e.code,
                    )
                    raise

                if events is None:
                    logger.debug(
                        f"Collaboration {operation} changed nothing",
                        operation=operation,
                        collaboration_id=collaboration_id,
                    )
                    return current

                working.updated_at = now
                working.version = current.version + 1
                saved = await self.repository.save(working, expected_version=current.version)

        logger.info(
            f"Collaboration {operation} applied",
            operation=operation,
            collaboration_id=collaboration_id,
            acting_role=acting_role.value,
            previous_status=current.overall_status.value,
            status=saved.overall_status.value,
            version=saved.version,
        )
        self._notify(events)
        return saved

    # Queries

    async def get(self, collaboration_id: str) -> Collaboration:
        return await self.repository.get(collaboration_id)

    async def resolve_role(self, collaboration_id: str, user_id: Optional[str]) -> PartyRole:
        """Identity resolution: which role ``user_id`` plays on the collaboration."""
        collaboration = await self.repository.get(collaboration_id)
        return collaboration.role_of(user_id)

    async def list_for_user(self, user_id: str) -> list[Collaboration]:
        return await self.repository.list_for_user(user_id)

    async def list_for_post(self, post_id: str, user_id: Optional[str] = None) -> list[Collaboration]:
        """Collaborations on a post, newest first; only those ``user_id`` is a party to when given."""
        collaborations = await self.repository.list_for_post(post_id)
        if user_id is None:
            return collaborations
        return [c for c in collaborations if c.role_of(user_id) != PartyRole.NONE]

    async def get_contract(self, collaboration_id: str, viewer_role: PartyRole) -> contract_signing.ContractView:
        collaboration = await self.repository.get(collaboration_id)
        return contract_signing.contract_view(collaboration, viewer_role)

    # Operations

    async def propose(
        self,
        post: PostReference,
        initiator: Party,
        compensation: Union[Compensation, dict],
        message: Optional[str] = None,
    ) -> Collaboration:
        """Create a pending collaboration proposed by ``initiator`` on a post.

        The owner, and with it the lead-provider cap, comes from the listing
        directory.
        """
        if not isinstance(compensation, Compensation):
            try:
                compensation = Compensation.model_validate(compensation)
            except ValidationError as e:
                raise PreconditionFailed(f"Invalid compensation: {e.errors()[0]['msg']}")

        owner = await self.listing_directory.resolve_post_owner(post)

        if initiator.user_id == owner.user_id:
            raise PreconditionFailed("Cannot collaborate on your own post", post_id=post.post_id)

        if (
            owner.user_type == UserType.APPORTEUR
            and compensation.scheme == CompensationScheme.PERCENTAGE
            and compensation.percentage >= EngineConfig.APPORTEUR_MAX_PERCENTAGE
        ):
            raise PreconditionFailed(
                f"Commission percentage must be less than {EngineConfig.APPORTEUR_MAX_PERCENTAGE:g}% for apporteur posts",
                percentage=compensation.percentage,
            )

        message = message.strip() if message else None
        if message and len(message) > EngineConfig.MESSAGE_MAX_LENGTH:
            raise PreconditionFailed(
                "Proposal message too long",
                max_length=EngineConfig.MESSAGE_MAX_LENGTH,
            )

        with log_timing("propose", logger=logger, post_id=post.post_id):
            async with self._lock_for(f"post:{post.post_id}"):
                existing = await self.repository.find_open_for_post(post.post_id)
                if existing is not None:
                    raise PreconditionFailed(
                        f"{post.post_type.value} already under collaboration",
                        post_id=post.post_id,
                        collaboration_id=existing.id,
                    )

                collaboration = Collaboration(
                    post=post,
                    owner_party=owner,
                    initiator_party=initiator,
                    compensation=compensation,
                    proposal_message=message,
                )
                ActivityLog.append(
                    collaboration,
                    ActivityKind.PROPOSAL,
                    describe_compensation(compensation),
                    initiator.user_id,
                    metadata={"compensation": compensation.model_dump(mode="json")},
                    now=collaboration.created_at,
                )
                created = await self.repository.create(collaboration)

        logger.info(
            "Collaboration proposed",
            collaboration_id=created.id,
            post_id=post.post_id,
            post_type=post.post_type.value,
            initiator_id=mask_user_id(initiator.user_id),
            owner_id=mask_user_id(owner.user_id),
            scheme=compensation.scheme.value,
            proposal_message=sanitize_message_text(message),
        )
        self._notify([
            _event(
                created,
                "collab:proposal_received",
                PartyRole.COLLABORATOR,
                PartyRole.OWNER,
                post_id=post.post_id,
                post_type=post.post_type.value,
                compensation=compensation.model_dump(mode="json"),
            )
        ])
        return created

    async def respond(
        self,
        collaboration_id: str,
        acting_role: PartyRole,
        decision: Union[CollaborationStatus, str],
    ) -> Collaboration:
        """Owner accepts or rejects a pending proposal."""
        try:
            target = CollaborationStatus(decision)
        except ValueError:
            target = None
        if target not in (CollaborationStatus.ACCEPTED, CollaborationStatus.REJECTED):
            raise PreconditionFailed("Decision must be accepted or rejected", decision=str(decision))

        def mutation(collaboration: Collaboration, now: datetime):
            status_engine.transition(collaboration, target, acting_role, now=now)
            if target == CollaborationStatus.ACCEPTED and not collaboration.contract.exists:
                collaboration.contract.text = contract_signing.default_contract_text(collaboration)
            return [
                _event(
                    collaboration,
                    f"collab:proposal_{target.value}",
                    acting_role,
                    other_role(acting_role),
                )
            ]

        return await self._mutate(collaboration_id, "respond", acting_role, mutation)

    async def cancel(
        self,
        collaboration_id: str,
        acting_role: PartyRole,
        reason: Optional[str] = None,
    ) -> Collaboration:
        def mutation(collaboration: Collaboration, now: datetime):
            status_engine.transition(
                collaboration, CollaborationStatus.CANCELLED, acting_role, reason=reason, now=now
            )
            return [_event(collaboration, "collab:cancelled", acting_role, other_role(acting_role), reason=reason)]

        return await self._mutate(collaboration_id, "cancel", acting_role, mutation)

    async def activate(self, collaboration_id: str, acting_role: PartyRole) -> Collaboration:
        """Explicit accepted -> active transition once the contract is fully signed."""
        def mutation(collaboration: Collaboration, now: datetime):
            status_engine.transition(collaboration, CollaborationStatus.ACTIVE, acting_role, now=now)
            return [_event(collaboration, "collab:activated", acting_role, other_role(acting_role))]

        return await self._mutate(collaboration_id, "activate", acting_role, mutation)

    async def validate_progress_step(
        self,
        collaboration_id: str,
        step_id,
        acting_role: PartyRole,
        note: Optional[str] = None,
    ) -> Collaboration:
        def mutation(collaboration: Collaboration, now: datetime):
            record = progress_tracker.validate_step(collaboration, step_id, acting_role, note=note, now=now)
            return [
                _event(
                    collaboration,
                    "collab:progress_updated",
                    acting_role,
                    other_role(acting_role),
                    step_id=record.step_id.value,
                    step=PROGRESS_STEP_TITLES[record.step_id],
                    step_completed=record.completed,
                    validated_by=acting_role.value,
                )
            ]

        return await self._mutate(collaboration_id, "validate_progress_step", acting_role, mutation)

    async def update_contract(
        self,
        collaboration_id: str,
        acting_role: PartyRole,
        text: Optional[str],
        additional_terms: Optional[str] = None,
    ) -> Collaboration:
        def mutation(collaboration: Collaboration, now: datetime):
            changed = contract_signing.update_contract_text(
                collaboration, text, additional_terms, acting_role, now=now
            )
            if not changed:
                return None
            return [
                _event(
                    collaboration,
                    "contract:updated",
                    acting_role,
                    other_role(acting_role),
                    requires_resigning=collaboration.contract.modified_since_signing,
                )
            ]

        return await self._mutate(collaboration_id, "update_contract", acting_role, mutation)

    async def sign(self, collaboration_id: str, acting_role: PartyRole) -> Collaboration:
        """Sign the contract; the second signature also activates the collaboration when auto-activation is on."""
        def mutation(collaboration: Collaboration, now: datetime):
            fully_signed = contract_signing.sign_contract(collaboration, acting_role, now=now)
            events = [_event(collaboration, "contract:signed", acting_role, other_role(acting_role))]
            if fully_signed and self.auto_activate:
                status_engine.transition(collaboration, CollaborationStatus.ACTIVE, acting_role, now=now)
                events.extend(
                    _event(collaboration, "collab:activated", acting_role, recipient)
                    for recipient in (PartyRole.OWNER, PartyRole.COLLABORATOR)
                )
            return events

        return await self._mutate(collaboration_id, "sign", acting_role, mutation)

    async def complete(
        self,
        collaboration_id: str,
        acting_role: PartyRole,
        completion_reason,
    ) -> Collaboration:
        def mutation(collaboration: Collaboration, now: datetime):
            status_engine.transition(
                collaboration,
                CollaborationStatus.COMPLETED,
                acting_role,
                completion_reason=completion_reason,
                now=now,
            )
            return [
                _event(
                    collaboration,
                    "collab:completed",
                    acting_role,
                    other_role(acting_role),
                    completion_reason=collaboration.completion_reason.value,
                )
            ]

        return await self._mutate(collaboration_id, "complete", acting_role, mutation)

    async def add_note(self, collaboration_id: str, acting_role: PartyRole, content: str) -> Collaboration:
        """Free-form note on the timeline of an active collaboration."""
        content = content.strip() if content else ""

        def mutation(collaboration: Collaboration, now: datetime):
            if collaboration.is_terminal:
                raise InvalidTransition(
                    "Collaboration is closed",
                    status=collaboration.overall_status.value,
                )
            if acting_role == PartyRole.NONE:
                raise Unauthorized("Not authorized to add notes to this collaboration")
            if collaboration.overall_status != CollaborationStatus.ACTIVE:
                raise PreconditionFailed(
                    "Cannot add notes until collaboration is active",
                    status=collaboration.overall_status.value,
                )
            if not content:
                raise PreconditionFailed("Note content is required")
            if len(content) > EngineConfig.MESSAGE_MAX_LENGTH:
                raise PreconditionFailed("Note too long", max_length=EngineConfig.MESSAGE_MAX_LENGTH)

            ActivityLog.append(
                collaboration,
                ActivityKind.NOTE,
                content,
                collaboration.party_for(acting_role).user_id,
                now=now,
            )
            return [_event(collaboration, "collab:note_added", acting_role, other_role(acting_role))]

        return await self._mutate(collaboration_id, "add_note", acting_role, mutation)


# Global service instance (singleton pattern)
_service: Optional[CollaborationService] = None


def build_repository() -> CollaborationRepository:
    """Repository selected by COLLAB_REPOSITORY_BACKEND."""
    if EngineConfig.REPOSITORY_BACKEND == "supabase":
        return SupabaseCollaborationRepository()
    return InMemoryCollaborationRepository()


def build_listing_directory() -> ListingDirectory:
    if EngineConfig.REPOSITORY_BACKEND == "supabase":
        return SupabaseListingDirectory()
    return InMemoryListingDirectory()


def get_collaboration_service() -> CollaborationService:
    """Get or create the process-wide service."""
    global _service
    if _service is None:
        _service = CollaborationService(
            repository=build_repository(),
            listing_directory=build_listing_directory(),
        )
        logger.info(
            "CollaborationService initialized",
            repository_backend=EngineConfig.REPOSITORY_BACKEND,
            auto_activate=_service.auto_activate,
        )
    return _service


def reset_collaboration_service() -> None:
    global _service
    _service = None
