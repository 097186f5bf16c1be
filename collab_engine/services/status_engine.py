"""Overall status engine - the coarse lifecycle state machine."""

from typing import Optional
from datetime import datetime

from collab_engine.models.activity import ActivityKind
from collab_engine.models.collaboration import (
    Collaboration,
    CollaborationStatus,
    COMPLETION_REASON_LABELS,
    CompletionReason,
    FINAL_PROGRESS_STEP,
    utc_now,
)
from collab_engine.models.party import PartyRole
from collab_engine.services.activity_log import ActivityLog
from collab_engine.services.progress_tracker import is_final_step_completed
from collab_engine.utils.errors import InvalidTransition, PreconditionFailed, Unauthorized

S = CollaborationStatus
BOTH_ROLES = frozenset({PartyRole.OWNER, PartyRole.COLLABORATOR})

# (from, to) -> roles allowed to take the edge
TRANSITIONS: dict[tuple[CollaborationStatus, CollaborationStatus], frozenset[PartyRole]] = {
    (S.PENDING, S.ACCEPTED): frozenset({PartyRole.OWNER}),
    (S.PENDING, S.REJECTED): frozenset({PartyRole.OWNER}),
    (S.PENDING, S.CANCELLED): frozenset({PartyRole.COLLABORATOR}),
    (S.ACCEPTED, S.ACTIVE): BOTH_ROLES,
    (S.ACCEPTED, S.CANCELLED): BOTH_ROLES,
    (S.ACTIVE, S.COMPLETED): BOTH_ROLES,
    (S.ACTIVE, S.CANCELLED): BOTH_ROLES,
}

STATUS_MESSAGES = {
    S.ACCEPTED: "Proposition acceptée",
    S.REJECTED: "Proposition refusée",
    S.ACTIVE: "Collaboration activée - contrat signé par les deux parties",
    S.COMPLETED: "Collaboration terminée",
    S.CANCELLED: "Collaboration annulée",
}


def allowed_targets(status: CollaborationStatus) -> set[CollaborationStatus]:
    return {target for (source, target) in TRANSITIONS if source == status}


def can_transition(
    collaboration: Collaboration,
    target: CollaborationStatus,
    acting_role: PartyRole,
) -> bool:
    """Edge and permission check only; preconditions are not evaluated."""
    roles = TRANSITIONS.get((collaboration.overall_status, target))
    return roles is not None and acting_role in roles


def parse_completion_reason(reason) -> CompletionReason:
    if reason is None or reason == "":
        raise PreconditionFailed("A completion reason is required")
    try:
        return CompletionReason(reason)
    except ValueError:
        raise PreconditionFailed(f"Unknown completion reason: {reason}", completion_reason=str(reason))


def transition(
    collaboration: Collaboration,
    target: CollaborationStatus,
    acting_role: PartyRole,
    completion_reason=None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> None:
    """
    Move the collaboration to ``target``.

    Raises Unauthorized, InvalidTransition or PreconditionFailed without
    touching the aggregate; on success the status change is logged.
    """
    if acting_role == PartyRole.NONE:
        raise Unauthorized("Only the owner or the collaborator can change the status")

    previous = collaboration.overall_status
    roles = TRANSITIONS.get((previous, target))
    if roles is None:
        raise InvalidTransition(
            f"Cannot move from {previous.value} to {target.value}",
            from_status=previous.value,
            to_status=target.value,
        )
    if acting_role not in roles:
        raise Unauthorized(
            f"{acting_role.value} cannot move from {previous.value} to {target.value}",
            role=acting_role.value,
            from_status=previous.value,
            to_status=target.value,
        )

    parsed_reason = None
    if target == S.ACTIVE and not collaboration.contract.fully_signed:
        raise PreconditionFailed("Both parties must sign the contract before activation")
    if target == S.COMPLETED:
        parsed_reason = parse_completion_reason(completion_reason)
        if not is_final_step_completed(collaboration):
            raise PreconditionFailed(
                "Final progress step must be validated by both parties",
                step_id=FINAL_PROGRESS_STEP.value,
            )

    now = now or utc_now()
    collaboration.overall_status = target
    metadata = {"previous_status": previous.value, "new_status": target.value}
    message = STATUS_MESSAGES[target]

    if parsed_reason is not None:
        collaboration.completion_reason = parsed_reason
        collaboration.completed_at = now
        metadata["completion_reason"] = parsed_reason.value
        message = f"{message} - {COMPLETION_REASON_LABELS[parsed_reason]}"
    if reason:
        metadata["reason"] = reason
        message = f"{message} - {reason}"

    ActivityLog.append(
        collaboration,
        ActivityKind.STATUS_CHANGE,
        message,
        collaboration.party_for(acting_role).user_id,
        metadata=metadata,
        now=now,
    )
