"""Progress step tracker - dual validation of the canonical milestones."""

from typing import Optional
from datetime import datetime

from collab_engine.models.activity import ActivityKind
from collab_engine.models.collaboration import (
    Collaboration,
    CollaborationStatus,
    FINAL_PROGRESS_STEP,
    PROGRESS_STEP_TITLES,
    ProgressNote,
    ProgressStepId,
    ProgressStepRecord,
    utc_now,
)
from collab_engine.models.party import PartyRole
from collab_engine.services.activity_log import ActivityLog
from collab_engine.utils.errors import (
    AlreadyDone,
    InvalidTransition,
    PreconditionFailed,
    Unauthorized,
)

MAX_NOTE_LENGTH = 500

VALIDATOR_LABELS = {
    PartyRole.OWNER: "Propriétaire",
    PartyRole.COLLABORATOR: "Collaborateur",
}


def _flag_name(role: PartyRole) -> str:
    return "owner_validated" if role == PartyRole.OWNER else "collaborator_validated"


def has_validated(record: ProgressStepRecord, role: PartyRole) -> bool:
    return getattr(record, _flag_name(role))


def parse_step_id(step_id) -> ProgressStepId:
    try:
        return ProgressStepId(step_id)
    except ValueError:
        raise PreconditionFailed(f"Unknown progress step: {step_id}", step_id=str(step_id))


def validate_step(
    collaboration: Collaboration,
    step_id,
    acting_role: PartyRole,
    note: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ProgressStepRecord:
    """
    Record one party's validation of a step.

    Later steps may be validated while earlier ones are still open; only the
    completion of the collaboration depends on the final step.
    """
    if collaboration.is_terminal:
        raise InvalidTransition(
            "Collaboration is closed",
            status=collaboration.overall_status.value,
        )
    if acting_role == PartyRole.NONE:
        raise Unauthorized("Only the owner or the collaborator can validate progress")
    if collaboration.overall_status != CollaborationStatus.ACTIVE:
        raise PreconditionFailed(
            "Progress can only be updated on active collaborations",
            status=collaboration.overall_status.value,
        )

    step_id = parse_step_id(step_id)
    record = collaboration.step(step_id)

    if has_validated(record, acting_role):
        raise AlreadyDone(
            f"Step {step_id.value} already validated by {acting_role.value}",
            step_id=step_id.value,
            role=acting_role.value,
        )

    note_text = note.strip() if note else ""
    if len(note_text) > MAX_NOTE_LENGTH:
        raise PreconditionFailed("Note too long", max_length=MAX_NOTE_LENGTH)

    now = now or utc_now()
    author_ref = collaboration.party_for(acting_role).user_id

    setattr(record, _flag_name(acting_role), True)
    if record.owner_validated and record.collaborator_validated:
        record.completed = True
        record.validated_at = now

    if note_text:
        record.notes.append(ProgressNote(text=note_text, author_ref=author_ref, created_at=now))

    message = f"{VALIDATOR_LABELS[acting_role]} a validé: {PROGRESS_STEP_TITLES[step_id]}"
    if note_text:
        message = f"{message} - {note_text}"

    ActivityLog.append(
        collaboration,
        ActivityKind.PROGRESS_STEP_UPDATE,
        message,
        author_ref,
        metadata={
            "step_id": step_id.value,
            "validated_by": acting_role.value,
            "step_completed": record.completed,
        },
        now=now,
    )
    return record


def is_final_step_completed(collaboration: Collaboration) -> bool:
    return collaboration.step(FINAL_PROGRESS_STEP).completed
