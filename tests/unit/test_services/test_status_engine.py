"""Tests for the overall status engine."""

import itertools
import pytest

from collab_engine.models.activity import ActivityKind
from collab_engine.models.collaboration import (
    CollaborationStatus,
    CompletionReason,
    FINAL_PROGRESS_STEP,
    TERMINAL_STATUSES,
)
from collab_engine.models.party import PartyRole
from collab_engine.services.contract_signing import sign_contract
from collab_engine.services.progress_tracker import validate_step
from collab_engine.services.status_engine import (
    TRANSITIONS,
    allowed_targets,
    can_transition,
    transition,
)
from collab_engine.utils.errors import InvalidTransition, PreconditionFailed, Unauthorized
from tests.utils.assertions import assert_last_activity
from tests.utils.factories import create_collaboration

S = CollaborationStatus
ROLES = (PartyRole.OWNER, PartyRole.COLLABORATOR)


def _ready_for(source: CollaborationStatus, target: CollaborationStatus):
    """Collaboration in ``source`` with every precondition for ``target`` met."""
    collaboration = create_collaboration(status=S.ACCEPTED, contract_text="Contrat")
    if target == S.ACTIVE:
        sign_contract(collaboration, PartyRole.OWNER)
        sign_contract(collaboration, PartyRole.COLLABORATOR)
    collaboration.overall_status = source
    if target == S.COMPLETED:
        validate_step(collaboration, FINAL_PROGRESS_STEP, PartyRole.OWNER)
        validate_step(collaboration, FINAL_PROGRESS_STEP, PartyRole.COLLABORATOR)
    return collaboration


@pytest.mark.unit
def test_transition_graph_has_no_outgoing_edges_from_terminal_states():
    for status in TERMINAL_STATUSES:
        assert allowed_targets(status) == set()


@pytest.mark.unit
def test_transition_graph_is_acyclic():
    order = [S.PENDING, S.ACCEPTED, S.ACTIVE, S.COMPLETED, S.REJECTED, S.CANCELLED]
    for source, target in TRANSITIONS:
        assert order.index(source) < order.index(target)


@pytest.mark.unit
@pytest.mark.parametrize("source,target", [
    pair for pair in itertools.product(S, S) if pair not in TRANSITIONS
])
def test_edges_outside_the_graph_are_invalid(source, target):
    collaboration = create_collaboration(status=source, contract_text="Contrat")

    for role in ROLES:
        with pytest.raises(InvalidTransition):
            transition(collaboration, target, role, completion_reason="sans_suite")

    assert collaboration.overall_status == source
    assert collaboration.activities == ()


@pytest.mark.unit
@pytest.mark.parametrize("edge,roles", list(TRANSITIONS.items()))
def test_edge_permissions(edge, roles):
    source, target = edge
    for role in ROLES:
        collaboration = _ready_for(source, target)
        before = len(collaboration.activities)
        if role in roles:
            transition(collaboration, target, role, completion_reason=CompletionReason.SANS_SUITE)
            assert collaboration.overall_status == target
            assert len(collaboration.activities) == before + 1
        else:
            with pytest.raises(Unauthorized):
                transition(collaboration, target, role, completion_reason=CompletionReason.SANS_SUITE)
            assert collaboration.overall_status == source


@pytest.mark.unit
def test_status_change_activity_metadata():
    collaboration = create_collaboration(status=S.PENDING)

    transition(collaboration, S.ACCEPTED, PartyRole.OWNER)

    assert_last_activity(collaboration, ActivityKind.STATUS_CHANGE)
    record = collaboration.activities[-1]
    assert record.metadata == {"previous_status": "pending", "new_status": "accepted"}
    assert record.author_ref == collaboration.owner_party.user_id


@pytest.mark.unit
def test_cancel_reason_is_recorded():
    collaboration = create_collaboration(status=S.PENDING)

    transition(collaboration, S.CANCELLED, PartyRole.COLLABORATOR, reason="Client parti")

    assert collaboration.activities[-1].metadata["reason"] == "Client parti"


@pytest.mark.unit
def test_activation_requires_full_signature():
    collaboration = create_collaboration(status=S.ACCEPTED, contract_text="Contrat")
    sign_contract(collaboration, PartyRole.OWNER)

    with pytest.raises(PreconditionFailed):
        transition(collaboration, S.ACTIVE, PartyRole.OWNER)

    assert collaboration.overall_status == S.ACCEPTED


@pytest.mark.unit
def test_completion_requires_final_step_dual_validated():
    collaboration = create_collaboration(status=S.ACTIVE, contract_text="Contrat")
    validate_step(collaboration, FINAL_PROGRESS_STEP, PartyRole.OWNER)

    with pytest.raises(PreconditionFailed):
        transition(collaboration, S.COMPLETED, PartyRole.OWNER, completion_reason="vente_conclue_seul")

    assert collaboration.overall_status == S.ACTIVE
    assert collaboration.completion_reason is None


@pytest.mark.unit
@pytest.mark.parametrize("reason", [None, "", "vente_annulee"])
def test_completion_reason_must_be_known(reason):
    collaboration = _ready_for(S.ACTIVE, S.COMPLETED)

    with pytest.raises(PreconditionFailed):
        transition(collaboration, S.COMPLETED, PartyRole.OWNER, completion_reason=reason)


@pytest.mark.unit
def test_completion_stores_reason():
    collaboration = _ready_for(S.ACTIVE, S.COMPLETED)

    transition(collaboration, S.COMPLETED, PartyRole.COLLABORATOR, completion_reason="vente_conclue_collaboration")

    assert collaboration.completion_reason == CompletionReason.VENTE_CONCLUE_COLLABORATION
    assert collaboration.completed_at is not None
    assert collaboration.activities[-1].metadata["completion_reason"] == "vente_conclue_collaboration"
    assert "Vente conclue via collaboration" in collaboration.activities[-1].message


@pytest.mark.unit
def test_none_role_is_unauthorized():
    collaboration = create_collaboration(status=S.PENDING)

    with pytest.raises(Unauthorized):
        transition(collaboration, S.ACCEPTED, PartyRole.NONE)


@pytest.mark.unit
def test_can_transition():
    collaboration = create_collaboration(status=S.PENDING)

    assert can_transition(collaboration, S.ACCEPTED, PartyRole.OWNER) is True
    assert can_transition(collaboration, S.ACCEPTED, PartyRole.COLLABORATOR) is False
    assert can_transition(collaboration, S.ACTIVE, PartyRole.OWNER) is False
