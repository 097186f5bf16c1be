"""Contract signing subsystem - contract text, signatures, and their invalidation."""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel

from collab_engine.models.activity import ActivityKind
from collab_engine.models.collaboration import (
    Collaboration,
    CollaborationStatus,
    CompensationScheme,
    utc_now,
)
from collab_engine.models.party import PartyRole
from collab_engine.services.activity_log import ActivityLog
from collab_engine.services.compensation import share_for
from collab_engine.utils.errors import (
    AlreadyDone,
    InvalidTransition,
    PreconditionFailed,
    Unauthorized,
)

ROLE_LABELS = {
    PartyRole.OWNER: "propriétaire",
    PartyRole.COLLABORATOR: "collaborateur",
}


def _ensure_open(collaboration: Collaboration, acting_role: PartyRole) -> None:
    if collaboration.is_terminal:
        raise InvalidTransition(
            "Contract of a closed collaboration cannot change",
            status=collaboration.overall_status.value,
        )
    if acting_role == PartyRole.NONE:
        raise Unauthorized("Only the owner or the collaborator can act on the contract")


def default_contract_text(collaboration: Collaboration) -> str:
    """Standard collaboration contract seeded when the owner accepts."""
    owner = collaboration.owner_party.display_name
    collaborator = collaboration.initiator_party.display_name
    compensation = collaboration.compensation

    if compensation.scheme == CompensationScheme.PERCENTAGE:
        owner_share = share_for(compensation, PartyRole.OWNER).label
        collaborator_share = share_for(compensation, PartyRole.COLLABORATOR).label
        remuneration = (
            "La commission sera répartie comme suit :\n"
            f"- Agent Propriétaire : {owner_share}\n"
            f"- Agent Apporteur : {collaborator_share}"
        )
    else:
        payout = share_for(compensation, PartyRole.COLLABORATOR).label
        remuneration = (
            "L'Agent Apporteur percevra une rémunération forfaitaire de "
            f"{payout}, versée à la conclusion de la vente."
        )

    return (
        "CONTRAT DE COLLABORATION IMMOBILIÈRE\n\n"
        "ENTRE LES SOUSSIGNÉS :\n\n"
        f"D'une part,\n{owner}\nCi-après dénommé « L'AGENT PROPRIÉTAIRE »\n\n"
        f"Et d'autre part,\n{collaborator}\nCi-après dénommé « L'AGENT APPORTEUR »\n\n"
        "ARTICLE 1 - OBJET DU CONTRAT\n"
        "Le présent contrat a pour objet de définir les modalités de collaboration "
        "entre les parties pour le bien référencé dans cette collaboration.\n\n"
        "ARTICLE 2 - RÉMUNÉRATION\n"
        f"{remuneration}\n\n"
        "ARTICLE 3 - DURÉE\n"
        "Le présent contrat prend effet à compter de sa signature par les deux parties "
        "et reste valable jusqu'à la finalisation de la vente ou résiliation par l'une des parties."
    )


def update_contract_text(
    collaboration: Collaboration,
    text: Optional[str],
    additional_terms: Optional[str],
    acting_role: PartyRole,
    now: Optional[datetime] = None,
) -> bool:
    """
    Replace contract text and additional terms.

    Returns False when nothing changed. Any change after a signature resets
    both signatures so the new text must be signed again by both parties.
    """
    _ensure_open(collaboration, acting_role)

    contract = collaboration.contract
    if contract.text == text and contract.additional_terms == additional_terms:
        return False

    now = now or utc_now()
    author_ref = collaboration.party_for(acting_role).user_id
    signatures_reset = contract.any_signed

    contract.text = text
    contract.additional_terms = additional_terms
    contract.last_modified_by = author_ref
    contract.last_modified_at = now

    if signatures_reset:
        contract.owner_signed = False
        contract.owner_signed_at = None
        contract.collaborator_signed = False
        contract.collaborator_signed_at = None
        contract.modified_since_signing = True

    message = f"Contrat modifié par le {ROLE_LABELS[acting_role]}"
    if signatures_reset:
        message += " - signatures réinitialisées, les deux parties doivent signer à nouveau"

    ActivityLog.append(
        collaboration,
        ActivityKind.CONTRACT_MODIFIED,
        message,
        author_ref,
        metadata={"signatures_reset": signatures_reset, "modified_by": acting_role.value},
        now=now,
    )
    return True


def sign_contract(
    collaboration: Collaboration,
    acting_role: PartyRole,
    now: Optional[datetime] = None,
) -> bool:
    """
    Record the acting party's signature.

    Returns True when both parties have now signed. Moving the collaboration
    to active is left to the status engine.
    """
    _ensure_open(collaboration, acting_role)

    if collaboration.overall_status != CollaborationStatus.ACCEPTED:
        raise PreconditionFailed(
            "Contract can only be signed on accepted collaborations",
            status=collaboration.overall_status.value,
        )

    contract = collaboration.contract
    if not contract.exists:
        raise PreconditionFailed("No contract to sign")

    now = now or utc_now()
    if acting_role == PartyRole.OWNER:
        if contract.owner_signed:
            raise AlreadyDone("Owner already signed the contract", role=acting_role.value)
        contract.owner_signed = True
        contract.owner_signed_at = now
    else:
        if contract.collaborator_signed:
            raise AlreadyDone("Collaborator already signed the contract", role=acting_role.value)
        contract.collaborator_signed = True
        contract.collaborator_signed_at = now

    ActivityLog.append(
        collaboration,
        ActivityKind.CONTRACT_SIGNED,
        f"Contrat signé par le {ROLE_LABELS[acting_role]}",
        collaboration.party_for(acting_role).user_id,
        metadata={"signed_by": acting_role.value, "fully_signed": contract.fully_signed},
        now=now,
    )
    return contract.fully_signed


class ContractView(BaseModel):
    """Contract read model for one viewer."""
    collaboration_id: str
    status: str
    text: Optional[str]
    additional_terms: Optional[str]
    modified_since_signing: bool
    owner_signed: bool
    owner_signed_at: Optional[datetime]
    collaborator_signed: bool
    collaborator_signed_at: Optional[datetime]
    can_edit: bool
    can_sign: bool
    requires_both_signatures: bool


def contract_view(collaboration: Collaboration, viewer_role: PartyRole) -> ContractView:
    if viewer_role == PartyRole.NONE:
        raise Unauthorized("You are not authorized to view this contract")

    contract = collaboration.contract
    own_signature = contract.owner_signed if viewer_role == PartyRole.OWNER else contract.collaborator_signed
    return ContractView(
        collaboration_id=collaboration.id,
        status=collaboration.overall_status.value,
        text=contract.text,
        additional_terms=contract.additional_terms,
        modified_since_signing=contract.modified_since_signing,
        owner_signed=contract.owner_signed,
        owner_signed_at=contract.owner_signed_at,
        collaborator_signed=contract.collaborator_signed,
        collaborator_signed_at=contract.collaborator_signed_at,
        can_edit=not collaboration.is_terminal,
        can_sign=(
            collaboration.overall_status == CollaborationStatus.ACCEPTED
            and contract.exists
            and not own_signature
        ),
        requires_both_signatures=contract.owner_signed != contract.collaborator_signed,
    )
