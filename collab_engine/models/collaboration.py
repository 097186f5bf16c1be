"""Collaboration aggregate and its value types."""

from enum import Enum
from typing import Optional
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, model_validator
from ulid import ULID

from collab_engine.models.activity import ActivityRecord
from collab_engine.models.party import Party, PartyRole, PostReference


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_collaboration_id() -> str:
    """Generate a text-based collaboration ID (ULID format)."""
    return str(ULID())


class CollaborationStatus(str, Enum):
    """Coarse lifecycle stage."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    CollaborationStatus.COMPLETED,
    CollaborationStatus.REJECTED,
    CollaborationStatus.CANCELLED,
})

OPEN_STATUSES = frozenset({
    CollaborationStatus.PENDING,
    CollaborationStatus.ACCEPTED,
    CollaborationStatus.ACTIVE,
})


class CompensationScheme(str, Enum):
    """How the collaborator is rewarded."""
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    GIFT_VOUCHERS = "gift_vouchers"


class Compensation(BaseModel):
    """Compensation agreed at proposal time."""
    model_config = ConfigDict(frozen=True)

    scheme: CompensationScheme = Field(default=CompensationScheme.PERCENTAGE)
    percentage: Optional[float] = Field(None, allow_inf_nan=False, description="Collaborator share in percent")
    amount: Optional[float] = Field(None, allow_inf_nan=False, description="Euros for fixed_amount, voucher count for gift_vouchers")

    @model_validator(mode="after")
    def check_scheme_fields(self) -> "Compensation":
        """Each scheme carries exactly the value it needs, within bounds."""
        if self.scheme == CompensationScheme.PERCENTAGE:
            if self.percentage is None or not 0 < self.percentage < 100:
                raise ValueError("percentage must be strictly between 0 and 100")
            if self.amount is not None:
                raise ValueError("amount is not used by the percentage scheme")
        else:
            if self.amount is None or self.amount <= 0:
                raise ValueError("amount must be greater than 0")
            if self.percentage is not None:
                raise ValueError(f"percentage is not used by the {self.scheme.value} scheme")
            if self.scheme == CompensationScheme.GIFT_VOUCHERS and self.amount != int(self.amount):
                raise ValueError("gift voucher count must be a whole number")
        return self


class ProgressStepId(str, Enum):
    """Canonical progress milestones, declared in canonical order."""
    ACCORD_COLLABORATION = "accord_collaboration"
    PREMIER_CONTACT = "premier_contact"
    VISITE_PROGRAMMEE = "visite_programmee"
    VISITE_REALISEE = "visite_realisee"
    RETOUR_CLIENT = "retour_client"
    OFFRE_EN_COURS = "offre_en_cours"
    NEGOCIATION_EN_COURS = "negociation_en_cours"
    COMPROMIS_SIGNE = "compromis_signe"
    SIGNATURE_NOTAIRE = "signature_notaire"
    AFFAIRE_CONCLUE = "affaire_conclue"


PROGRESS_STEP_ORDER: tuple[ProgressStepId, ...] = tuple(ProgressStepId)
FINAL_PROGRESS_STEP = PROGRESS_STEP_ORDER[-1]

PROGRESS_STEP_TITLES = {
    ProgressStepId.ACCORD_COLLABORATION: "Accord de collaboration",
    ProgressStepId.PREMIER_CONTACT: "Premier contact client",
    ProgressStepId.VISITE_PROGRAMMEE: "Visite programmée",
    ProgressStepId.VISITE_REALISEE: "Visite réalisée",
    ProgressStepId.RETOUR_CLIENT: "Retour client",
    ProgressStepId.OFFRE_EN_COURS: "Offre en cours",
    ProgressStepId.NEGOCIATION_EN_COURS: "Négociation en cours",
    ProgressStepId.COMPROMIS_SIGNE: "Compromis signé",
    ProgressStepId.SIGNATURE_NOTAIRE: "Signature notaire",
    ProgressStepId.AFFAIRE_CONCLUE: "Affaire conclue",
}


class CompletionReason(str, Enum):
    """Why a collaboration was closed as completed."""
    VENTE_CONCLUE_COLLABORATION = "vente_conclue_collaboration"
    VENTE_CONCLUE_SEUL = "vente_conclue_seul"
    BIEN_RETIRE = "bien_retire"
    MANDAT_EXPIRE = "mandat_expire"
    CLIENT_DESISTE = "client_desiste"
    VENDU_TIERS = "vendu_tiers"
    SANS_SUITE = "sans_suite"


COMPLETION_REASON_LABELS = {
    CompletionReason.VENTE_CONCLUE_COLLABORATION: "Vente conclue via collaboration",
    CompletionReason.VENTE_CONCLUE_SEUL: "Vente conclue par moi seul",
    CompletionReason.BIEN_RETIRE: "Bien retiré du marché",
    CompletionReason.MANDAT_EXPIRE: "Mandat expiré",
    CompletionReason.CLIENT_DESISTE: "Client désisté",
    CompletionReason.VENDU_TIERS: "Vendu par un tiers",
    CompletionReason.SANS_SUITE: "Sans suite",
}


class ProgressNote(BaseModel):
    """Note attached to a progress step."""
    model_config = ConfigDict(frozen=True)

    text: str = Field(..., min_length=1, max_length=500)
    author_ref: str
    created_at: datetime


class ProgressStepRecord(BaseModel):
    """Dual-validation state of one milestone."""
    step_id: ProgressStepId
    completed: bool = False
    owner_validated: bool = False
    collaborator_validated: bool = False
    validated_at: Optional[datetime] = None
    notes: list[ProgressNote] = Field(default_factory=list)


def initial_progress_state() -> list[ProgressStepRecord]:
    """One fresh record per canonical step, in canonical order."""
    return [ProgressStepRecord(step_id=step_id) for step_id in PROGRESS_STEP_ORDER]


class ContractState(BaseModel):
    """Contract text and per-party signatures."""
    text: Optional[str] = None
    additional_terms: Optional[str] = None
    owner_signed: bool = False
    owner_signed_at: Optional[datetime] = None
    collaborator_signed: bool = False
    collaborator_signed_at: Optional[datetime] = None
    modified_since_signing: bool = False
    last_modified_by: Optional[str] = None
    last_modified_at: Optional[datetime] = None

    @property
    def exists(self) -> bool:
        return bool(self.text and self.text.strip())

    @property
    def fully_signed(self) -> bool:
        return self.owner_signed and self.collaborator_signed

    @property
    def any_signed(self) -> bool:
        return self.owner_signed or self.collaborator_signed


class Collaboration(BaseModel):
    """Aggregate root: one partnership between a post owner and a collaborator."""
    id: str = Field(default_factory=generate_collaboration_id, frozen=True)
    post: PostReference = Field(..., frozen=True)
    owner_party: Party = Field(..., frozen=True, description="Post owner, acts with owner permissions")
    initiator_party: Party = Field(..., frozen=True, description="Proposing collaborator")
    overall_status: CollaborationStatus = CollaborationStatus.PENDING
    compensation: Compensation = Field(..., frozen=True)
    proposal_message: Optional[str] = None
    progress_state: list[ProgressStepRecord] = Field(default_factory=initial_progress_state)
    contract: ContractState = Field(default_factory=ContractState)
    completion_reason: Optional[CompletionReason] = None
    completed_at: Optional[datetime] = None
    activities: tuple[ActivityRecord, ...] = ()
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=0, ge=0, description="Optimistic concurrency token")

    @property
    def is_terminal(self) -> bool:
        return self.overall_status in TERMINAL_STATUSES

    @property
    def is_open(self) -> bool:
        return self.overall_status in OPEN_STATUSES

    @property
    def current_progress_step(self) -> ProgressStepId:
        """First step not yet completed, or the final step once all are."""
        for record in self.progress_state:
            if not record.completed:
                return record.step_id
        return FINAL_PROGRESS_STEP

    @property
    def workflow_stage(self) -> str:
        """Coarse stage shown by the UI next to the status."""
        return {
            CollaborationStatus.PENDING: "proposal",
            CollaborationStatus.ACCEPTED: "contract_signing",
            CollaborationStatus.ACTIVE: "active",
            CollaborationStatus.COMPLETED: "completed",
        }.get(self.overall_status, "closed")

    def step(self, step_id: ProgressStepId) -> ProgressStepRecord:
        for record in self.progress_state:
            if record.step_id == step_id:
                return record
        raise KeyError(step_id)

    def role_of(self, user_id: Optional[str]) -> PartyRole:
        """Role of a user on this collaboration."""
        if user_id and user_id == self.owner_party.user_id:
            return PartyRole.OWNER
        if user_id and user_id == self.initiator_party.user_id:
            return PartyRole.COLLABORATOR
        return PartyRole.NONE

    def party_for(self, role: PartyRole) -> Party:
        if role == PartyRole.OWNER:
            return self.owner_party
        if role == PartyRole.COLLABORATOR:
            return self.initiator_party
        raise ValueError(f"No party plays role {role.value}")
