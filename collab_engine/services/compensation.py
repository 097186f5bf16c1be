"""Compensation calculator - each party's share under the three schemes."""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict

from collab_engine.models.collaboration import Compensation, CompensationScheme
from collab_engine.models.party import PartyRole

HUNDRED = Decimal("100")


class ShareDisplay(BaseModel):
    """What one party receives, ready for display or settlement."""
    model_config = ConfigDict(frozen=True)

    scheme: CompensationScheme
    role: PartyRole
    defined: bool
    percentage: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    voucher_count: Optional[int] = None
    label: str


def _to_decimal(value: float) -> Decimal:
    # str() keeps the decimal literal the user typed (30.5, not its binary expansion)
    return Decimal(str(value))


def share_for(
    compensation: Compensation,
    role: PartyRole,
    transaction_value: Optional[float] = None,
) -> ShareDisplay:
    """
    Compute one party's share.

    Percentage splits give the collaborator the agreed percentage and the owner
    the rest, optionally converted to an amount of the transaction value.
    Fixed amounts and gift vouchers are flat payouts to the collaborator; the
    owner share is reported as undefined.
    """
    if role == PartyRole.NONE:
        raise ValueError("Compensation shares exist only for owner and collaborator")

    scheme = compensation.scheme

    if scheme == CompensationScheme.PERCENTAGE:
        collaborator_pct = _to_decimal(compensation.percentage)
        pct = collaborator_pct if role == PartyRole.COLLABORATOR else HUNDRED - collaborator_pct
        amount = None
        if transaction_value is not None:
            amount = (_to_decimal(transaction_value) * pct / HUNDRED).quantize(Decimal("0.01"))
        label = f"{pct.normalize():f}%"
        if amount is not None:
            label += f" ({amount:f}€)"
        return ShareDisplay(
            scheme=scheme,
            role=role,
            defined=True,
            percentage=pct,
            amount=amount,
            label=label,
        )

    if role == PartyRole.OWNER:
        return ShareDisplay(scheme=scheme, role=role, defined=False, label="-")

    if scheme == CompensationScheme.FIXED_AMOUNT:
        amount = _to_decimal(compensation.amount)
        return ShareDisplay(
            scheme=scheme,
            role=role,
            defined=True,
            amount=amount,
            label=f"{amount.normalize():f}€",
        )

    count = int(compensation.amount)
    return ShareDisplay(
        scheme=scheme,
        role=role,
        defined=True,
        voucher_count=count,
        label=f"{count} chèque{'s' if count > 1 else ''} cadeau{'x' if count > 1 else ''}",
    )


def describe_compensation(compensation: Compensation) -> str:
    """Proposal activity text."""
    collaborator_share = share_for(compensation, PartyRole.COLLABORATOR)
    if compensation.scheme == CompensationScheme.PERCENTAGE:
        return f"Collaboration proposée avec {collaborator_share.label} de commission"
    if compensation.scheme == CompensationScheme.FIXED_AMOUNT:
        return f"Collaboration proposée avec {collaborator_share.label} de compensation"
    return f"Collaboration proposée avec {collaborator_share.label}"
