"""Tests for the compensation calculator."""

import pytest
from decimal import Decimal

from collab_engine.models.collaboration import Compensation, CompensationScheme
from collab_engine.models.party import PartyRole
from collab_engine.services.compensation import describe_compensation, share_for


@pytest.mark.unit
@pytest.mark.parametrize("percentage", [0.1, 1, 12.5, 30, 33.33, 49.9, 50, 75.25, 99.99])
def test_percentage_shares_sum_to_hundred(percentage):
    compensation = Compensation(percentage=percentage)

    owner = share_for(compensation, PartyRole.OWNER)
    collaborator = share_for(compensation, PartyRole.COLLABORATOR)

    assert owner.percentage + collaborator.percentage == Decimal("100")
    assert collaborator.percentage == Decimal(str(percentage))


@pytest.mark.unit
def test_percentage_share_with_transaction_value():
    compensation = Compensation(percentage=30)

    collaborator = share_for(compensation, PartyRole.COLLABORATOR, transaction_value=12000)
    owner = share_for(compensation, PartyRole.OWNER, transaction_value=12000)

    assert collaborator.amount == Decimal("3600.00")
    assert owner.amount == Decimal("8400.00")
    assert collaborator.label == "30% (3600.00€)"
    assert owner.label == "70% (8400.00€)"


@pytest.mark.unit
def test_fixed_amount_goes_to_collaborator():
    compensation = Compensation(scheme=CompensationScheme.FIXED_AMOUNT, amount=1500)

    collaborator = share_for(compensation, PartyRole.COLLABORATOR, transaction_value=300000)
    owner = share_for(compensation, PartyRole.OWNER)

    assert collaborator.defined is True
    assert collaborator.amount == Decimal("1500")
    assert collaborator.percentage is None
    assert collaborator.label == "1500€"
    assert owner.defined is False
    assert owner.amount is None


@pytest.mark.unit
def test_gift_vouchers_count():
    compensation = Compensation(scheme=CompensationScheme.GIFT_VOUCHERS, amount=3)

    collaborator = share_for(compensation, PartyRole.COLLABORATOR)

    assert collaborator.voucher_count == 3
    assert collaborator.label == "3 chèques cadeaux"
    assert share_for(compensation, PartyRole.OWNER).defined is False


@pytest.mark.unit
def test_single_gift_voucher_label():
    compensation = Compensation(scheme=CompensationScheme.GIFT_VOUCHERS, amount=1)

    assert share_for(compensation, PartyRole.COLLABORATOR).label == "1 chèque cadeau"


@pytest.mark.unit
def test_share_for_is_deterministic():
    compensation = Compensation(percentage=42.5)

    assert share_for(compensation, PartyRole.OWNER) == share_for(compensation, PartyRole.OWNER)


@pytest.mark.unit
def test_share_for_rejects_none_role():
    with pytest.raises(ValueError):
        share_for(Compensation(percentage=30), PartyRole.NONE)


@pytest.mark.unit
def test_describe_compensation():
    assert describe_compensation(Compensation(percentage=30)) == (
        "Collaboration proposée avec 30% de commission"
    )
    assert describe_compensation(
        Compensation(scheme=CompensationScheme.FIXED_AMOUNT, amount=500)
    ) == "Collaboration proposée avec 500€ de compensation"
    assert describe_compensation(
        Compensation(scheme=CompensationScheme.GIFT_VOUCHERS, amount=3)
    ) == "Collaboration proposée avec 3 chèques cadeaux"
