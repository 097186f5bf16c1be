"""Tests for post owner resolution."""

import pytest
from unittest.mock import MagicMock, patch

from collab_engine.models.party import PostType, UserType
from collab_engine.services.listing_directory import (
    InMemoryListingDirectory,
    SupabaseListingDirectory,
)
from collab_engine.utils.errors import NotFound, StorageError
from tests.utils.factories import create_party, create_post_reference


def _mock_client(*results):
    """Supabase client whose successive execute() calls return ``results``."""
    mock_client = MagicMock()
    mock_query = MagicMock()
    for method in ("select", "eq"):
        getattr(mock_query, method).return_value = mock_query
    mock_query.execute.side_effect = [MagicMock(data=data) for data in results]
    mock_client.table.return_value = mock_query
    return mock_client, mock_query


@pytest.mark.unit
@pytest.mark.asyncio
async def test_in_memory_resolves_registered_owner():
    directory = InMemoryListingDirectory()
    post = create_post_reference()
    owner = create_party(UserType.APPORTEUR)
    directory.register(post, owner)

    assert await directory.resolve_post_owner(post) == owner


@pytest.mark.unit
@pytest.mark.asyncio
async def test_in_memory_keys_on_post_type():
    directory = InMemoryListingDirectory()
    post = create_post_reference(PostType.PROPERTY)
    directory.register(post, create_party())

    search_ad = post.model_copy(update={"post_type": PostType.SEARCH_AD})
    with pytest.raises(NotFound):
        await directory.resolve_post_owner(search_ad)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_supabase_reads_owner_and_user_type():
    post = create_post_reference(PostType.SEARCH_AD)
    mock_client, _ = _mock_client(
        [{"author_id": "u-apporteur"}],
        [{"id": "u-apporteur", "user_type": "apporteur", "first_name": "Lea", "last_name": "Petit"}],
    )

    with patch('collab_engine.services.listing_directory.SupabaseClient') as mock_client_class:
        mock_client_class.return_value.__aenter__.return_value = mock_client
        mock_client_class.return_value.__aexit__.return_value = False

        owner = await SupabaseListingDirectory().resolve_post_owner(post)

    assert owner.user_id == "u-apporteur"
    assert owner.user_type == UserType.APPORTEUR
    assert owner.name == "Lea Petit"
    tables = [call.args[0] for call in mock_client.table.call_args_list]
    assert tables == ["search_ads", "users"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_supabase_unknown_post():
    mock_client, _ = _mock_client([])

    with patch('collab_engine.services.listing_directory.SupabaseClient') as mock_client_class:
        mock_client_class.return_value.__aenter__.return_value = mock_client
        mock_client_class.return_value.__aexit__.return_value = False

        with pytest.raises(NotFound):
            await SupabaseListingDirectory().resolve_post_owner(create_post_reference())


@pytest.mark.unit
@pytest.mark.asyncio
async def test_supabase_errors_are_wrapped():
    mock_client, mock_query = _mock_client()
    mock_query.execute.side_effect = Exception("timeout")

    with patch('collab_engine.services.listing_directory.SupabaseClient') as mock_client_class:
        mock_client_class.return_value.__aenter__.return_value = mock_client
        mock_client_class.return_value.__aexit__.return_value = False

        with pytest.raises(StorageError):
            await SupabaseListingDirectory().resolve_post_owner(create_post_reference())
