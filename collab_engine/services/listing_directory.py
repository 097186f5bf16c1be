"""Listing directory - who owns a property or search ad.

The post owner is never taken from the proposer's request: their
``user_type`` decides which compensation caps apply.
"""

from typing import Optional

from collab_engine.models.party import Party, PostReference, PostType, UserType
from collab_engine.services.supabase_client import SupabaseClient
from collab_engine.utils.errors import NotFound, StorageError
from collab_engine.utils.logging import get_structured_logger, mask_user_id
from collab_engine.utils.settings import EngineConfig

logger = get_structured_logger(__name__)


class ListingDirectory:
    """Lookup interface over the listing store."""

    async def resolve_post_owner(self, post: PostReference) -> Party:
        """Owner of ``post``; raises NotFound for unknown posts."""
        raise NotImplementedError


class InMemoryListingDirectory(ListingDirectory):
    """Process-local directory fed with ``register``."""

    def __init__(self):
        self._owners: dict[tuple[str, PostType], Party] = {}

    def register(self, post: PostReference, owner: Party) -> None:
        self._owners[(post.post_id, post.post_type)] = owner

    async def resolve_post_owner(self, post: PostReference) -> Party:
        owner = self._owners.get((post.post_id, post.post_type))
        if owner is None:
            raise NotFound(f"{post.post_type.value} not found: {post.post_id}", post_id=post.post_id)
        return owner


class SupabaseListingDirectory(ListingDirectory):
    """Reads the owner column of the post table, then the owner's user row."""

    # post type -> (table, owner column)
    POST_TABLES = {
        PostType.PROPERTY: (EngineConfig.PROPERTY_TABLE, "owner_id"),
        PostType.SEARCH_AD: (EngineConfig.SEARCH_AD_TABLE, "author_id"),
    }

    def __init__(self, user_table: str = EngineConfig.USER_TABLE):
        self.user_table = user_table

    def _owner_id(self, client, post: PostReference) -> Optional[str]:
        table, column = self.POST_TABLES[post.post_type]
        result = client.table(table).select(column).eq("id", post.post_id).execute()
        return result.data[0].get(column) if result.data else None

    async def resolve_post_owner(self, post: PostReference) -> Party:
        async with SupabaseClient() as client:
            try:
                owner_id = self._owner_id(client, post)
                if owner_id is None:
                    raise NotFound(f"{post.post_type.value} not found: {post.post_id}", post_id=post.post_id)
                result = (
                    client.table(self.user_table)
                    .select("id, user_type, first_name, last_name")
                    .eq("id", owner_id)
                    .execute()
                )
            except NotFound:
                raise
            except Exception as e:
                raise StorageError(f"Failed to resolve post owner: {e}")

        if not result.data:
            raise NotFound(f"Post owner not found: {owner_id}", post_id=post.post_id)

        row = result.data[0]
        name = " ".join(part for part in (row.get("first_name"), row.get("last_name")) if part)
        owner = Party(
            user_id=row["id"],
            user_type=UserType(row.get("user_type") or UserType.AGENT.value),
            name=name or None,
        )
        logger.debug(
            "Resolved post owner",
            post_id=post.post_id,
            post_type=post.post_type.value,
            owner_id=mask_user_id(owner.user_id),
            user_type=owner.user_type.value,
        )
        return owner
