"""Collaboration repositories with optimistic version checks."""

from typing import Optional

from collab_engine.models.collaboration import Collaboration, OPEN_STATUSES
from collab_engine.services.supabase_client import SupabaseClient
from collab_engine.utils.errors import Conflict, NotFound, StorageError
from collab_engine.utils.logging import get_structured_logger
from collab_engine.utils.settings import EngineConfig

logger = get_structured_logger(__name__)


class CollaborationRepository:
    """Storage interface for collaboration aggregates.

    ``save`` must only succeed when the stored version still equals
    ``expected_version``; otherwise it raises Conflict and stores nothing.
    """

    async def get(self, collaboration_id: str) -> Collaboration:
        raise NotImplementedError

    async def create(self, collaboration: Collaboration) -> Collaboration:
        raise NotImplementedError

    async def save(self, collaboration: Collaboration, expected_version: int) -> Collaboration:
        raise NotImplementedError

    async def find_open_for_post(self, post_id: str) -> Optional[Collaboration]:
        raise NotImplementedError

    async def list_for_user(self, user_id: str) -> list[Collaboration]:
        raise NotImplementedError

    async def list_for_post(self, post_id: str) -> list[Collaboration]:
        raise NotImplementedError


class InMemoryCollaborationRepository(CollaborationRepository):
    """Process-local repository; stores deep copies so callers never share state."""

    def __init__(self):
        self._records: dict[str, Collaboration] = {}

    async def get(self, collaboration_id: str) -> Collaboration:
        record = self._records.get(collaboration_id)
        if record is None:
            raise NotFound(f"Collaboration not found: {collaboration_id}", collaboration_id=collaboration_id)
        return record.model_copy(deep=True)

    async def create(self, collaboration: Collaboration) -> Collaboration:
        if collaboration.id in self._records:
            raise Conflict(f"Collaboration already exists: {collaboration.id}", collaboration_id=collaboration.id)
        self._records[collaboration.id] = collaboration.model_copy(deep=True)
        return collaboration.model_copy(deep=True)

    async def save(self, collaboration: Collaboration, expected_version: int) -> Collaboration:
        stored = self._records.get(collaboration.id)
        if stored is None:
            raise NotFound(f"Collaboration not found: {collaboration.id}", collaboration_id=collaboration.id)
        if stored.version != expected_version:
            raise Conflict(
                "Collaboration was modified concurrently",
                collaboration_id=collaboration.id,
                expected_version=expected_version,
                stored_version=stored.version,
            )
        self._records[collaboration.id] = collaboration.model_copy(deep=True)
        return collaboration.model_copy(deep=True)

    async def find_open_for_post(self, post_id: str) -> Optional[Collaboration]:
        for record in self._records.values():
            if record.post.post_id == post_id and record.is_open:
                return record.model_copy(deep=True)
        return None

    async def list_for_user(self, user_id: str) -> list[Collaboration]:
        records = [
            record.model_copy(deep=True)
            for record in self._records.values()
            if user_id in (record.owner_party.user_id, record.initiator_party.user_id)
        ]
        return sorted(records, key=lambda record: record.updated_at, reverse=True)

    async def list_for_post(self, post_id: str) -> list[Collaboration]:
        records = [
            record.model_copy(deep=True)
            for record in self._records.values()
            if record.post.post_id == post_id
        ]
        return sorted(records, key=lambda record: record.created_at, reverse=True)


def _to_row(collaboration: Collaboration) -> dict:
    return {
        "id": collaboration.id,
        "post_id": collaboration.post.post_id,
        "post_type": collaboration.post.post_type.value,
        "owner_id": collaboration.owner_party.user_id,
        "initiator_id": collaboration.initiator_party.user_id,
        "status": collaboration.overall_status.value,
        "version": collaboration.version,
        "created_at": collaboration.created_at.isoformat(),
        "updated_at": collaboration.updated_at.isoformat(),
        "data": collaboration.model_dump(mode="json"),
    }


def _from_row(row: dict) -> Collaboration:
    return Collaboration.model_validate(row["data"])


class SupabaseCollaborationRepository(CollaborationRepository):
    """Repository over the Supabase ``collaborations`` table (one JSON document per row)."""

    def __init__(self, table: str = EngineConfig.TABLE):
        self.table = table

    async def get(self, collaboration_id: str) -> Collaboration:
        async with SupabaseClient() as client:
            try:
                result = client.table(self.table).select("*").eq("id", collaboration_id).execute()
            except Exception as e:
                raise StorageError(f"Failed to get collaboration: {e}")
        if not result.data:
            raise NotFound(f"Collaboration not found: {collaboration_id}", collaboration_id=collaboration_id)
        return _from_row(result.data[0])

    async def create(self, collaboration: Collaboration) -> Collaboration:
        async with SupabaseClient() as client:
            try:
                result = client.table(self.table).insert(_to_row(collaboration)).execute()
            except Exception as e:
                if "duplicate key" in str(e).lower():
                    raise Conflict(f"Collaboration already exists: {collaboration.id}", collaboration_id=collaboration.id)
                raise StorageError(f"Failed to create collaboration: {e}")
        if not result.data:
            raise StorageError("Failed to create collaboration: no data returned")
        return _from_row(result.data[0])

    async def save(self, collaboration: Collaboration, expected_version: int) -> Collaboration:
        async with SupabaseClient() as client:
            try:
                result = (
                    client.table(self.table)
                    .update(_to_row(collaboration))
                    .eq("id", collaboration.id)
                    .eq("version", expected_version)
                    .execute()
                )
            except Exception as e:
                raise StorageError(f"Failed to update collaboration: {e}")
        if not result.data:
            logger.warning(
                "Optimistic version check failed",
                collaboration_id=collaboration.id,
                expected_version=expected_version,
            )
            raise Conflict(
                "Collaboration was modified concurrently",
                collaboration_id=collaboration.id,
                expected_version=expected_version,
            )
        return _from_row(result.data[0])

    async def find_open_for_post(self, post_id: str) -> Optional[Collaboration]:
        async with SupabaseClient() as client:
            try:
                result = (
                    client.table(self.table)
                    .select("*")
                    .eq("post_id", post_id)
                    .in_("status", sorted(status.value for status in OPEN_STATUSES))
                    .limit(1)
                    .execute()
                )
            except Exception as e:
                raise StorageError(f"Failed to query collaborations for post: {e}")
        return _from_row(result.data[0]) if result.data else None

    async def list_for_user(self, user_id: str) -> list[Collaboration]:
        async with SupabaseClient() as client:
            try:
                result = (
                    client.table(self.table)
                    .select("*")
                    .or_(f"owner_id.eq.{user_id},initiator_id.eq.{user_id}")
                    .order("updated_at", desc=True)
                    .execute()
                )
            except Exception as e:
                raise StorageError(f"Failed to list collaborations: {e}")
        return [_from_row(row) for row in result.data or []]

    async def list_for_post(self, post_id: str) -> list[Collaboration]:
        async with SupabaseClient() as client:
            try:
                result = (
                    client.table(self.table)
                    .select("*")
                    .eq("post_id", post_id)
                    .order("created_at", desc=True)
                    .execute()
                )
            except Exception as e:
                raise StorageError(f"Failed to list collaborations for post: {e}")
        return [_from_row(row) for row in result.data or []]
