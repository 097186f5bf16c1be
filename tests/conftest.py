"""Shared pytest fixtures and configuration."""

import os
import pytest
import pytest_asyncio
from freezegun import freeze_time

# Set test environment variables before engine modules read them
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("COLLAB_REPOSITORY_BACKEND", "memory")
os.environ.setdefault("LOG_FORMAT", "text")

from collab_engine.models.collaboration import CompensationScheme
from collab_engine.models.party import UserType
from collab_engine.services.collaboration_service import CollaborationService
from collab_engine.services.listing_directory import InMemoryListingDirectory
from collab_engine.services.notifications import CollaborationEvent, Notifier
from collab_engine.services.repository import InMemoryCollaborationRepository
from tests.utils.factories import create_compensation, create_party, create_post_reference


class RecordingNotifier(Notifier):
    """Notifier that keeps every delivered event."""

    def __init__(self):
        self.events: list[CollaborationEvent] = []

    async def notify(self, event: CollaborationEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [event.type for event in self.events]


@pytest.fixture
def repository():
    return InMemoryCollaborationRepository()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def listings():
    return InMemoryListingDirectory()


@pytest.fixture
def service(repository, notifier, listings):
    """Service over in-memory storage with auto-activation on."""
    return CollaborationService(
        repository=repository,
        notifier=notifier,
        auto_activate=True,
        listing_directory=listings,
    )


@pytest.fixture
def owner():
    return create_party(UserType.AGENT)


@pytest.fixture
def apporteur_owner():
    return create_party(UserType.APPORTEUR)


@pytest.fixture
def collaborator():
    return create_party(UserType.AGENT)


@pytest.fixture
def post(listings, owner):
    """A property listed by ``owner``."""
    post = create_post_reference()
    listings.register(post, owner)
    return post


@pytest.fixture
def percentage_compensation():
    return create_compensation(CompensationScheme.PERCENTAGE, 30)


@pytest_asyncio.fixture
async def proposed(service, post, collaborator, percentage_compensation):
    """A pending collaboration proposed with a 30% split."""
    return await service.propose(
        post=post,
        initiator=collaborator,
        compensation=percentage_compensation,
        message="Je peux vous amener un acquéreur",
    )


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time
