"""Party and post reference models - the two sides of a collaboration and what they share."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class UserType(str, Enum):
    """Professional profile of a platform user."""
    AGENT = "agent"
    APPORTEUR = "apporteur"


class PartyRole(str, Enum):
    """Role a caller plays on one collaboration."""
    OWNER = "owner"
    COLLABORATOR = "collaborator"
    NONE = "none"


class PostType(str, Enum):
    """Kind of post a collaboration is attached to."""
    PROPERTY = "Property"
    SEARCH_AD = "SearchAd"


class Party(BaseModel):
    """A user taking part in a collaboration."""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1, description="User ID (text FK)")
    user_type: UserType = Field(default=UserType.AGENT, description="agent or apporteur")
    name: Optional[str] = Field(None, description="Display name")

    @property
    def display_name(self) -> str:
        return self.name or self.user_id


class PostReference(BaseModel):
    """Listing or search ad under collaboration."""
    model_config = ConfigDict(frozen=True)

    post_id: str = Field(..., min_length=1, description="Property or SearchAd ID (text)")
    post_type: PostType = Field(default=PostType.PROPERTY, description="Property or SearchAd")
