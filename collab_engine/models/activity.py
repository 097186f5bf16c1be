"""Activity model - one entry of a collaboration's append-only timeline."""

from enum import Enum
from typing import Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class ActivityKind(str, Enum):
    """Kinds of lifecycle events recorded on a collaboration."""
    PROPOSAL = "proposal"
    STATUS_CHANGE = "status_change"
    CONTRACT_MODIFIED = "contract_modified"
    CONTRACT_SIGNED = "contract_signed"
    PROGRESS_STEP_UPDATE = "progress_step_update"
    NOTE = "note"


class ActivityRecord(BaseModel):
    """Immutable activity entry."""
    model_config = ConfigDict(frozen=True)

    kind: ActivityKind = Field(..., description="Event kind")
    message: str = Field(..., max_length=500, description="Human readable message")
    author_ref: str = Field(..., description="User ID of the acting party")
    created_at: datetime = Field(..., description="Event time (UTC)")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Event details")
