"""Test helper functions."""

import json
from typing import Any, Dict, Optional

from collab_engine.models.collaboration import (
    Collaboration,
    FINAL_PROGRESS_STEP,
    PROGRESS_STEP_ORDER,
)
from collab_engine.models.party import PartyRole
from collab_engine.services.collaboration_service import CollaborationService


async def activate(service: CollaborationService, collaboration_id: str) -> Collaboration:
    """Accept and sign a pending collaboration so it becomes active."""
    await service.respond(collaboration_id, PartyRole.OWNER, "accepted")
    await service.sign(collaboration_id, PartyRole.OWNER)
    return await service.sign(collaboration_id, PartyRole.COLLABORATOR)


async def validate_steps(
    service: CollaborationService,
    collaboration_id: str,
    role: PartyRole,
    include_final: bool = True,
) -> Collaboration:
    """Validate every canonical step (optionally except the final one) as ``role``."""
    collaboration = None
    for step_id in PROGRESS_STEP_ORDER:
        if step_id == FINAL_PROGRESS_STEP and not include_final:
            continue
        collaboration = await service.validate_progress_step(collaboration_id, step_id, role)
    return collaboration


def create_api_request(
    method: str = "POST",
    path: str = "/api/collaborations",
    body: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a serverless request object for testing."""
    headers = {"content-type": "application/json"}
    if user_id:
        headers["X-User-Id"] = user_id

    return {
        "method": method,
        "path": path,
        "headers": headers,
        "body": json.dumps(body) if body is not None else "",
        "query": {},
    }
