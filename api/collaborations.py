"""Collaboration endpoint (Vercel serverless function)."""

import json
import asyncio
from typing import Any, Optional

from collab_engine.models.party import Party, PartyRole, PostReference
from collab_engine.services.collaboration_service import get_collaboration_service
from collab_engine.services.notifications import drain_notifications
from collab_engine.utils.errors import CollabEngineError, PreconditionFailed
from collab_engine.utils.logging import correlation_context, get_structured_logger
from collab_engine.utils.logging_config import LoggingConfig

LoggingConfig.setup_logging()
logger = get_structured_logger(__name__)

ERROR_STATUS_CODES = {
    "unauthorized": 403,
    "invalid_transition": 409,
    "precondition_failed": 422,
    "already_done": 409,
    "conflict": 409,
    "not_found": 404,
    "storage_error": 502,
}

ACTIONS = (
    "respond",
    "cancel",
    "activate",
    "progress",
    "contract",
    "sign",
    "complete",
    "notes",
)


def _response(status_code: int, payload: Any) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(payload, default=str),
    }


def _header(headers: dict, name: str) -> Optional[str]:
    for key, value in (headers or {}).items():
        if key.lower() == name.lower():
            return value
    return None


def _parse_body(request: dict) -> dict:
    body = request.get("body") or {}
    if isinstance(body, str):
        try:
            body = json.loads(body) if body else {}
        except json.JSONDecodeError:
            raise PreconditionFailed("Request body is not valid JSON")
    if not isinstance(body, dict):
        raise PreconditionFailed("Request body must be a JSON object")
    return body


def _route(path: str) -> tuple[Optional[str], Optional[str]]:
    """Split /api/collaborations[/<id>[/<action>]] into (id, action)."""
    parts = [part for part in (path or "").split("/") if part]
    if parts[:2] != ["api", "collaborations"]:
        return None, "unknown"
    parts = parts[2:]
    if not parts:
        return None, None
    if len(parts) == 1:
        return parts[0], None
    if len(parts) == 2:
        return parts[0], parts[1]
    return None, "unknown"


async def dispatch(request: dict) -> dict:
    """Route one request to the collaboration service."""
    service = get_collaboration_service()
    method = (request.get("method") or "GET").upper()
    user_id = _header(request.get("headers"), "X-User-Id")
    if not user_id:
        return _response(401, {"error": "unauthenticated", "message": "Missing X-User-Id header"})

    collaboration_id, action = _route(request.get("path", ""))
    body = _parse_body(request)

    if collaboration_id is None and action is None:
        if method == "GET":
            post_id = (request.get("query") or {}).get("post_id")
            if post_id:
                collaborations = await service.list_for_post(post_id, user_id=user_id)
            else:
                collaborations = await service.list_for_user(user_id)
            return _response(200, {"collaborations": [c.model_dump(mode="json") for c in collaborations]})
        if method == "POST":
            # The proposer is always the caller; the owner is looked up from the post
            collaboration = await service.propose(
                post=PostReference.model_validate(body.get("post") or {}),
                initiator=Party.model_validate({**(body.get("initiator") or {}), "user_id": user_id}),
                compensation=body.get("compensation") or {},
                message=body.get("message"),
            )
            return _response(201, {"collaboration": collaboration.model_dump(mode="json")})

    if collaboration_id is None or (action is not None and action not in ACTIONS):
        return _response(404, {"error": "not_found", "message": "Unknown route"})

    role = await service.resolve_role(collaboration_id, user_id)

    if action is None and method == "GET":
        if role == PartyRole.NONE:
            return _response(403, {"error": "unauthorized", "message": "Not a party to this collaboration"})
        collaboration = await service.get(collaboration_id)
    elif action == "contract" and method == "GET":
        contract = await service.get_contract(collaboration_id, role)
        return _response(200, {"contract": contract.model_dump(mode="json")})
    elif method != "POST":
        return _response(405, {"error": "method_not_allowed", "message": f"{method} not allowed"})
    elif action == "respond":
        collaboration = await service.respond(collaboration_id, role, body.get("decision"))
    elif action == "cancel":
        collaboration = await service.cancel(collaboration_id, role, reason=body.get("reason"))
    elif action == "activate":
        collaboration = await service.activate(collaboration_id, role)
    elif action == "progress":
        collaboration = await service.validate_progress_step(
            collaboration_id, body.get("step_id"), role, note=body.get("note")
        )
    elif action == "contract":
        collaboration = await service.update_contract(
            collaboration_id, role, body.get("text"), body.get("additional_terms")
        )
    elif action == "sign":
        collaboration = await service.sign(collaboration_id, role)
    elif action == "complete":
        collaboration = await service.complete(collaboration_id, role, body.get("completion_reason"))
    elif action == "notes":
        collaboration = await service.add_note(collaboration_id, role, body.get("content", ""))
    else:
        return _response(404, {"error": "not_found", "message": "Unknown route"})

    return _response(200, {"collaboration": collaboration.model_dump(mode="json")})


async def _dispatch_and_drain(request: dict) -> dict:
    try:
        return await dispatch(request)
    finally:
        # The function instance may be frozen once the response is returned
        await drain_notifications()


def handler(request):
    """
    Handle a collaboration request.

    Domain errors map to 4xx responses with a machine readable code;
    ``retryable`` tells the client to reload and resend after a conflict.
    """
    headers = request.get("headers") or {}
    with correlation_context(_header(headers, "X-Correlation-ID")) as correlation_id:
        try:
            response = asyncio.run(_dispatch_and_drain(request))
        except CollabEngineError as e:
            response = _response(ERROR_STATUS_CODES.get(e.code, 400), e.to_dict())
        except ValueError as e:
            # pydantic ValidationError on malformed payloads
            response = _response(422, {"error": "invalid_request", "message": str(e), "retryable": False})
        except Exception as e:
            logger.error(f"Error handling collaboration request: {e}", exc_info=True)
            response = _response(500, {"error": "internal_error", "message": "Internal server error"})

        response["headers"]["X-Correlation-ID"] = correlation_id
        return response
