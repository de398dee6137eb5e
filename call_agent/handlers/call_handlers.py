"""
Request handlers for the call HTTP API.

Each handler takes the parsed request input and the ``WebSocketManager`` holding
the shared call state, and returns a status code with a JSON-ready body (or
TwiML for the inbound webhook). Routing lives in ``call_agent.main``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from call_agent.config.constants import ESTIMATED_CALL_DURATION, LOGGER_NAME
from call_agent.models.calls import (
    PHONE_PATTERN,
    CallRecord,
    CallStatus,
    OutboundCallRequest,
    OutboundCallResponse,
)
from call_agent.services.twilio_client import CallControlError, build_stream_twiml
from call_agent.websocket_manager import WebSocketManager

logger = logging.getLogger(LOGGER_NAME)

HandlerResult = Tuple[int, Dict[str, Any]]


def _error(code: str, message: str) -> Dict[str, Any]:
    return OutboundCallResponse(success=False, error=message, code=code).model_dump(
        by_alias=True, exclude_none=True
    )


def handle_health(manager: WebSocketManager) -> Dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "activeCalls": len(manager.registry),
    }


def handle_incoming_call(manager: WebSocketManager, call_id: Optional[str] = None) -> str:
    """TwiML connecting an inbound call to the media stream."""
    logger.info(f"Incoming call received: {call_id}")
    return str(build_stream_twiml(manager.settings.media_stream_url, call_id))


async def handle_outbound_call(body: Any, manager: WebSocketManager) -> HandlerResult:
    """
    Place an outbound call and register it.

    Args:
        body: Decoded JSON request body
        manager: Holder of the call registry and call-control client

    Returns:
        HTTP status code and response body
    """
    try:
        request = OutboundCallRequest.model_validate(body)
    except ValidationError as e:
        logger.warning(f"Invalid outbound call request: {e.errors()}")
        return 400, _error("VALIDATION_ERROR", "Invalid request body")

    if not PHONE_PATTERN.match(request.destination):
        return 400, _error("INVALID_PHONE", "Invalid phone number format. Use E.164 format (e.g., +15551234567)")

    call_control = manager.call_control.with_credentials(request.credentials)
    try:
        call_id = await call_control.create_call(
            to=request.destination, url=manager.settings.incoming_call_url
        )
    except CallControlError as e:
        logger.error(f"Outbound call to {request.destination} failed: {e}")
        return 500, _error("CALL_FAILED", str(e))

    manager.registry.put(
        CallRecord(
            call_id=call_id,
            destination=request.destination,
            task=request.task,
            agent_config=request.agent_config,
            credentials=request.credentials,
        )
    )
    logger.info(f"Outbound call {call_id} placed to {request.destination} for {request.task.type.value} task")

    response = OutboundCallResponse(
        success=True,
        call_id=call_id,
        status=CallStatus.INITIATED.value,
        estimated_duration=ESTIMATED_CALL_DURATION,
    )
    return 200, response.model_dump(by_alias=True, exclude_none=True)


async def handle_end_call(call_id: str, manager: WebSocketManager) -> HandlerResult:
    """Terminate a call on operator request."""
    record = manager.registry.get(call_id)
    call_control = manager.call_control.with_credentials(record.credentials if record else None)
    try:
        await call_control.end_call(call_id)
    except CallControlError as e:
        logger.error(f"Operator hang-up failed for call {call_id}: {e}")
        return 500, {"success": False, "error": str(e)}

    manager.context.resolve_pending_end_call(call_id)
    manager.registry.set_status(call_id, CallStatus.COMPLETED)
    manager.registry.remove(call_id)
    logger.info(f"Call {call_id} ended by operator")
    return 200, {"success": True, "callId": call_id}


def handle_list_calls(manager: WebSocketManager) -> Dict[str, Any]:
    calls = [record.summary() for record in manager.registry.list()]
    return {"calls": calls, "count": len(calls)}
