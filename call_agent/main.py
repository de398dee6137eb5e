"""
FastAPI server for the Twilio / OpenAI Realtime call agent.

This module builds the FastAPI application that places and receives phone calls
through Twilio and bridges each call's media stream to an OpenAI realtime
session. Every route lives under ``/twilio``:

- ``GET /health``, ``GET /calls`` for monitoring
- ``POST /incoming-call``, the Twilio voice webhook returning stream TwiML
- ``POST /outbound-call`` and ``POST /end-call/{call_id}`` for call control
- WebSockets ``/media-stream`` (Twilio), ``/events`` and ``/audio-stream/{call_id}`` (observers)

Settings are loaded when the app is created but only validated at startup, so
the application object can be imported without credentials.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Request, WebSocket
from fastapi.responses import JSONResponse, Response

from call_agent.config.logging_config import configure_logging
from call_agent.config.settings import Settings, load_settings
from call_agent.handlers.call_handlers import (
    handle_end_call,
    handle_health,
    handle_incoming_call,
    handle_list_calls,
    handle_outbound_call,
)
from call_agent.services.twilio_client import CallControlClient
from call_agent.websocket_manager import WebSocketManager

# Configure logging
logger = configure_logging()

APP_NAME = "Twilio Realtime Call Agent"
APP_DESCRIPTION = "Bridge between Twilio Media Streams and the OpenAI Realtime API"
APP_VERSION = "1.0.0"


def create_app(
    settings: Optional[Settings] = None, call_control: Optional[CallControlClient] = None
) -> FastAPI:
    """
    Build the application and its shared call state.

    Args:
        settings: Runtime settings; loaded from the environment when omitted
        call_control: Call-control client override, mainly for tests
    """
    settings = settings or load_settings()
    manager = WebSocketManager(settings, call_control=call_control)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await manager.close()

    app = FastAPI(title=APP_NAME, description=APP_DESCRIPTION, version=APP_VERSION, lifespan=lifespan)
    app.state.manager = manager
    router = APIRouter(prefix="/twilio")

    @router.get("/health")
    async def health_check():
        """Health check endpoint for load balancers and monitoring tools."""
        return handle_health(manager)

    @router.api_route("/incoming-call", methods=["GET", "POST"])
    async def incoming_call(request: Request):
        """Twilio voice webhook: connect the call to the media stream."""
        call_id = request.query_params.get("CallSid")
        if request.method == "POST":
            form = await request.form()
            call_id = form.get("CallSid") or call_id
        return Response(content=handle_incoming_call(manager, call_id), media_type="application/xml")

    @router.post("/outbound-call")
    async def outbound_call(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        status_code, content = await handle_outbound_call(body, manager)
        return JSONResponse(status_code=status_code, content=content)

    @router.post("/end-call/{call_id}")
    async def end_call(call_id: str):
        status_code, content = await handle_end_call(call_id, manager)
        return JSONResponse(status_code=status_code, content=content)

    @router.get("/calls")
    async def list_calls():
        return handle_list_calls(manager)

    @router.websocket("/media-stream")
    async def media_stream(websocket: WebSocket):
        """Twilio Media Streams endpoint; one call session bridge per connection."""
        await manager.handle_media_stream(websocket)

    @router.websocket("/events")
    async def event_stream(websocket: WebSocket):
        """Domain events for every call, for operator UIs."""
        await manager.handle_event_stream(websocket)

    @router.websocket("/audio-stream/{call_id}")
    async def audio_stream(websocket: WebSocket, call_id: str):
        """Raw caller audio for one call."""
        await manager.handle_audio_stream(websocket, call_id)

    app.include_router(router)

    @app.get("/")
    async def root():
        """Basic information about the API."""
        return {
            "name": APP_NAME,
            "description": APP_DESCRIPTION,
            "version": APP_VERSION,
            "endpoints": {
                "/twilio/media-stream": "WebSocket endpoint for Twilio Media Streams",
                "/twilio/events": "WebSocket feed of call events",
                "/twilio/audio-stream/{call_id}": "WebSocket feed of caller audio",
                "/twilio/outbound-call": "Place an outbound call",
                "/twilio/health": "Health check endpoint",
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = app.state.manager.settings.validate_required()
    logger.info(f"Starting server on http://{settings.host}:{settings.port}")
    logger.info(f"Media stream URL: {settings.media_stream_url}")
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        websocket_ping_interval=5,  # More frequent pings to keep connections alive
        websocket_max_size=16777216,  # 16MB - large enough for audio chunks
        websocket_ping_timeout=20,
        # Use HTTP/1.1 for lower overhead than HTTP/2
        http="h11",
    )
