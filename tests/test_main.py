from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from call_agent.main import create_app
from call_agent.models.calls import CallRecord, OutboundTask, TaskType
from call_agent.services.twilio_client import CallControlError

VALID_REQUEST = {
    "destination": "+15551234567",
    "task": {"type": "survey", "prompt": "Ask 3 questions", "context": {}},
}


@pytest.fixture
def app(settings, call_control):
    return create_app(settings=settings, call_control=call_control)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def manager(app):
    return app.state.manager


def test_health_check(client, manager):
    """Test the health check endpoint reports the active call count"""
    response = client.get("/twilio/health")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["status"] == "healthy"
    assert response_json["activeCalls"] == 0
    assert "timestamp" in response_json


def test_root_endpoint(client):
    """Test the root endpoint returns the correct API information"""
    response = client.get("/")
    assert response.status_code == 200

    response_json = response.json()
    assert response_json["name"] == "Twilio Realtime Call Agent"
    assert response_json["version"] == "1.0.0"
    assert "/twilio/media-stream" in response_json["endpoints"]


def test_incoming_call_returns_stream_twiml(client):
    response = client.post("/twilio/incoming-call", data={"CallSid": "CAinbound", "From": "+15557654321"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert '<Stream url="wss://example.ngrok.app/twilio/media-stream">' in response.text
    assert '<Parameter name="callId" value="CAinbound" />' in response.text


def test_outbound_call(client, manager, call_control):
    response = client.post("/twilio/outbound-call", json=VALID_REQUEST)
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "callId": "CA123",
        "status": "initiated",
        "estimatedDuration": "60-120 seconds",
    }

    call_control.create_call.assert_awaited_once_with(
        to="+15551234567", url="https://example.ngrok.app/twilio/incoming-call"
    )
    record = manager.registry.get("CA123")
    assert record.task.type == TaskType.SURVEY
    assert record.status.value == "initiated"


def test_outbound_call_accepts_agent_config_and_to_alias(client, manager):
    body = {
        "to": "+15551234567",
        "task": {"type": "custom", "prompt": "Say hello"},
        "agentConfig": {"voice": "alloy", "temperature": 0.8, "noiseReduction": "near_field"},
    }
    response = client.post("/twilio/outbound-call", json=body)
    assert response.status_code == 200
    record = manager.registry.get("CA123")
    assert record.agent_config.voice == "alloy"
    assert record.agent_config.noise_reduction == "near_field"


def test_outbound_call_with_credentials_uses_per_call_client(client, call_control):
    per_call = MagicMock()
    per_call.create_call = AsyncMock(return_value="CA999")
    call_control.with_credentials.return_value = per_call
    body = dict(VALID_REQUEST, credentials={"twilioAccountSid": "ACother", "twilioAuthToken": "tok"})

    response = client.post("/twilio/outbound-call", json=body)

    assert response.json()["callId"] == "CA999"
    credentials = call_control.with_credentials.call_args.args[0]
    assert credentials.twilio_account_sid == "ACother"
    call_control.create_call.assert_not_awaited()


def test_outbound_call_validation_error(client, call_control):
    response = client.post("/twilio/outbound-call", json={"destination": "+15551234567"})
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert response.json()["success"] is False
    call_control.create_call.assert_not_awaited()


def test_outbound_call_empty_prompt_is_validation_error(client):
    body = {"destination": "+15551234567", "task": {"type": "survey", "prompt": "   "}}
    response = client.post("/twilio/outbound-call", json=body)
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.parametrize("raw_body", [b"not json", b"{\"destination\": \"\x80\"}"])
def test_outbound_call_undecodable_body_is_validation_error(client, call_control, raw_body):
    response = client.post(
        "/twilio/outbound-call", content=raw_body, headers={"content-type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    call_control.create_call.assert_not_awaited()


def test_outbound_call_invalid_phone(client, call_control):
    response = client.post("/twilio/outbound-call", json=dict(VALID_REQUEST, destination="555-1234"))
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_PHONE"
    call_control.create_call.assert_not_awaited()


def test_outbound_call_failure(client, manager, call_control):
    call_control.create_call.side_effect = CallControlError("Authentication failed")
    response = client.post("/twilio/outbound-call", json=VALID_REQUEST)
    assert response.status_code == 500
    assert response.json()["code"] == "CALL_FAILED"
    assert len(manager.registry) == 0


def test_end_call(client, manager, call_control):
    manager.registry.put(
        CallRecord(
            call_id="CA123",
            destination="+15551234567",
            task=OutboundTask(type=TaskType.SURVEY, prompt="Ask 3 questions"),
        )
    )
    with patch.object(manager.context, "resolve_pending_end_call") as mock_resolve:
        response = client.post("/twilio/end-call/CA123")

    assert response.status_code == 200
    assert response.json() == {"success": True, "callId": "CA123"}
    call_control.end_call.assert_awaited_once_with("CA123")
    mock_resolve.assert_called_once_with("CA123")
    assert "CA123" not in manager.registry


def test_end_call_failure(client, call_control):
    call_control.end_call.side_effect = CallControlError("Call not found", call_id="CA404")
    response = client.post("/twilio/end-call/CA404")
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Call not found"}


def test_list_calls_hides_credentials(client, manager):
    record = CallRecord.model_validate(
        {
            "call_id": "CA123",
            "destination": "+15551234567",
            "task": {"type": "survey", "prompt": "Ask 3 questions"},
            "credentials": {"openaiApiKey": "sk-secret"},
        }
    )
    manager.registry.put(record)

    response = client.get("/twilio/calls")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["calls"][0]["callId"] == "CA123"
    assert "sk-secret" not in response.text


def test_websocket_routes_registered(app):
    paths = {route.path for route in app.routes}
    assert {"/twilio/media-stream", "/twilio/events", "/twilio/audio-stream/{call_id}"} <= paths
