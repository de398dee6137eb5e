"""
Call-control client for the Twilio REST API.

Wraps the three carrier operations the agent needs: placing an outbound call,
hanging a call up, and playing DTMF tones on a live call before reconnecting
it to the media stream. The Twilio helper library is synchronous, so each
request runs in a worker thread to keep the event loop free.
"""

import asyncio
import logging
from typing import Optional

from requests.exceptions import RequestException
from twilio.base.exceptions import TwilioException
from twilio.rest import Client
from twilio.twiml.voice_response import Connect, VoiceResponse

from call_agent.config.constants import LOGGER_NAME
from call_agent.config.settings import Settings
from call_agent.models.calls import CallCredentials

logger = logging.getLogger(LOGGER_NAME)


class CallControlError(Exception):
    """Raised when a Twilio REST request fails, including transport errors."""

    def __init__(self, message: str, call_id: Optional[str] = None):
        super().__init__(message)
        self.call_id = call_id


def build_stream_twiml(stream_url: str, call_id: Optional[str] = None) -> VoiceResponse:
    """TwiML that connects the call to the media stream endpoint."""
    response = VoiceResponse()
    connect = Connect()
    stream = connect.stream(url=stream_url)
    if call_id:
        stream.parameter(name="callId", value=call_id)
    response.append(connect)
    return response


def build_dtmf_twiml(
    digits: str, stream_url: str, call_id: str, pause_seconds: int = 1
) -> VoiceResponse:
    """TwiML that plays ``digits`` then reconnects the media stream."""
    response = VoiceResponse()
    response.play(digits=digits)
    if pause_seconds:
        response.pause(length=pause_seconds)
    connect = Connect()
    stream = connect.stream(url=stream_url)
    stream.parameter(name="callId", value=call_id)
    response.append(connect)
    return response


class CallControlClient:
    """
    Thin async wrapper around ``twilio.rest.Client``.

    Args:
        account_sid: Twilio account SID
        auth_token: Twilio auth token
        from_number: Caller id used for outbound calls
        stream_url: Public media stream URL used when reconnecting after DTMF
        dtmf_pause_seconds: Silence inserted after the tones before reconnecting
    """

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        stream_url: str,
        dtmf_pause_seconds: int = 1,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.stream_url = stream_url
        self.dtmf_pause_seconds = dtmf_pause_seconds
        self._client: Optional[Client] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CallControlClient":
        return cls(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_phone_number,
            stream_url=settings.media_stream_url,
            dtmf_pause_seconds=settings.dtmf_pause_seconds,
        )

    def with_credentials(self, credentials: Optional[CallCredentials]) -> "CallControlClient":
        """Client using caller-supplied Twilio credentials, or ``self`` when none are given."""
        if credentials is None or not credentials.has_twilio_credentials:
            return self
        return CallControlClient(
            account_sid=credentials.twilio_account_sid,
            auth_token=credentials.twilio_auth_token,
            from_number=credentials.twilio_phone_number or self.from_number,
            stream_url=self.stream_url,
            dtmf_pause_seconds=self.dtmf_pause_seconds,
        )

    @property
    def client(self) -> Client:
        if self._client is None:
            if not self.account_sid or not self.auth_token:
                raise CallControlError("Twilio credentials not configured")
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    async def create_call(self, to: str, url: str, method: str = "POST") -> str:
        """
        Place an outbound call.

        Args:
            to: Destination phone number
            url: Webhook Twilio fetches TwiML from once the call connects
            method: HTTP method for the webhook

        Returns:
            The Twilio call SID
        """
        if not self.from_number:
            raise CallControlError("TWILIO_PHONE_NUMBER is not set in environment variables")
        try:
            call = await asyncio.to_thread(
                self.client.calls.create,
                to=to,
                from_=self.from_number,
                url=url,
                method=method,
            )
        except (TwilioException, RequestException) as e:
            logger.error(f"Failed to create call to {to}: {e}")
            raise CallControlError(str(e)) from e
        logger.info(f"Call created: {call.sid} to {to}")
        return call.sid

    async def end_call(self, call_id: str) -> None:
        """Hang up a call by marking it completed."""
        try:
            await asyncio.to_thread(self.client.calls(call_id).update, status="completed")
        except (TwilioException, RequestException) as e:
            logger.error(f"Failed to end call {call_id}: {e}")
            raise CallControlError(str(e), call_id=call_id) from e
        logger.info(f"Call ended: {call_id}")

    async def send_dtmf(self, call_id: str, digits: str) -> None:
        """
        Play DTMF tones on a live call, then reconnect it to the media stream.

        The redirect makes Twilio close the current media stream and open a new
        one for the same call once the tones have played.
        """
        twiml = build_dtmf_twiml(digits, self.stream_url, call_id, self.dtmf_pause_seconds)
        try:
            await asyncio.to_thread(self.client.calls(call_id).update, twiml=str(twiml))
        except (TwilioException, RequestException) as e:
            logger.error(f"Failed to send DTMF {digits} on call {call_id}: {e}")
            raise CallControlError(str(e), call_id=call_id) from e
        logger.info(f"DTMF {digits} sent on call {call_id}")
