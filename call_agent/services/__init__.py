"""
Services module for external integrations.

Key components:
- twilio_client: Async wrapper over the Twilio REST client for placing,
  ending and sending DTMF on calls, plus the TwiML builders.
- event_fanout: Best-effort broadcast of call events and caller audio to
  observer WebSockets.
"""
