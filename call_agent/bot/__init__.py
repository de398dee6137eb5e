"""
Bot module for bridging Twilio calls to the OpenAI Realtime API.

Key components:
- realtime_api: ``RealtimeSession``, one WebSocket conversation with the
  Realtime API, and the session configuration builder.
- twilio_transport: Adapter translating Twilio media stream frames to and from
  realtime session events.
- agent: Instruction templates, voice selection and the ``send_dtmf`` and
  ``end_call`` tools.
- scheduler: Cancelable delayed tasks keyed by call id.
- call_session_bridge: The per-connection bridge handling barge-in, tools,
  deferred hang-up and the reconnection window.
"""
