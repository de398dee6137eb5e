"""
Twilio Realtime Call Agent - Twilio Media Streams to OpenAI Realtime API Bridge

This application places and receives phone calls through Twilio and lets an
OpenAI realtime model hold the conversation, while operator UIs observe each
call's events and audio live.

Architecture Overview:
- FastAPI server exposing the Twilio webhook, call-control routes and WebSockets
- One call session bridge per Twilio media stream, relaying audio and events
  between the phone leg and the realtime model session
- In-memory call registry and per-call conversation history that survive media
  stream reconnects (for example after DTMF)

Key Components:
- bot: Realtime session client, Twilio protocol adapter, agent definition,
  delayed-task scheduler and the call session bridge
- config: Constants, logging setup and environment settings
- handlers: HTTP request handlers for the call API
- models: Call, frame and event schemas plus the registry and history stores
- services: Twilio call-control client and observer fan-out
- websocket_manager: Shared call state and the WebSocket entry points

Getting Started:
1. Set up environment variables (or a .env file):
   - OPENAI_API_KEY, TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER
   - PUBLIC_DOMAIN: Public host name Twilio can reach (e.g. an ngrok domain)
   - TWILIO_SERVER_PORT: Port to run the server on (default 5050)

2. Start the server:
   ```bash
   python run.py
   ```

3. Point the Twilio number's voice webhook at https://PUBLIC_DOMAIN/twilio/incoming-call
"""
