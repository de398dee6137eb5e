"""
Models module for data structures and state management in the call agent.

Key components:
- calls: Call records, tasks, agent tuning and the outbound-call HTTP contract.
- twilio_schemas: Pydantic models for Twilio Media Streams frames.
- openai_schemas: Type-safe models for the OpenAI Realtime API client events.
- events: Envelopes pushed to event observers and audio listeners.
- call_registry: In-memory directory of active calls.
- conversation: Per-call transcript history that outlives a media stream.
"""
