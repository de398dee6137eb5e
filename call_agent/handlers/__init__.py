"""
Handlers module for the call HTTP API.

- call_handlers: inbound-call webhook, outbound call placement, operator
  hang-up, call listing and health.
"""
