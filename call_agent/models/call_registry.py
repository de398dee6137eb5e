"""
In-memory call registry.

Maps Twilio call ids to their ``CallRecord``. The registry is a cache of what this
process knows about its calls, not a source of truth for carrier state, so every
operation is synchronous and tolerant of unknown ids.
"""

import logging
from typing import Dict, List, Optional

from call_agent.config.constants import LOGGER_NAME
from call_agent.models.calls import CallRecord, CallStatus

logger = logging.getLogger(LOGGER_NAME)


class CallRegistry:
    """
    Directory of active calls keyed by call id.

    The call session bridge is the only writer of status changes once a media
    stream is connected; the HTTP layer adds records for outbound calls and
    removes them on manual termination.
    """

    def __init__(self):
        self.active_calls: Dict[str, CallRecord] = {}

    def put(self, record: CallRecord) -> None:
        """Add or replace the record for ``record.call_id``."""
        self.active_calls[record.call_id] = record

    def get(self, call_id: str) -> Optional[CallRecord]:
        return self.active_calls.get(call_id)

    def set_status(self, call_id: str, status: CallStatus) -> None:
        """Update the status of a call; unknown ids are ignored."""
        record = self.active_calls.get(call_id)
        if record is None:
            logger.debug(f"Status update to {status.value} ignored for unknown call: {call_id}")
            return
        record.status = status

    def remove(self, call_id: str) -> None:
        self.active_calls.pop(call_id, None)

    def list(self) -> List[CallRecord]:
        return list(self.active_calls.values())

    def __len__(self) -> int:
        return len(self.active_calls)

    def __contains__(self, call_id: str) -> bool:
        return call_id in self.active_calls
