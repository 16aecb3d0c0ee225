"""Pairing of OCPP-J responses with the requests that produced them."""

import logging
from typing import Dict, Optional

from .parsers.message_classifier import Call, CallError, CallResult, Message

logger = logging.getLogger(__name__)


class RequestResponseCorrelator:
    """
    Map message ids to the Call that carried them.

    OCPP-J responses only repeat the message id, so the originating action and
    payload of a CallResult can only be recovered from this table. Entries are
    never evicted and lookups do not remove them, so late or duplicate
    responses still resolve.
    """

    def __init__(self):
        self._calls: Dict[str, Call] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def record(self, call: Call):
        """Store a Call under its message id; last writer wins."""
        if call.message_id in self._calls:
            logger.debug(f"Message id {call.message_id} reused by {call.action}")
        self._calls[call.message_id] = call

    def resolve(self, message_id: str) -> Optional[Call]:
        """Return the Call recorded for message_id, if any."""
        return self._calls.get(message_id)

    def describe(self, message: Message) -> str:
        """Human readable label: action, '<action>.conf' or '<action>.error'."""
        if isinstance(message, Call):
            return message.action

        request = self.resolve(message.message_id)
        if isinstance(message, CallResult):
            return f"{request.action}.conf" if request else "Response"
        if isinstance(message, CallError):
            return f"{request.action}.error" if request else "Error"
        return "Unknown"
