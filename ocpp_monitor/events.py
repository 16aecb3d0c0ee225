"""Lifecycle events emitted by the monitor pipeline."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from .parsers.frame_extractor import Frame
from .parsers.message_classifier import Call, CallError, Message
from .transactions import Transaction

MALFORMED_FRAME = "malformed_frame"
SHAPE_MISMATCH = "shape_mismatch"


@dataclass(frozen=True)
class FrameExtracted:
    """A frame was extracted and classified."""
    frame: Frame
    message: Message
    label: str


@dataclass(frozen=True)
class TransactionUpdated:
    """A transaction was created or changed; carries a snapshot."""
    transaction: Transaction


@dataclass(frozen=True)
class StatusNotified:
    """A StatusNotification request was observed."""
    connector_id: Optional[int]
    status: Optional[str]
    error_code: Optional[str]
    observed_at: datetime


@dataclass(frozen=True)
class CallErrorReceived:
    """A CallError arrived; request is the Call it answers, when known."""
    error: CallError
    request: Optional[Call]


@dataclass(frozen=True)
class StreamWarning:
    """Stream content that had to be discarded."""
    kind: str
    detail: str
    text: str = ""


Event = Union[FrameExtracted, TransactionUpdated, StatusNotified, CallErrorReceived, StreamWarning]
