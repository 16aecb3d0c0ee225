"""Frame extraction and message classification for the OCPP-J stream."""

from .frame_extractor import (
    Frame,
    FrameExtractor,
)
from .message_classifier import (
    Call,
    CallError,
    CallResult,
    ClassifyError,
    Message,
    MessageParserFactory,
    MessageType,
    NotAnArrayError,
    ShapeMismatchError,
    classify,
)

__all__ = [
    'Frame',
    'FrameExtractor',
    'Call',
    'CallError',
    'CallResult',
    'ClassifyError',
    'Message',
    'MessageParserFactory',
    'MessageType',
    'NotAnArrayError',
    'ShapeMismatchError',
    'classify',
]
