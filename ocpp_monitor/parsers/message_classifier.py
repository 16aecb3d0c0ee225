"""OCPP-J message classification using Strategy Pattern."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Union

from .frame_extractor import Frame


class MessageType(Enum):
    """OCPP-J message type ids"""
    CALL = 2            # [2, id, action, payload]
    CALL_RESULT = 3     # [3, id, payload]
    CALL_ERROR = 4      # [4, id, errorCode, errorDescription, errorDetails]


class ClassifyError(ValueError):
    """Frame is valid JSON but not an OCPP-J message"""


class NotAnArrayError(ClassifyError):
    """Top-level JSON value is not an array"""


class ShapeMismatchError(ClassifyError):
    """Array is too short or carries an invalid type tag or field"""


@dataclass(frozen=True)
class Call:
    message_id: str
    action: str
    payload: Any = field(default_factory=dict)
    message_type = MessageType.CALL


@dataclass(frozen=True)
class CallResult:
    message_id: str
    payload: Any = field(default_factory=dict)
    message_type = MessageType.CALL_RESULT


@dataclass(frozen=True)
class CallError:
    message_id: str
    error_code: str
    error_description: str = ""
    details: Any = field(default_factory=dict)
    message_type = MessageType.CALL_ERROR


Message = Union[Call, CallResult, CallError]


class MessageParser(ABC):
    """Base parser for one message type"""

    @abstractmethod
    def parse(self, message_id: str, fields: List[Any]) -> Message:
        """Build a message from the elements following the message id"""
        pass

    def _require_text(self, value: Any, name: str) -> str:
        """Check a positional field is a non-empty string"""
        if not isinstance(value, str) or not value:
            raise ShapeMismatchError(f"{name} must be a non-empty string, got {value!r}")
        return value


class CallParser(MessageParser):
    """Parse [2, id, action, payload]; payload may be omitted"""

    def parse(self, message_id: str, fields: List[Any]) -> Call:
        action = self._require_text(fields[0], "action")
        payload = fields[1] if len(fields) > 1 else {}
        return Call(message_id=message_id, action=action, payload=payload)


class CallResultParser(MessageParser):
    """Parse [3, id, payload]"""

    def parse(self, message_id: str, fields: List[Any]) -> CallResult:
        return CallResult(message_id=message_id, payload=fields[0])


class CallErrorParser(MessageParser):
    """Parse [4, id, errorCode, errorDescription, errorDetails]"""

    def parse(self, message_id: str, fields: List[Any]) -> CallError:
        error_code = self._require_text(fields[0], "errorCode")
        description = fields[1] if len(fields) > 1 and isinstance(fields[1], str) else ""
        details = fields[2] if len(fields) > 2 else {}
        return CallError(
            message_id=message_id,
            error_code=error_code,
            error_description=description,
            details=details,
        )


class MessageParserFactory:
    """Factory to get appropriate parser"""

    _parsers: Dict[MessageType, MessageParser] = {
        MessageType.CALL: CallParser(),
        MessageType.CALL_RESULT: CallResultParser(),
        MessageType.CALL_ERROR: CallErrorParser(),
    }

    @classmethod
    def get_parser(cls, message_type: MessageType) -> MessageParser:
        """Get parser for message type"""
        return cls._parsers[message_type]


def classify(frame: Union[Frame, Any]) -> Message:
    """
    Tag a decoded frame as Call, CallResult or CallError.

    Args:
        frame: Extracted frame, or an already decoded JSON value

    Returns:
        The classified message

    Raises:
        NotAnArrayError: The value is not a JSON array
        ShapeMismatchError: The array does not have an OCPP-J shape
    """
    value = frame.value if isinstance(frame, Frame) else frame

    if not isinstance(value, list):
        raise NotAnArrayError(f"Expected a JSON array, got {type(value).__name__}")
    if len(value) < 3:
        raise ShapeMismatchError(f"Expected at least 3 elements, got {len(value)}")

    type_id = value[0]
    # bool is an int subclass but never a valid type tag
    if not isinstance(type_id, int) or isinstance(type_id, bool):
        raise ShapeMismatchError(f"Message type id must be an integer, got {type_id!r}")
    try:
        message_type = MessageType(type_id)
    except ValueError:
        raise ShapeMismatchError(f"Unknown message type id {type_id}") from None

    message_id = value[1]
    if isinstance(message_id, int) and not isinstance(message_id, bool):
        message_id = str(message_id)
    if not isinstance(message_id, str) or not message_id:
        raise ShapeMismatchError(f"Message id must be a non-empty string, got {value[1]!r}")

    parser = MessageParserFactory.get_parser(message_type)
    return parser.parse(message_id, value[2:])
