"""Streaming extraction of top-level JSON array frames from a noisy text stream."""

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUFFER = 1_000_000

# Opening prefix of an OCPP-J frame: '[' ws* digits ws* ','
_PREFIX_TYPE_ID = 0
_PREFIX_DIGITS = 1
_PREFIX_COMMA = 2


@dataclass(frozen=True)
class Frame:
    """One complete top-level JSON array cut out of the stream."""
    text: str
    value: Any


class FrameExtractor:
    """
    Accumulate arbitrary text chunks and emit complete JSON array frames.

    The scanner is incremental: depth counters, the string/escape flags and the
    scan position survive between feed() calls, so a frame split across many
    reads is only scanned once. Text outside a frame is noise and is dropped.

    Every OCPP-J message starts with its integer type id, so a '[' that is not
    followed by digits and a comma is noise (e.g. '[ok]' or a log prefix) and
    scanning resumes right after it. A candidate rejected when it closes is
    rescanned the same way, so a frame it swallowed is still found.
    """

    def __init__(self, max_buffer: int = DEFAULT_MAX_BUFFER):
        self.max_buffer = max_buffer
        self._rejections: List[Tuple[str, str]] = []
        self.reset()

    def reset(self):
        """Drop buffered text and scanner state."""
        self._buffer = ""
        self._pos = 0
        self._start: Optional[int] = None
        self._prefix: Optional[int] = None
        self._brackets = 0
        self._braces = 0
        self._in_string = False
        self._escaped = False

    @property
    def pending(self) -> int:
        """Number of buffered characters belonging to an unfinished frame."""
        if self._start is None:
            return 0
        return len(self._buffer) - self._start

    def feed(self, chunk: str) -> List[Frame]:
        """
        Add a chunk to the buffer and return the frames it completes.

        Args:
            chunk: Text as received from the transport, any length

        Returns:
            Frames in stream order (possibly empty)
        """
        frames: List[Frame] = []
        if not chunk:
            return frames

        self._buffer += chunk
        buffer = self._buffer
        i = self._pos

        while i < len(buffer):
            char = buffer[i]

            if self._start is None:
                if char == '[':
                    self._open(i)
                i += 1
                continue

            if self._prefix is not None:
                if self._advance_prefix(char):
                    i += 1
                else:
                    logger.debug(f"Skipping non-frame bracket: {buffer[self._start:i + 1][:40]!r}")
                    i = self._start + 1
                    self._start = None
                continue

            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif char == '\\':
                    self._escaped = True
                elif char == '"':
                    self._in_string = False
            elif char == '"':
                self._in_string = True
            elif char == '[':
                self._brackets += 1
            elif char == '{':
                self._braces += 1
            elif char == '}':
                self._braces -= 1
            elif char == ']':
                self._brackets -= 1
                if self._brackets == 0:
                    start = self._start
                    frame = self._close(buffer[start:i + 1])
                    if frame is not None:
                        frames.append(frame)
                    else:
                        i = start
            i += 1

            if self._start is not None and i - self._start > self.max_buffer:
                text = buffer[self._start:i]
                self._reject("oversized", text)
                logger.warning(f"Abandoning unterminated frame after {len(text)} characters")
                i = self._start + 1
                self._start = None

        # Keep only the unfinished frame, if any
        if self._start is None:
            self._buffer = ""
            self._pos = 0
        else:
            self._buffer = buffer[self._start:]
            self._pos = i - self._start
            self._start = 0

        return frames

    def drain_rejections(self) -> List[Tuple[str, str]]:
        """Return and clear (reason, text) pairs for candidates discarded so far."""
        rejections, self._rejections = self._rejections, []
        return rejections

    def _open(self, index: int):
        self._start = index
        self._prefix = _PREFIX_TYPE_ID
        self._brackets = 1
        self._braces = 0
        self._in_string = False
        self._escaped = False

    def _advance_prefix(self, char: str) -> bool:
        """Check one character of the '[<type id>,' prefix; False when it cannot be a frame."""
        if char.isspace():
            if self._prefix == _PREFIX_DIGITS:
                self._prefix = _PREFIX_COMMA
            return True
        if char in '0123456789':
            if self._prefix == _PREFIX_COMMA:
                return False
            self._prefix = _PREFIX_DIGITS
            return True
        if char == ',' and self._prefix != _PREFIX_TYPE_ID:
            self._prefix = None
            return True
        return False

    def _close(self, text: str) -> Optional[Frame]:
        self._start = None
        if self._braces != 0:
            self._reject("unbalanced", text)
            logger.warning(f"Discarding frame with unbalanced braces: {text[:80]}")
            return None
        try:
            value = json.loads(text)
        except json.JSONDecodeError as e:
            self._reject("invalid_json", text)
            logger.warning(f"Discarding invalid JSON frame ({e.msg} at {e.pos}): {text[:80]}")
            return None
        return Frame(text=text, value=value)

    def _reject(self, reason: str, text: str):
        self._rejections.append((reason, text))
