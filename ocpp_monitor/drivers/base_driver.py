"""Base class for all stream drivers."""
import codecs
from abc import ABC, abstractmethod

CONNECTION_ERROR_MARKERS = ("disconnected", "closed", "failed")


class TransportError(Exception):
    """Reading from or connecting to the transport failed."""


def is_connection_error(error: BaseException) -> bool:
    """Heuristic: does the error text suggest the link itself is gone?"""
    text = str(error).lower()
    return any(marker in text for marker in CONNECTION_ERROR_MARKERS)


class StreamDriver(ABC):
    """Abstract base class for drivers delivering the device's text stream."""

    encoding = 'utf-8'

    def _new_decoder(self):
        """Incremental decoder so multi-byte characters split across reads survive."""
        return codecs.getincrementaldecoder(self.encoding)(errors='replace')

    @abstractmethod
    async def connect(self) -> bool:
        """Open the transport."""
        pass

    @abstractmethod
    async def disconnect(self):
        """Close the transport."""
        pass

    @abstractmethod
    async def read_chunk(self) -> str:
        """Wait for the next chunk of text; empty string when nothing arrived."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if connected."""
        pass

    @abstractmethod
    def get_connection_info(self) -> dict:
        """Get connection information."""
        pass
