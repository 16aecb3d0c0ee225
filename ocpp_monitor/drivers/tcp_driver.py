"""Serial-over-TCP driver (ser2net style gateways, RS232/RS485 to Ethernet)."""
import asyncio
import logging
from .base_driver import StreamDriver, TransportError


class TcpStreamDriver(StreamDriver):
    """Raw TCP driver reading the charge point's serial stream from a gateway."""

    def __init__(self, host: str, port: int, timeout: float = 10.0,
                 read_size: int = 4096, logger=None):
        self.type = 'tcp'
        self.reader = None
        self.writer = None
        self.logger = logger or logging.getLogger(__name__)
        self._host = host
        self._port = port
        self.timeout = timeout
        self.read_size = read_size
        self._decoder = self._new_decoder()

    async def connect(self) -> bool:
        """Connect to TCP gateway."""
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port),
                timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            self.logger.error(f"TCP connection error: {e}")
            await self.disconnect()
            return False

        self._decoder = self._new_decoder()
        self.logger.info(f"Connected to {self._host}:{self._port}")
        return True

    async def disconnect(self):
        """Close TCP connection."""
        if self.writer:
            try:
                self.writer.close()
                await self.writer.wait_closed()
            except OSError as e:
                self.logger.debug(f"Error while closing TCP connection: {e}")
            finally:
                self.writer = None
                self.reader = None
                self.logger.info("TCP connection closed")

    async def read_chunk(self) -> str:
        """Read the next block of bytes from the gateway."""
        if not self.is_connected:
            raise TransportError(f"Connection to {self._host}:{self._port} is closed")
        try:
            data = await self.reader.read(self.read_size)
        except OSError as e:
            raise TransportError(f"Read failed: {e}") from e

        if not data:
            # EOF: the gateway dropped the connection
            raise TransportError(f"Gateway {self._host}:{self._port} disconnected")
        return self._decoder.decode(data)

    @property
    def is_connected(self) -> bool:
        """Check if connected."""
        return self.writer is not None and not self.writer.is_closing()

    def get_connection_info(self) -> dict:
        """Get connection information."""
        return {
            'type': self.type,
            'host': self._host,
            'port': self._port,
            'connected': self.is_connected
        }
