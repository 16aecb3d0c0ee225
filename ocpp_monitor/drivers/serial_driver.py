"""Serial port driver for charge points logging OCPP-J on a UART."""
import asyncio
import logging
import serial
from .base_driver import StreamDriver, TransportError


class SerialDriver(StreamDriver):
    """Passively listens to a serial port and returns decoded text chunks."""

    def __init__(self, path: str, baudrate: int = 115200, timeout: float = 1.0,
                 read_size: int = 4096, logger=None):
        self.type = 'serial'
        self.path = path
        self.baudrate = baudrate
        self.timeout = timeout
        self.read_size = read_size
        self.serial_port = None
        self.logger = logger or logging.getLogger(__name__)
        self._decoder = self._new_decoder()

    async def connect(self) -> bool:
        """Open the serial port (8N1)."""
        self.logger.info(f"Connecting to {self.path} with baudrate={self.baudrate}")
        try:
            self.serial_port = serial.Serial(
                port=self.path,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self.timeout,
            )
        except serial.SerialException as e:
            self.logger.error(f"Connection error on {self.path}: {e}")
            self.serial_port = None
            return False

        self._decoder = self._new_decoder()
        # Drop whatever the UART buffered before we attached
        await asyncio.to_thread(self.serial_port.reset_input_buffer)
        self.logger.info(f"Serial port {self.path} opened")
        return True

    async def disconnect(self):
        """Close the serial port."""
        if self.serial_port is not None:
            port, self.serial_port = self.serial_port, None
            try:
                await asyncio.to_thread(port.close)
            except serial.SerialException as e:
                self.logger.warning(f"Error closing {self.path}: {e}")
            self.logger.info(f"Serial port {self.path} closed")

    async def read_chunk(self) -> str:
        """Read whatever is waiting (at least one byte or until timeout)."""
        if not self.is_connected:
            raise TransportError(f"Serial port {self.path} is closed")
        try:
            data = await asyncio.to_thread(self._read_available)
        except (serial.SerialException, OSError) as e:
            raise TransportError(str(e)) from e
        return self._decoder.decode(data)

    def _read_available(self) -> bytes:
        waiting = self.serial_port.in_waiting
        return self.serial_port.read(min(waiting, self.read_size) if waiting else 1)

    @property
    def is_connected(self) -> bool:
        return self.serial_port is not None and self.serial_port.is_open

    def get_connection_info(self) -> dict:
        return {
            'type': self.type,
            'path': self.path,
            'baudrate': self.baudrate,
            'connected': self.is_connected
        }
