"""Transport drivers delivering the charge point's text stream."""

from .base_driver import StreamDriver, TransportError, is_connection_error
from .serial_driver import SerialDriver
from .tcp_driver import TcpStreamDriver


def create_driver(stream_config: dict, logger=None) -> StreamDriver:
    """Build the driver selected by the loaded 'stream' configuration."""
    driver = stream_config['driver']
    if driver == 'serial':
        return SerialDriver(
            path=stream_config['device'],
            baudrate=stream_config['baudrate'],
            timeout=stream_config['timeout'],
            read_size=stream_config['read_size'],
            logger=logger,
        )
    if driver == 'tcp':
        return TcpStreamDriver(
            host=stream_config['host'],
            port=stream_config['port'],
            timeout=stream_config['timeout'],
            read_size=stream_config['read_size'],
            logger=logger,
        )
    raise ValueError(f"Unsupported driver '{driver}'")


__all__ = [
    'StreamDriver',
    'TransportError',
    'is_connection_error',
    'SerialDriver',
    'TcpStreamDriver',
    'create_driver',
]
