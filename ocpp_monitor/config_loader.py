import json
import logging
import os
from pathlib import Path
from urllib.parse import urlparse
import yaml

logger = logging.getLogger(__name__)

STREAM_DEFAULTS = {
    'baudrate': 115200,
    'timeout': 1,
    'reconnect_delay_ms': 2000,
    'read_size': 4096,
}

PIPELINE_DEFAULTS = {
    'status_window_ms': 5000,
    'max_buffer': 1_000_000,
}

MQTT_DEFAULTS = {
    'enabled': True,
    'host': 'core-mosquito',
    'port': 1883,
    'username': 'mqtt',
    'password': 'mqtt',
    'discovery_prefix': 'homeassistant',
    'device_name': 'OCPP Monitor',
    'publish_frames': False,
}


def _read_file(config_path: str) -> dict:
    suffix = Path(config_path).suffix.lower()
    with open(config_path, 'r', encoding='utf-8') as f:
        if suffix in ('.yaml', '.yml'):
            return yaml.safe_load(f) or {}
        return json.load(f)


def parse_stream_path(path: str) -> dict:
    """
    Resolve a stream path into driver settings.

    Accepted forms: 'serial:///dev/ttyUSB0', 'serial://COM3', '/dev/ttyUSB0',
    'COM3' and 'tcp://host:port'.
    """
    parsed = urlparse(path)
    scheme = parsed.scheme.lower()

    if scheme == 'tcp':
        if not parsed.hostname or not parsed.port:
            raise ValueError(f"TCP stream path must be tcp://host:port, got '{path}'")
        return {'driver': 'tcp', 'host': parsed.hostname, 'port': parsed.port}

    if scheme == 'serial':
        device = f"{parsed.netloc}{parsed.path}"
        if not device:
            raise ValueError(f"Serial stream path has no device: '{path}'")
        return {'driver': 'serial', 'device': device}

    # Bare device names; urlparse reads 'COM3' as a path and a drive letter as a scheme
    if not scheme or len(scheme) == 1:
        return {'driver': 'serial', 'device': path}

    raise ValueError(f"Unknown scheme '{scheme}' in stream path '{path}'")


async def load_config(config_path):
    try:
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        config = _read_file(config_path)
        if not isinstance(config, dict):
            raise ValueError("Configuration must be a mapping")

        stream = config.get('stream')
        if not stream or not stream.get('path'):
            raise ValueError("stream.path is required")

        for key, value in STREAM_DEFAULTS.items():
            stream.setdefault(key, value)
        stream.update(parse_stream_path(stream['path']))

        if stream['reconnect_delay_ms'] < 0:
            raise ValueError("stream.reconnect_delay_ms must not be negative")

        pipeline = config.setdefault('pipeline', {})
        for key, value in PIPELINE_DEFAULTS.items():
            pipeline.setdefault(key, value)

        mqtt = config.setdefault('mqtt', {})
        for key, value in MQTT_DEFAULTS.items():
            mqtt.setdefault(key, value)

        config.setdefault('log_level', 'info')
        config.setdefault('stats_interval', 300)

        logger.info(f"Stream: {stream['driver']} {stream['path']} (reconnect delay {stream['reconnect_delay_ms']} ms)")
        logger.info(f"Configuration loaded from {config_path}")
        return config

    except FileNotFoundError:
        logger.error(f"Configuration file not found: {config_path}")
        raise
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in configuration file: {e}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in configuration file: {e}")
        raise
    except Exception as e:
        logger.error(f"Error loading configuration: {e}")
        raise
