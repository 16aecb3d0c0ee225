import asyncio
import os
import sys

from .config_loader import load_config
from .drivers import TransportError, create_driver
from .logger_config import create_logger
from .monitor import StreamMonitor
from .mqtt_publisher import MQTTPublisher
from .pipeline import MonitorPipeline


async def log_health(pipeline: MonitorPipeline, interval: int, logger):
    """Periodically log the stream health summary."""
    while True:
        await asyncio.sleep(interval)
        logger.info(pipeline.health.get_summary())


async def main_loop():
    config_path = os.getenv('CONFIG_PATH', '/data/options.json')
    logger = create_logger('INFO')

    driver = None
    mqtt_publisher = None
    pipeline = None
    try:
        config = await load_config(config_path)

        log_level = config.get('log_level', 'info').upper()
        logger = create_logger(log_level)

        if config.get('debug', 0) > 0:
            asyncio.get_running_loop().set_debug(True)

        stream_config = config['stream']
        pipeline_config = config['pipeline']
        mqtt_config = config['mqtt']

        pipeline = MonitorPipeline(
            status_window_ms=pipeline_config['status_window_ms'],
            max_buffer=pipeline_config['max_buffer'],
        )

        driver = create_driver(stream_config, logger)
        if not await driver.connect():
            logger.error(f"Could not open stream {stream_config['path']}")
            return 1

        tasks = []
        event_queue = None
        if mqtt_config['enabled']:
            mqtt_publisher = MQTTPublisher(
                host=mqtt_config['host'],
                port=mqtt_config['port'],
                username=mqtt_config['username'],
                password=mqtt_config['password'],
                discovery_prefix=mqtt_config['discovery_prefix'],
                device_name=mqtt_config['device_name'],
                publish_frames=mqtt_config['publish_frames'],
            )
            await mqtt_publisher.connect()
            await mqtt_publisher.publish_discovery()
            mqtt_publisher.publish_state(pipeline.transactions())

            event_queue = asyncio.Queue()
            tasks.append(asyncio.create_task(mqtt_publisher.consume(event_queue, pipeline)))

        monitor = StreamMonitor(
            driver,
            pipeline,
            reconnect_delay_ms=stream_config['reconnect_delay_ms'],
            event_queue=event_queue,
        )

        if config['stats_interval'] > 0:
            tasks.append(asyncio.create_task(log_health(pipeline, config['stats_interval'], logger)))

        logger.info("OCPP Monitor started")
        logger.info(f"Stream: {stream_config['path']} ({stream_config['driver']})")
        logger.info(f"Log level: {log_level}")

        try:
            await monitor.run()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        return 0

    except KeyboardInterrupt:
        logger.info("Shutting down")
        return 0
    except TransportError as e:
        logger.error(f"Stream lost: {e}")
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        if pipeline is not None:
            logger.info(pipeline.health.get_summary())
        if mqtt_publisher is not None:
            await mqtt_publisher.publish_offline()
            mqtt_publisher.disconnect()
        if driver is not None:
            await driver.disconnect()


if __name__ == "__main__":
    sys.exit(asyncio.run(main_loop()))
