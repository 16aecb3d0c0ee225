import asyncio
import json
import logging
import paho.mqtt.client as mqtt
from .events import FrameExtracted, StatusNotified, TransactionUpdated
from .transactions import Transaction, TransactionStatus

logger = logging.getLogger(__name__)

SUMMARY_SENSORS = {
    'active_transactions': {'name': 'Active transactions', 'icon': 'mdi:ev-station', 'state_class': 'measurement'},
    'completed_transactions': {'name': 'Completed transactions', 'icon': 'mdi:counter', 'state_class': 'total_increasing'},
    'last_energy_wh': {'name': 'Last session energy', 'unit': 'Wh', 'icon': 'mdi:lightning-bolt',
                       'device_class': 'energy', 'state_class': 'total'},
    'connector_status': {'name': 'Connector status', 'icon': 'mdi:ev-plug-type2'},
    'last_stop_reason': {'name': 'Last stop reason', 'icon': 'mdi:stop-circle-outline'},
}


class MQTTPublisher:
    """Publish OCPP monitor state to Home Assistant over MQTT."""

    def __init__(self, host, port, username=None, password=None, discovery_prefix='homeassistant',
                 device_name='OCPP Monitor', publish_frames=False):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.discovery_prefix = discovery_prefix
        self.device_name = device_name
        self.publish_frames = publish_frames

        device_id = device_name.lower().replace(' ', '_')
        self.device_id = f"ocpp_{device_id}"
        self.base_topic = f"{discovery_prefix}/sensor/{self.device_id}"

        self.connector_status = None
        self.last_energy_wh = None
        self.last_stop_reason = None

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        if username and password:
            self.client.username_pw_set(username, password)
        self.client.will_set(f"{self.base_topic}/availability", "offline", retain=True)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        logger.info(f"MQTT Publisher initialized for {host}:{port}")

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.error(f"Failed to connect to MQTT broker: {reason_code}")
        else:
            logger.info("Connected to MQTT broker")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.warning("Unexpected MQTT disconnection. Will auto-reconnect")

    async def connect(self):
        try:
            self.client.connect(self.host, self.port, 60)
            self.client.loop_start()
            await asyncio.sleep(0.5)
            return True
        except OSError as e:
            logger.error(f"Error connecting to MQTT broker: {e}")
            return False

    def disconnect(self):
        self.client.loop_stop()
        self.client.disconnect()

    async def publish_discovery(self):
        for sensor_id, sensor_def in SUMMARY_SENSORS.items():
            config_topic = f"{self.base_topic}_{sensor_id}/config"

            config = {
                'name': f"{self.device_name} {sensor_def['name']}",
                'unique_id': f"{self.device_id}_{sensor_id}",
                'state_topic': f"{self.base_topic}/state",
                'value_template': f"{{{{ value_json.{sensor_id} }}}}",
                'icon': sensor_def['icon'],
                'device': {
                    'identifiers': [self.device_id],
                    'name': self.device_name,
                    'manufacturer': 'OCPP',
                    'model': 'Serial stream monitor',
                },
                'availability_topic': f"{self.base_topic}/availability",
                'payload_available': 'online',
                'payload_not_available': 'offline'
            }

            if 'unit' in sensor_def:
                config['unit_of_measurement'] = sensor_def['unit']
            if 'device_class' in sensor_def:
                config['device_class'] = sensor_def['device_class']
            if 'state_class' in sensor_def:
                config['state_class'] = sensor_def['state_class']

            self.client.publish(config_topic, json.dumps(config), retain=True)

        await asyncio.sleep(0.1)
        logger.info(f"Published discovery configuration for {self.device_name}")

    def publish_transaction(self, transaction: Transaction):
        topic = f"{self.base_topic}/transactions/{transaction.transaction_id}"
        self.client.publish(topic, json.dumps(transaction.to_dict()), retain=True)

    def publish_state(self, transactions):
        """Publish the summary sensors computed from a transaction snapshot."""
        statuses = [tx.status for tx in transactions.values()]
        data = {
            'active_transactions': statuses.count(TransactionStatus.ACTIVE),
            'completed_transactions': statuses.count(TransactionStatus.COMPLETED),
            'last_energy_wh': self.last_energy_wh,
            'connector_status': self.connector_status,
            'last_stop_reason': self.last_stop_reason,
        }
        self.client.publish(f"{self.base_topic}/availability", "online", retain=True)
        self.client.publish(f"{self.base_topic}/state", json.dumps(data))
        return data

    async def publish_offline(self):
        """Publish offline status for the monitor."""
        self.client.publish(f"{self.base_topic}/availability", "offline", retain=True)
        logger.warning(f"Published offline status for {self.device_name}")

    def handle_event(self, event, pipeline):
        """Publish what a single pipeline event changed."""
        if isinstance(event, TransactionUpdated):
            transaction = event.transaction
            self.publish_transaction(transaction)
            self.last_energy_wh = transaction.energy_wh
            if transaction.status == TransactionStatus.COMPLETED:
                self.last_stop_reason = transaction.reason
            self.publish_state(pipeline.transactions())
        elif isinstance(event, StatusNotified):
            self.connector_status = event.status
            self.publish_state(pipeline.transactions())
        elif isinstance(event, FrameExtracted) and self.publish_frames:
            self.client.publish(f"{self.base_topic}/frames", event.frame.text)

    async def consume(self, queue: asyncio.Queue, pipeline):
        """Publish events from the monitor's queue until cancelled."""
        while True:
            event = await queue.get()
            try:
                self.handle_event(event, pipeline)
            finally:
                queue.task_done()
