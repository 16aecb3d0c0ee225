import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest

from ocpp_monitor.mqtt_publisher import SUMMARY_SENSORS, MQTTPublisher

from .conftest import METER_VALUES, START_CALL, START_RESULT, STOP_CALL

BASE = "homeassistant/sensor/ocpp_garage_charger"


@pytest.fixture
def client():
    with patch('ocpp_monitor.mqtt_publisher.mqtt.Client') as client_cls:
        yield client_cls.return_value


def make_publisher(**kwargs):
    return MQTTPublisher('core-mosquito', 1883, 'mqtt', 'secret', device_name='Garage Charger', **kwargs)


def published(client):
    return {call.args[0]: call.args[1] for call in client.publish.call_args_list}


def test_client_setup(client):
    publisher = make_publisher()

    assert publisher.base_topic == BASE
    client.username_pw_set.assert_called_once_with('mqtt', 'secret')
    client.will_set.assert_called_once_with(f"{BASE}/availability", "offline", retain=True)


def test_discovery_announces_every_sensor(client):
    publisher = make_publisher()

    asyncio.run(publisher.publish_discovery())

    topics = published(client)
    assert set(topics) == {f"{BASE}_{sensor_id}/config" for sensor_id in SUMMARY_SENSORS}
    energy = json.loads(topics[f"{BASE}_last_energy_wh/config"])
    assert energy['unit_of_measurement'] == 'Wh'
    assert energy['device_class'] == 'energy'
    assert energy['value_template'] == "{{ value_json.last_energy_wh }}"
    assert energy['state_topic'] == f"{BASE}/state"


def test_transaction_events_publish_record_and_state(client, pipeline):
    publisher = make_publisher()

    for chunk in (START_CALL, START_RESULT, METER_VALUES, STOP_CALL):
        for event in pipeline.feed(chunk):
            publisher.handle_event(event, pipeline)

    topics = published(client)
    record = json.loads(topics[f"{BASE}/transactions/42"])
    assert record['status'] == 'Completed'
    assert record['energy_wh'] == 100
    state = json.loads(topics[f"{BASE}/state"])
    assert state == {
        'active_transactions': 0,
        'completed_transactions': 1,
        'last_energy_wh': 100,
        'connector_status': None,
        'last_stop_reason': 'Local',
    }
    assert f"{BASE}/frames" not in topics


def test_status_notification_updates_connector_status(client, pipeline):
    publisher = make_publisher()

    events = pipeline.feed('[2,"5","StatusNotification",{"connectorId":1,"status":"Charging","errorCode":"NoError"}]')
    for event in events:
        publisher.handle_event(event, pipeline)

    assert json.loads(published(client)[f"{BASE}/state"])['connector_status'] == 'Charging'


def test_frames_published_when_enabled(client, pipeline):
    publisher = make_publisher(publish_frames=True)

    for event in pipeline.feed(START_CALL):
        publisher.handle_event(event, pipeline)

    assert published(client)[f"{BASE}/frames"] == START_CALL


def test_consume_drains_queue(client, pipeline):
    publisher = make_publisher()

    async def scenario():
        queue = asyncio.Queue()
        for event in pipeline.feed(START_CALL + START_RESULT):
            queue.put_nowait(event)
        task = asyncio.create_task(publisher.consume(queue, pipeline))
        await queue.join()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    asyncio.run(scenario())

    assert f"{BASE}/transactions/42" in published(client)


def test_connect_failure_returns_false(client):
    client.connect.side_effect = ConnectionRefusedError("refused")
    publisher = make_publisher()

    assert asyncio.run(publisher.connect()) is False


def test_publish_offline(client):
    publisher = make_publisher()

    asyncio.run(publisher.publish_offline())

    client.publish.assert_called_once_with(f"{BASE}/availability", "offline", retain=True)


def test_on_connect_logs_failure(client, caplog):
    publisher = make_publisher()
    reason = MagicMock(is_failure=True)

    publisher._on_connect(client, None, None, reason, None)

    assert "Failed to connect" in caplog.text
