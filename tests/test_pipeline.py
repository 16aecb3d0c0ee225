from datetime import timedelta

from ocpp_monitor.events import (
    MALFORMED_FRAME,
    SHAPE_MISMATCH,
    CallErrorReceived,
    FrameExtracted,
    StatusNotified,
    StreamWarning,
    TransactionUpdated,
)
from ocpp_monitor.pipeline import MonitorPipeline
from ocpp_monitor.transactions import TransactionStatus

from .conftest import METER_VALUES, START_CALL, START_RESULT, STOP_CALL


def of_type(events, kind):
    return [event for event in events if isinstance(event, kind)]


def test_accepted_start_creates_active_transaction(pipeline):
    pipeline.feed(START_CALL)
    events = pipeline.feed(START_RESULT)

    transaction = pipeline.transactions()["42"]
    assert transaction.status is TransactionStatus.ACTIVE
    assert transaction.meter_start == 100
    assert transaction.energy_wh == 0

    labels = [event.label for event in of_type(events, FrameExtracted)]
    assert labels == ["StartTransaction.conf"]
    assert of_type(events, TransactionUpdated)[0].transaction == transaction


def test_meter_values_then_stop(pipeline):
    pipeline.feed(START_CALL)
    pipeline.feed(START_RESULT)

    pipeline.feed(METER_VALUES)
    transaction = pipeline.transactions()["42"]
    assert transaction.meter_stop == 150
    assert transaction.energy_wh == 50

    events = pipeline.feed(STOP_CALL)
    transaction = pipeline.transactions()["42"]
    assert transaction.status is TransactionStatus.COMPLETED
    assert transaction.energy_wh == 100
    assert transaction.reason == "Local"
    assert of_type(events, TransactionUpdated)[0].transaction.status is TransactionStatus.COMPLETED


def test_session_split_into_small_chunks_with_noise(pipeline):
    stream = "boot>" + START_CALL + "\r\n[dbg] ok\r\n" + START_RESULT + METER_VALUES + "~~" + STOP_CALL

    updates = []
    for offset in range(0, len(stream), 3):
        updates.extend(of_type(pipeline.feed(stream[offset:offset + 3]), TransactionUpdated))

    assert [update.transaction.status for update in updates] == [
        TransactionStatus.ACTIVE, TransactionStatus.ACTIVE, TransactionStatus.COMPLETED,
    ]
    assert pipeline.transactions()["42"].energy_wh == 100


def test_pending_start_is_visible_until_response(pipeline):
    pipeline.feed(START_CALL)

    pending = pipeline.pending_transactions()
    assert len(pending) == 1
    assert pending[0].id_tag == "TAG1"
    assert pipeline.transactions() == {}


def test_start_request_alone_emits_no_transaction_update(pipeline):
    events = pipeline.feed(START_CALL)

    assert of_type(events, TransactionUpdated) == []
    assert [event.label for event in of_type(events, FrameExtracted)] == ["StartTransaction"]


def test_response_without_request_is_only_labelled(pipeline):
    events = pipeline.feed(START_RESULT)

    assert [type(event) for event in events] == [FrameExtracted]
    assert events[0].label == "Response"
    assert pipeline.transactions() == {}


def test_call_error_is_reported_without_changing_transactions(pipeline):
    pipeline.feed(START_CALL)

    events = pipeline.feed('[4,"1","InternalError","Database down",{}]')

    errors = of_type(events, CallErrorReceived)
    assert len(errors) == 1
    assert errors[0].error.error_code == "InternalError"
    assert errors[0].request.action == "StartTransaction"
    assert of_type(events, FrameExtracted)[0].label == "StartTransaction.error"
    assert pipeline.transactions() == {}
    assert pipeline.health.call_errors == 1


def test_invalid_json_becomes_warning(pipeline):
    events = pipeline.feed("[1,2,,]" + START_CALL)

    warnings = of_type(events, StreamWarning)
    assert [(w.kind, w.detail, w.text) for w in warnings] == [(MALFORMED_FRAME, "invalid_json", "[1,2,,]")]
    assert len(of_type(events, FrameExtracted)) == 1


def test_non_ocpp_array_becomes_shape_warning(pipeline):
    events = pipeline.feed('[7,"x",{}]')

    assert len(events) == 1
    assert events[0].kind == SHAPE_MISMATCH
    assert events[0].text == '[7,"x",{}]'
    assert pipeline.health.warnings == {SHAPE_MISMATCH: 1}


def test_status_notification_event(pipeline, clock):
    events = pipeline.feed('[2,"5","StatusNotification",{"connectorId":2,"status":"Faulted","errorCode":"GroundFailure"}]')

    notified = of_type(events, StatusNotified)
    assert notified == [StatusNotified(connector_id=2, status="Faulted", error_code="GroundFailure",
                                       observed_at=clock.now)]


def test_stop_reason_refined_by_status_arrival_time(pipeline, clock):
    pipeline.feed(START_CALL + START_RESULT)
    pipeline.feed('[2,"5","StatusNotification",{"connectorId":1,"status":"Faulted",'
                  '"errorCode":"GroundFailure","vendorErrorCode":"RCD-TRIP"}]')
    clock.advance(seconds=1)

    pipeline.feed('[2,"6","StopTransaction",{"transactionId":"42","meterStop":180,"reason":"Remote"}]')

    assert pipeline.transactions()["42"].reason == "RCD-TRIP"


def test_stale_status_does_not_refine_stop_reason(pipeline, clock):
    pipeline.feed(START_CALL + START_RESULT)
    pipeline.feed('[2,"5","StatusNotification",{"connectorId":1,"status":"Faulted","errorCode":"GroundFailure"}]')

    pipeline.feed('[2,"6","StopTransaction",{"transactionId":"42"}]',
                  observed_at=clock.now + timedelta(seconds=10))

    assert pipeline.transactions()["42"].reason == "Remote"


def test_messages_for_unknown_transaction_are_ignored(pipeline):
    events = pipeline.feed(METER_VALUES + STOP_CALL)

    assert of_type(events, TransactionUpdated) == []
    assert pipeline.transactions() == {}


def test_health_counts_frames_and_chunks(pipeline):
    pipeline.feed(START_CALL[:20])
    pipeline.feed(START_CALL[20:] + START_RESULT)

    overall = pipeline.health.get_overall_health()
    assert overall["total_chunks"] == 2
    assert overall["total_frames"] == 2
    assert overall["actions"] == {"StartTransaction": 1, "StartTransaction.conf": 1}


def test_search_passes_through(pipeline):
    pipeline.feed(START_CALL + START_RESULT)

    assert [tx.transaction_id for tx in pipeline.search("tag1")] == ["42"]


def test_default_clock_is_used():
    pipeline = MonitorPipeline()

    events = pipeline.feed('[2,"5","StatusNotification",{"connectorId":1,"status":"Available"}]')

    assert events[-1].observed_at.tzinfo is not None


def test_non_finite_numbers_do_not_stop_the_stream(pipeline):
    stream = (
        '[2,"1","StartTransaction",{"connectorId":1e999,"idTag":"TAG1","meterStart":NaN}]'
        + START_RESULT
        + '[2,"2","MeterValues",{"transactionId":"42","meterValue":[{"sampledValue":[{"value":"inf"}]}]}]'
        + '[2,"3","StopTransaction",{"transactionId":"42","meterStop":NaN,"reason":"Local"}]'
        + '[2,"4","Heartbeat",{}]'
    )

    events = pipeline.feed(stream)

    transaction = pipeline.transactions()["42"]
    assert transaction.connector_id == 1
    assert transaction.meter_start == 0
    assert transaction.meter_stop == 0
    assert transaction.status is TransactionStatus.COMPLETED
    assert of_type(events, FrameExtracted)[-1].label == "Heartbeat"


def test_replayed_stop_after_status_window_keeps_reason(pipeline, clock):
    pipeline.feed(START_CALL + START_RESULT)
    pipeline.feed('[2,"5","StatusNotification",{"connectorId":1,"status":"Faulted","errorCode":"GroundFailure"}]')
    stop = '[2,"6","StopTransaction",{"transactionId":"42","meterStop":180,"reason":"Remote"}]'
    clock.advance(seconds=1)
    pipeline.feed(stop)

    clock.advance(seconds=30)
    pipeline.feed(stop)

    assert pipeline.transactions()["42"].reason == "GroundFailure"


def test_stray_bracket_before_session(pipeline):
    pipeline.feed("boot [ok\r\n" + START_CALL + START_RESULT + "\r\n")

    assert "42" in pipeline.transactions()
