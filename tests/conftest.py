from datetime import datetime, timedelta, timezone

import pytest

from ocpp_monitor.pipeline import MonitorPipeline

START_CALL = '[2,"1","StartTransaction",{"connectorId":1,"idTag":"TAG1","meterStart":100,"timestamp":"2024-01-01T00:00:00Z"}]'
START_RESULT = '[3,"1",{"idTagInfo":{"status":"Accepted"},"transactionId":"42"}]'
METER_VALUES = '[2,"2","MeterValues",{"transactionId":"42","meterValue":[{"sampledValue":[{"measurand":"Energy.Active.Import.Register","value":"150"}]}]}]'
STOP_CALL = '[2,"3","StopTransaction",{"transactionId":"42","meterStop":200,"timestamp":"2024-01-01T01:00:00Z","reason":"Local"}]'

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock advanced by hand."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def pipeline(clock):
    return MonitorPipeline(clock=clock)
