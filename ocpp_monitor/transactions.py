"""Charging transaction lifecycle reconstructed from observed OCPP traffic.

Transactions are keyed by the transactionId the central system assigns in its
StartTransaction response. A StartTransaction request is held as a pending
start (keyed by its message id) until that response arrives; MeterValues and
StopTransaction address the response-assigned id.

Handlers never raise on malformed payloads: the monitor may join a stream in
the middle of a session, so unknown ids and missing fields are ignored.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .parsers.message_classifier import Call, CallResult

logger = logging.getLogger(__name__)

ENERGY_MEASURAND = "Energy.Active.Import.Register"
DEFAULT_STATUS_WINDOW_MS = 5000
DEFAULT_REASON = "Remote"


class TransactionStatus(Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    COMPLETED = "Completed"


@dataclass
class Transaction:
    """State of one charging session."""

    transaction_id: Optional[str]
    connector_id: int = 1
    id_tag: str = "-"
    start_time: Optional[datetime] = None
    stop_time: Optional[datetime] = None
    meter_start: int = 0
    meter_stop: Optional[int] = None
    energy_wh: int = 0
    status: TransactionStatus = TransactionStatus.PENDING
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON friendly representation."""
        data = asdict(self)
        data['status'] = self.status.value
        data['start_time'] = self.start_time.isoformat() if self.start_time else None
        data['stop_time'] = self.stop_time.isoformat() if self.stop_time else None
        return data


@dataclass
class StatusNotificationCache:
    """Last StatusNotification payload and when it arrived."""

    payload: Dict[str, Any]
    observed_at: datetime


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO8601 timestamp, returning None when it is missing or invalid."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_float(value: Any) -> Optional[float]:
    """Finite float from a JSON number or numeric string; None otherwise."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    try:
        number = float(number)
    except OverflowError:
        return None
    # json.loads accepts NaN, Infinity and 1e999
    return number if math.isfinite(number) else None


def as_int(value: Any) -> Optional[int]:
    """Integer from a JSON number or numeric string; None otherwise."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    number = as_float(value)
    return int(number) if number is not None else None


def as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _as_key(value: Any) -> Optional[str]:
    """Normalize a transactionId (integer on the wire in OCPP 1.6) to a string key."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    return as_str(value)


def _energy(meter_start: int, meter_stop: Optional[int]) -> int:
    if meter_stop is None:
        return 0
    return max(0, meter_stop - meter_start)


class TransactionStateMachine:
    """Fold classified StartTransaction, MeterValues, StopTransaction and
    StatusNotification messages into a set of transactions."""

    def __init__(self, status_window_ms: int = DEFAULT_STATUS_WINDOW_MS):
        self.status_window_ms = status_window_ms
        self._transactions: Dict[str, Transaction] = {}
        self._pending: Dict[str, Transaction] = {}
        self._stop_payloads: Dict[str, Dict[str, Any]] = {}
        self.last_status: Optional[StatusNotificationCache] = None

    def start_requested(self, call: Call, observed_at: datetime) -> Transaction:
        """Hold a StartTransaction request until the central system answers it."""
        payload = _as_dict(call.payload)
        meter_start = as_int(payload.get('meterStart'))

        pending = Transaction(
            transaction_id=None,
            connector_id=as_int(payload.get('connectorId')) or 1,
            id_tag=as_str(payload.get('idTag')) or "-",
            start_time=parse_timestamp(payload.get('timestamp')) or observed_at,
            meter_start=meter_start if meter_start is not None else 0,
            status=TransactionStatus.PENDING,
        )
        self._pending[call.message_id] = pending
        logger.debug(f"StartTransaction {call.message_id} pending for tag {pending.id_tag}")
        return replace(pending)

    def start_confirmed(self, call: Call, result: CallResult, observed_at: datetime) -> Optional[Transaction]:
        """Create an Active transaction from an accepted StartTransaction response."""
        pending = self._pending.pop(call.message_id, None)
        payload = _as_dict(result.payload)

        transaction_id = _as_key(payload.get('transactionId'))
        status = _as_dict(payload.get('idTagInfo')).get('status')
        if transaction_id is None or status != 'Accepted':
            logger.info(f"StartTransaction {call.message_id} not accepted (status={status})")
            return None

        if transaction_id in self._transactions:
            logger.debug(f"Transaction {transaction_id} already known, keeping first record")
            return None

        if pending is None:
            pending = self._pending_from_call(call, observed_at)

        transaction = replace(
            pending,
            transaction_id=transaction_id,
            status=TransactionStatus.ACTIVE,
        )
        self._transactions[transaction_id] = transaction
        logger.info(
            f"Transaction {transaction_id} started on connector {transaction.connector_id} "
            f"(tag {transaction.id_tag}, meter {transaction.meter_start} Wh)"
        )
        return replace(transaction)

    def meter_values(self, payload: Any) -> Optional[Transaction]:
        """Track the latest energy register reading of an Active transaction."""
        payload = _as_dict(payload)
        transaction = self._lookup(payload.get('transactionId'))
        if transaction is None or transaction.status != TransactionStatus.ACTIVE:
            return None

        reading = self._energy_reading(payload.get('meterValue'))
        if reading is None:
            return None

        transaction.meter_stop = reading
        transaction.energy_wh = _energy(transaction.meter_start, reading)
        logger.debug(f"Transaction {transaction.transaction_id}: meter {reading} Wh, energy {transaction.energy_wh} Wh")
        return replace(transaction)

    def stop(self, payload: Any, observed_at: datetime) -> Optional[Transaction]:
        """Complete a transaction from a StopTransaction request."""
        payload = _as_dict(payload)
        transaction = self._lookup(payload.get('transactionId'))
        if transaction is None:
            return None

        # Replayed stop: keep the result of the first one
        if (transaction.status == TransactionStatus.COMPLETED
                and self._stop_payloads.get(transaction.transaction_id) == payload):
            return replace(transaction)

        stop_time = parse_timestamp(payload.get('timestamp')) or transaction.stop_time or observed_at

        meter_stop = as_int(payload.get('meterStop'))
        if meter_stop is None:
            meter_stop = transaction.meter_stop if transaction.meter_stop is not None else transaction.meter_start

        reason = as_str(payload.get('reason')) or transaction.reason or DEFAULT_REASON
        reason = self._refine_reason(reason, observed_at)

        transaction.stop_time = stop_time
        transaction.meter_stop = meter_stop
        transaction.energy_wh = _energy(transaction.meter_start, meter_stop)
        transaction.status = TransactionStatus.COMPLETED
        transaction.reason = reason
        self._stop_payloads[transaction.transaction_id] = payload
        logger.info(
            f"Transaction {transaction.transaction_id} completed: "
            f"{transaction.energy_wh} Wh, reason {reason}"
        )
        return replace(transaction)

    def status_notification(self, payload: Any, observed_at: datetime):
        """Remember the latest StatusNotification for stop reason refinement."""
        self.last_status = StatusNotificationCache(payload=_as_dict(payload), observed_at=observed_at)

    def get(self, transaction_id: Any) -> Optional[Transaction]:
        transaction = self._lookup(transaction_id)
        return replace(transaction) if transaction else None

    def transactions(self) -> Dict[str, Transaction]:
        """Snapshot of all known transactions by id."""
        return {tx_id: replace(tx) for tx_id, tx in self._transactions.items()}

    def pending_transactions(self) -> List[Transaction]:
        """Snapshot of StartTransaction requests still waiting for a response."""
        return [replace(tx) for tx in self._pending.values()]

    def search(self, term: str = "") -> List[Transaction]:
        """Transactions whose id or fields contain term, newest start first."""
        needle = term.lower()
        matches = []
        for tx_id, transaction in self._transactions.items():
            if needle and needle not in tx_id.lower() and needle not in str(transaction.to_dict()).lower():
                continue
            matches.append(replace(transaction))

        oldest = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(matches, key=lambda tx: tx.start_time or oldest, reverse=True)

    def _lookup(self, transaction_id: Any) -> Optional[Transaction]:
        key = _as_key(transaction_id)
        if key is None:
            return None
        transaction = self._transactions.get(key)
        if transaction is None:
            logger.debug(f"Ignoring message for unknown transaction {key}")
        return transaction

    def _pending_from_call(self, call: Call, observed_at: datetime) -> Transaction:
        self.start_requested(call, observed_at)
        return self._pending.pop(call.message_id)

    def _energy_reading(self, meter_value: Any) -> Optional[int]:
        """Latest Energy.Active.Import.Register reading in Wh from a meterValue list."""
        if not isinstance(meter_value, list):
            return None

        reading = None
        for entry in meter_value:
            samples = _as_dict(entry).get('sampledValue')
            if not isinstance(samples, list):
                continue
            for sample in samples:
                sample = _as_dict(sample)
                # measurand defaults to the energy register when omitted
                if sample.get('measurand', ENERGY_MEASURAND) != ENERGY_MEASURAND:
                    continue
                value = as_float(sample.get('value'))
                if value is not None and sample.get('unit') == 'kWh':
                    value *= 1000
                value = as_int(value)
                if value is None:
                    continue
                reading = value
                break
        return reading

    def _refine_reason(self, reason: str, observed_at: datetime) -> str:
        """Replace a generic stop reason with detail from a recent StatusNotification."""
        cache = self.last_status
        if cache is None:
            return reason

        elapsed_ms = abs((observed_at - cache.observed_at).total_seconds()) * 1000
        if elapsed_ms >= self.status_window_ms:
            return reason

        if reason == 'Remote':
            return as_str(cache.payload.get('vendorErrorCode')) or as_str(cache.payload.get('errorCode')) or reason
        if reason == 'Other':
            return f"Other - {cache.payload.get('status')}"
        return reason
