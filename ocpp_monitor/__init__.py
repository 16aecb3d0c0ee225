"""Monitor for OCPP-J traffic on a charge point's serial line."""

from .pipeline import MonitorPipeline
from .transactions import Transaction, TransactionStatus

__version__ = "1.0.0"

__all__ = [
    'MonitorPipeline',
    'Transaction',
    'TransactionStatus',
]
