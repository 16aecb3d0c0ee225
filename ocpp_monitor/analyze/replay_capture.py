#!/usr/bin/env python3
"""
Replay a captured serial log through the OCPP monitor pipeline
"""
import argparse
import sys

from ocpp_monitor.events import CallErrorReceived, FrameExtracted, StreamWarning
from ocpp_monitor.pipeline import MonitorPipeline


def replay(text: str, chunk_size: int = 64, verbose: bool = False) -> MonitorPipeline:
    """Feed text in fixed-size chunks, as a serial port would deliver it"""
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    pipeline = MonitorPipeline()

    for offset in range(0, len(text), chunk_size):
        for event in pipeline.feed(text[offset:offset + chunk_size]):
            if not verbose:
                continue
            if isinstance(event, FrameExtracted):
                print(f"  {event.label:30s} {event.frame.text[:100]}")
            elif isinstance(event, CallErrorReceived):
                print(f"  ✗ {event.error.error_code}: {event.error.error_description}")
            elif isinstance(event, StreamWarning):
                print(f"  ⚠ {event.kind} ({event.detail}): {event.text[:60]}")

    return pipeline


def print_report(pipeline: MonitorPipeline):
    print("\n" + "="*80)
    print("TRANSACTIONS")
    print("="*80)

    transactions = pipeline.search()
    if not transactions:
        print("  No transactions found")
    for tx in transactions:
        start = tx.start_time.strftime('%Y-%m-%d %H:%M:%S') if tx.start_time else '-'
        stop = tx.stop_time.strftime('%Y-%m-%d %H:%M:%S') if tx.stop_time else '-'
        print(f"  {tx.transaction_id:>8s}  connector {tx.connector_id}  tag {tx.id_tag:12s} "
              f"{start} → {stop}  {tx.energy_wh:7d} Wh  {tx.status.value:9s} {tx.reason or '-'}")

    pending = pipeline.pending_transactions()
    if pending:
        print(f"\n⚠ {len(pending)} StartTransaction request(s) never confirmed:")
        for tx in pending:
            print(f"  tag {tx.id_tag} on connector {tx.connector_id}, meter start {tx.meter_start} Wh")

    print(pipeline.health.get_summary())


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='Replay an OCPP serial capture')
    parser.add_argument('file', type=str, help='Captured serial log')
    parser.add_argument('--chunk-size', type=int, default=64, help='Characters per simulated read (default: 64)')
    parser.add_argument('--verbose', action='store_true', help='Print every frame and warning')

    args = parser.parse_args()

    try:
        with open(args.file, 'r', encoding='utf-8', errors='replace') as f:
            capture = f.read()
    except OSError as e:
        print(f"❌ Error: {e}")
        sys.exit(1)

    print(f"Replaying {len(capture)} characters from {args.file} in {args.chunk_size}-character chunks...")
    print_report(replay(capture, args.chunk_size, args.verbose))
