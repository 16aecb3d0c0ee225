"""Stream health monitoring and statistics."""

from typing import Dict, Any
from datetime import datetime
import logging

logger = logging.getLogger(__name__)


class StreamHealth:
    """Track chunks, frames and discarded content and provide health statistics."""

    def __init__(self):
        self.actions: Dict[str, int] = {}
        self.warnings: Dict[str, int] = {}
        self.total_chunks = 0
        self.total_chars = 0
        self.total_frames = 0
        self.call_errors = 0
        self.started = datetime.now()
        self.last_frame = None

    def record_chunk(self, size: int):
        """Record a chunk read from the transport."""
        self.total_chunks += 1
        self.total_chars += size

    def record_frame(self, label: str):
        """Record a classified frame under its display label."""
        self.actions[label] = self.actions.get(label, 0) + 1
        self.total_frames += 1
        self.last_frame = datetime.now()

    def record_warning(self, kind: str):
        """Record discarded stream content."""
        self.warnings[kind] = self.warnings.get(kind, 0) + 1

    def record_call_error(self):
        self.call_errors += 1

    def get_overall_health(self) -> Dict[str, Any]:
        """Get overall health statistics."""
        discarded = sum(self.warnings.values())
        candidates = self.total_frames + discarded
        success_rate = (self.total_frames / candidates * 100) if candidates > 0 else 0

        return {
            'total_chunks': self.total_chunks,
            'total_chars': self.total_chars,
            'total_frames': self.total_frames,
            'discarded_frames': discarded,
            'call_errors': self.call_errors,
            'frame_success_rate': round(success_rate, 2),
            'warnings': dict(self.warnings),
            'actions': dict(self.actions),
            'started': self.started,
            'last_frame': self.last_frame,
            'status': 'healthy' if success_rate >= 95 else 'degraded' if success_rate >= 80 else 'unhealthy'
        }

    def get_summary(self) -> str:
        """Get a formatted summary of stream health."""
        overall = self.get_overall_health()

        lines = [
            "\n" + "="*60,
            "OCPP STREAM HEALTH",
            "="*60,
            f"Chunks: {overall['total_chunks']} ({overall['total_chars']} characters)",
            f"Frames: {overall['total_frames']}",
            f"Discarded: {overall['discarded_frames']}",
            f"Call errors: {overall['call_errors']}",
            f"Frame Success Rate: {overall['frame_success_rate']}%",
            f"Status: {overall['status'].upper() if overall['total_frames'] else 'WAITING'}",
            f"Last Frame: {overall['last_frame'].strftime('%Y-%m-%d %H:%M:%S') if overall['last_frame'] else 'Never'}",
        ]

        if overall['actions']:
            lines.append("\nMessages:")
            for label, count in sorted(overall['actions'].items()):
                lines.append(f"  {label}: {count}")

        if overall['warnings']:
            lines.append("\nDiscarded content:")
            for kind, count in sorted(overall['warnings'].items()):
                lines.append(f"  {kind}: {count}")

        lines.append("="*60 + "\n")

        return "\n".join(lines)
