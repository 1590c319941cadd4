"""
MetricsCollector - Thread-safe per-queue counters.

Tracks for every queue:
- Counters: sent, delivered, buffered, expired, failed
- Gauges: depth (buffered messages), waiting (buffered receivers)
"""
import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass
class QueueMetrics:
    """Metrics for a specific queue"""
    sent: int = 0
    delivered: int = 0
    buffered: int = 0
    expired: int = 0
    failed: int = 0
    depth: int = 0
    waiting: int = 0


class MetricsCollector:
    """
    Thread-safe metrics collection for a connection's queues.
    """

    def __init__(self):
        self._queue_metrics: Dict[str, QueueMetrics] = defaultdict(QueueMetrics)
        self._lock = threading.RLock()
        self._start_time = time.time()

    # === Counters ===

    def increment_sent(self, queue_name: str) -> None:
        with self._lock:
            self._queue_metrics[queue_name].sent += 1

    def increment_delivered(self, queue_name: str) -> None:
        with self._lock:
            self._queue_metrics[queue_name].delivered += 1

    def increment_buffered(self, queue_name: str) -> None:
        with self._lock:
            self._queue_metrics[queue_name].buffered += 1

    def increment_expired(self, queue_name: str, count: int = 1) -> None:
        with self._lock:
            self._queue_metrics[queue_name].expired += count

    def increment_failed(self, queue_name: str) -> None:
        with self._lock:
            self._queue_metrics[queue_name].failed += 1

    # === Gauges ===

    def set_queue_depth(self, queue_name: str, depth: int) -> None:
        """Set number of buffered messages"""
        with self._lock:
            self._queue_metrics[queue_name].depth = depth

    def set_waiting(self, queue_name: str, waiting: int) -> None:
        """Set number of buffered receivers"""
        with self._lock:
            self._queue_metrics[queue_name].waiting = waiting

    def get_queue_stats(self, queue_name: str) -> Dict[str, Any]:
        """
        Get statistics for a specific queue.

        Returns:
            Dict with queue metrics
        """
        with self._lock:
            metrics = self._queue_metrics[queue_name]
            return {
                'sent': metrics.sent,
                'delivered': metrics.delivered,
                'buffered': metrics.buffered,
                'expired': metrics.expired,
                'failed': metrics.failed,
                'depth': metrics.depth,
                'waiting': metrics.waiting,
            }

    # === System-Wide Metrics ===

    def get_total_messages(self) -> int:
        """Get total messages sent across all queues"""
        with self._lock:
            return sum(metrics.sent for metrics in self._queue_metrics.values())

    def get_uptime_seconds(self) -> float:
        return time.time() - self._start_time

    def list_queues(self) -> List[str]:
        """Get list of all queues that have metrics"""
        with self._lock:
            return list(self._queue_metrics.keys())

    # === Reset Operations ===

    def reset_queue_metrics(self, queue_name: str) -> None:
        """Reset metrics for a specific queue"""
        with self._lock:
            if queue_name in self._queue_metrics:
                self._queue_metrics[queue_name] = QueueMetrics()

    def reset_all_metrics(self) -> None:
        with self._lock:
            self._queue_metrics.clear()
            self._start_time = time.time()
