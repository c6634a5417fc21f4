"""
Call accounting for outbound model and OCR APIs.
Feeds the health/status surface; never blocks or delays a call.
"""
import logging
from collections import defaultdict, deque
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Deque, Dict, Optional

logger = logging.getLogger(__name__)

# Reporting windows, widest last; history older than the widest is dropped
WINDOWS = (
    ('calls_last_minute', timedelta(minutes=1)),
    ('calls_last_hour', timedelta(hours=1)),
    ('calls_last_day', timedelta(days=1)),
)


class CallTracker:
    """
    Per-service call counters (e.g. 'groq', 'openrouter', 'textract').

    Calls are recorded from worker threads (requests run via
    asyncio.to_thread), so every read and write happens under one lock.
    """

    def __init__(self):
        self._lock = Lock()
        self._timestamps: Dict[str, Deque[datetime]] = defaultdict(deque)
        self._totals: Dict[str, int] = defaultdict(int)
        self._failures: Dict[str, int] = defaultdict(int)
        self._started = datetime.now()

    def record_call(self, service: str, success: bool = True):
        with self._lock:
            now = datetime.now()
            history = self._timestamps[service]
            history.append(now)
            _prune(history, now)
            self._totals[service] += 1
            if not success:
                self._failures[service] += 1
        logger.debug(f"API call to {service} recorded (success={success})")

    def get_stats(self, service: Optional[str] = None) -> Dict[str, Any]:
        """
        Windowed counts for one service, or totals across all services.

        Args:
            service: Service name; None for the combined view
        """
        with self._lock:
            now = datetime.now()
            if service is None:
                return {
                    'total_calls': sum(self._totals.values()),
                    'failed_calls': sum(self._failures.values()),
                    'calls_by_service': dict(self._totals),
                    'session_duration': (now - self._started).total_seconds()
                }

            history = self._timestamps.get(service, deque())
            _prune(history, now)

            stats: Dict[str, Any] = {
                'service': service,
                'total_calls': self._totals.get(service, 0),
                'failed_calls': self._failures.get(service, 0),
            }
            for name, span in WINDOWS:
                cutoff = now - span
                stats[name] = sum(1 for ts in history if ts > cutoff)
            return stats

    def reset(self):
        with self._lock:
            self._timestamps.clear()
            self._totals.clear()
            self._failures.clear()
            self._started = datetime.now()
        logger.info("Call tracker reset")


def _prune(history: Deque[datetime], now: datetime):
    horizon = now - WINDOWS[-1][1]
    while history and history[0] <= horizon:
        history.popleft()
