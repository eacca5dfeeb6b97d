import threading
import time
from collections import defaultdict, deque
from datetime import datetime
from typing import Any, Deque, Dict

class EventHandler:
    """
    Counts bus publications per event name and measures their rate over the
    last `window_size` publications. For FRAME_RECEIVED the rate is the frame
    rate the camera actually delivers.
    """
    def __init__(self, window_size: int = 30):
        self._lock = threading.Lock()
        self._windows: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=window_size))
        self._counts: Dict[str, int] = defaultdict(int)

    def record(self, event_name: str):
        with self._lock:
            self._windows[event_name].append(time.time())
            self._counts[event_name] += 1

    def get_count(self, event_name: str) -> int:
        with self._lock:
            return self._counts.get(event_name, 0)

    def get_fps(self, event_name: str) -> float:
        with self._lock:
            window = self._windows.get(event_name)
            if not window or len(window) < 2 or window[-1] <= window[0]:
                return 0.0
            return round((len(window) - 1) / (window[-1] - window[0]), 1)

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            names = [name for name, window in self._windows.items() if window]
        return {
            name: {
                "last_timestamp": datetime.fromtimestamp(self._windows[name][-1]).isoformat(),
                "fps": self.get_fps(name),
                "total_count": self.get_count(name),
            }
            for name in names
        }
