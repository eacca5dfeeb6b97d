import threading
from typing import Any, Dict, Optional
from datetime import datetime
from dataclasses import dataclass
from cachetools import LRUCache

@dataclass(frozen=True)
class StoredFrame:
    """A container to hold frame bytes and their capture timestamp together."""
    data: bytes
    timestamp: float
    sequence: int

class FrameHandler:
    """
    Holds the single shared "last frame" of the stream.

    The slot is replaced as a whole on every frame (last writer wins); readers
    always see a complete StoredFrame, never a partially updated one.
    """
    def __init__(self):
        self._lock = threading.RLock()
        self._frame_cache: LRUCache[str, StoredFrame] = LRUCache(maxsize=1)
        self._frames_received = 0

    def update_frame(self, data: bytes, timestamp: float, sequence: int):
        with self._lock:
            self._frame_cache['latest'] = StoredFrame(data=data, timestamp=timestamp, sequence=sequence)
            self._frames_received += 1

    def get_frame(self) -> Optional[StoredFrame]:
        with self._lock:
            return self._frame_cache.get('latest')

    def get_frame_data(self) -> Optional[bytes]:
        item = self.get_frame()
        return item.data if item else None

    def clear(self):
        with self._lock:
            self._frame_cache.clear()

    def get_status(self) -> Dict[str, Any]:
        """Returns the status of the currently stored frame."""
        item = self.get_frame()
        with self._lock:
            status: Dict[str, Any] = {"frames_received": self._frames_received, "last_frame": None}
        if item:
            status["last_frame"] = {
                "timestamp_utc": datetime.fromtimestamp(item.timestamp).isoformat(),
                "size_bytes": len(item.data),
                "sequence": item.sequence,
            }
        return status
