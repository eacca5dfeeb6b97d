from typing import Any, Dict

from livestream.core.logging import logger
from livestream.stores.handlers.frame_handler import FrameHandler
from livestream.stores.handlers.event_handler import EventHandler

class ApplicationStore:
    """
    The main store for the application. It acts as a container for the state
    handlers shared between the camera bridge, the stream clients and the API.
    """
    def __init__(self):
        self.frames = FrameHandler()   # Shared last frame of the stream
        self.events = EventHandler()   # Event publication timestamps / FPS
        logger.debug("ApplicationStore initialized with all handlers.")

    def get_status(self) -> Dict[str, Any]:
        return {
            "frame_status": self.frames.get_status(),
            "events": self.events.get_status(),
        }
