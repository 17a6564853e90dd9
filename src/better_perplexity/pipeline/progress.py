"""Ordered delivery of progress events to an optional consumer."""

from typing import Callable, List, Optional

from ..log import get_logger
from ..schemas.progress import ProgressEvent, StatusEvent, TokenEvent

logger = get_logger("progress")

TOTAL_STEPS = 4
REPLAY_CHUNK_CHARS = 140

Listener = Callable[[ProgressEvent], None]


class ProgressEmitter:
    """
    Forwards events to the listener in emission order.
    A listener that raises is detached; the run carries on without it.
    """

    def __init__(self, listener: Optional[Listener] = None):
        self.listener = listener
        self.emitted: List[ProgressEvent] = []

    def emit(self, event: ProgressEvent):
        self.emitted.append(event)
        if self.listener is None:
            return
        try:
            self.listener(event)
        except Exception as e:
            logger.warning(f"Progress listener failed on {event.type} event, detaching: {e}")
            self.listener = None

    def status(self, message: str, step: Optional[int] = None, total: Optional[int] = TOTAL_STEPS):
        self.emit(StatusEvent(message=message, step=step, total=total))

    def token(self, chunk: str):
        self.emit(TokenEvent(chunk=chunk))

    def replay_text(self, text: str, chunk_size: int = REPLAY_CHUNK_CHARS):
        """Streams already-complete text as fixed-size token chunks."""
        for i in range(0, len(text), chunk_size):
            self.token(text[i:i + chunk_size])
