import asyncio
import logging

logger = logging.getLogger(__name__)

TOAST_SECONDS = 3.0


class Notifier:
    """Single transient status message, auto-dismissed after a few seconds.

    A new message replaces the current one and restarts the timer.
    """

    def __init__(self, duration: float = TOAST_SECONDS) -> None:
        self.duration = duration
        self._message: str | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def message(self) -> str | None:
        return self._message

    def show(self, message: str) -> None:
        self._cancel_timer()
        self._message = message
        logger.debug("Notice: %s", message)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to schedule on; stays until replaced or dismissed
            return
        self._timer = loop.call_later(self.duration, self.dismiss)

    def dismiss(self) -> None:
        self._cancel_timer()
        self._message = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
