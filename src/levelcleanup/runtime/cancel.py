import threading

from ..models.errors import OperationCancelled


class CancellationToken:
    """Set from any thread; checked by the worker between stages only."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, stage: str = "") -> None:
        if self._event.is_set():
            raise OperationCancelled(f"Cancelled before {stage}" if stage else "Cancelled")
