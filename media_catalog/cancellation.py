import threading

from .exceptions import CancelledOperation


class CancelToken:
    """
    Cooperative cancellation flag shared between a caller and a batch run.
    Batch loops poll it between files; nothing is interrupted mid-file.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise CancelledOperation("Operation cancelled")


def is_cancelled(token) -> bool:
    return token is not None and token.is_cancelled
