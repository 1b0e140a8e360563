import threading
import time

from gateway.exceptions import ReconcileCancelled


class Context(object):
    """
    Cancellation and deadline carried through every external call of a reconcile pass.

    Contexts derived with with_timeout() share the parent's cancel event.
    """

    def __init__(self, event=None, deadline=None):
        self.event = event if event is not None else threading.Event()
        self.deadline = deadline

    @classmethod
    def background(cls):
        return cls()

    def with_timeout(self, seconds):
        deadline = time.monotonic() + seconds
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return Context(self.event, deadline)

    def cancel(self):
        self.event.set()

    @property
    def cancelled(self):
        if self.event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check(self):
        if self.event.is_set():
            raise ReconcileCancelled("context canceled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise ReconcileCancelled("context deadline exceeded")

    def timeout(self, default):
        """Remaining time bounded by default, used as the requests timeout."""
        if self.deadline is None:
            return default
        return max(0.001, min(default, self.deadline - time.monotonic()))
