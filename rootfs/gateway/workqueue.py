import collections
import heapq
import itertools
import threading
import time

BACKOFF_BASE = 1
BACKOFF_MAX = 5 * 60


class WorkQueue(object):
    """
    A deduplicating FIFO of object keys.

    A key is handed to at most one worker at a time; adding it while it is being
    processed queues it again once done() is called.
    """

    def __init__(self, backoff_base=BACKOFF_BASE, backoff_max=BACKOFF_MAX):
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._cond = threading.Condition()
        self._queue = collections.deque()
        self._dirty = set()
        self._processing = set()
        self._delayed = []
        self._counter = itertools.count()
        self._failures = {}
        self._shutting_down = False

    def __len__(self):
        with self._cond:
            return len(self._queue)

    def add(self, key):
        with self._cond:
            self._add(key)

    def _add(self, key):
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key not in self._processing:
            self._queue.append(key)
            self._cond.notify()

    def add_after(self, key, delay):
        if delay <= 0:
            return self.add(key)
        with self._cond:
            if self._shutting_down:
                return
            heapq.heappush(self._delayed, (time.monotonic() + delay, next(self._counter), key))
            self._cond.notify()

    def add_rate_limited(self, key):
        """Re-add a failed key after an exponential backoff, returning the delay."""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        delay = min(self.backoff_base * (2 ** failures), self.backoff_max)
        self.add_after(key, delay)
        return delay

    def forget(self, key):
        with self._cond:
            self._failures.pop(key, None)

    def _promote_delayed(self):
        now = time.monotonic()
        while self._delayed and self._delayed[0][0] <= now:
            _, _, key = heapq.heappop(self._delayed)
            self._add(key)
        if self._delayed:
            return self._delayed[0][0] - now
        return None

    def get(self, timeout=None):
        """
        Block until a key is ready and mark it as processing.

        Returns None once the queue is shut down or the timeout expires.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                if self._shutting_down:
                    return None
                wait = self._promote_delayed()
                if self._queue:
                    key = self._queue.popleft()
                    self._dirty.discard(key)
                    self._processing.add(key)
                    return key
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key):
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shut_down(self):
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()

    @property
    def shutting_down(self):
        with self._cond:
            return self._shutting_down
