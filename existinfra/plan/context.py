"""Cancellation and deadline propagation for plan operations.

Every ``query_state``/``apply``/``undo`` call and every runner command takes a
:class:`Context`. Cancelling a context (or reaching its deadline) cancels all
contexts derived from it, and runners abort in-flight commands when they
observe it.
"""
import threading
import time
import weakref
from typing import Optional

from .runner import ContextCancelled, DeadlineExceeded


class Context:
    """A cancellable context with an optional deadline."""

    def __init__(self, parent: Optional["Context"] = None, deadline: Optional[float] = None):
        self._parent = parent
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: "weakref.WeakSet[Context]" = weakref.WeakSet()
        self._reason: Optional[str] = None

        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

        if parent is not None:
            parent._add_child(self)

    @classmethod
    def background(cls) -> "Context":
        """Return a context that is never cancelled and has no deadline."""
        return cls()

    def with_cancel(self) -> "Context":
        return Context(parent=self)

    def with_timeout(self, seconds: float) -> "Context":
        return Context(parent=self, deadline=time.monotonic() + seconds)

    def _add_child(self, child: "Context") -> None:
        with self._lock:
            if self._event.is_set():
                child.cancel(self._reason)
                return
            self._children.add(child)

    def cancel(self, reason: Optional[str] = None) -> None:
        """Cancel this context and every context derived from it."""
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason or "context cancelled"
            self._event.set()
            children = list(self._children)
            self._children.clear()
        for child in children:
            child.cancel(self._reason)

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def err(self) -> Optional[Exception]:
        """Return the cancellation error, or None while the context is live."""
        if self._event.is_set():
            return ContextCancelled(self._reason or "context cancelled")
        if self.expired:
            return DeadlineExceeded("context deadline exceeded")
        return None

    def check(self) -> None:
        """Raise the cancellation error if the context is done."""
        error = self.err()
        if error is not None:
            raise error

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block up to ``timeout`` seconds; return True if the context is done."""
        remaining = self.remaining()
        if remaining is not None:
            timeout = remaining if timeout is None else min(timeout, remaining)
        self._event.wait(timeout)
        return self.cancelled
