"""Cancellation tokens used as the ambient execution context.

A ``CancelToken`` is handed to every plugin call. Child tokens derived with
``child()`` are cancelled when their parent is cancelled, and can carry a
deadline after which they cancel themselves. The executor uses the
difference between the two reasons to tell a timeout apart from a caller
driven cancellation.
"""

import threading
from typing import Callable, List, Optional


class CancelledException(Exception):
    """Raised when an operation is cancelled via CancelToken."""

    def __init__(self, message: str = "Operation was cancelled"):
        self.message = message
        super().__init__(self.message)


# Reasons recorded on a cancelled token.
REASON_CANCELLED = "cancelled"
REASON_DEADLINE_EXCEEDED = "deadline_exceeded"


class CancelToken:
    """Thread-safe cancellation token for stopping operations.

    Used to signal cancellation requests across threads. Supports:
    - Simple cancellation via cancel()
    - Polling via is_cancelled property
    - Blocking wait via wait()
    - Callback registration for cancellation notifications
    - Child tokens with an optional deadline via child()

    Example:
        token = CancelToken()

        # In worker thread
        def work():
            while not token.is_cancelled:
                do_work_chunk()

        # In main thread
        token.cancel()  # Signals worker to stop

    Thread Safety:
        All methods are thread-safe and can be called from any thread.
    """

    def __init__(self):
        """Initialize a new cancel token."""
        self._cancelled = False
        self._reason: Optional[str] = None
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self._timer: Optional[threading.Timer] = None

    def cancel(self, reason: str = REASON_CANCELLED) -> None:
        """Request cancellation.

        This is idempotent - calling cancel() multiple times has no effect
        after the first call. All registered callbacks are invoked once.

        Args:
            reason: Why the token was cancelled. The first reason wins.
        """
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._reason = reason
            callbacks = list(self._callbacks)
            self._callbacks.clear()
            timer = self._timer
            self._timer = None

        if timer is not None:
            timer.cancel()

        # Set event to wake up any waiters
        self._event.set()

        # Invoke callbacks outside lock to avoid deadlock
        for callback in callbacks:
            try:
                callback()
            except Exception:
                pass  # Swallow callback errors

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        """Why the token was cancelled, or None while it is still live."""
        return self._reason

    @property
    def deadline_exceeded(self) -> bool:
        """True if the token was cancelled by its own deadline."""
        return self._reason == REASON_DEADLINE_EXCEEDED

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for cancellation or timeout.

        Blocks until cancel() is called or timeout expires.

        Args:
            timeout: Maximum seconds to wait. None means wait forever.

        Returns:
            True if cancelled, False if timeout expired.
        """
        return self._event.wait(timeout=timeout)

    def raise_if_cancelled(self) -> None:
        """Raise CancelledException if cancelled.

        Raises:
            CancelledException: If cancel() has been called.
        """
        if self._cancelled:
            raise CancelledException()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Register a callback to be invoked when cancelled.

        If already cancelled, callback is invoked immediately.

        Args:
            callback: Function to call when cancellation is requested.
        """
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return
        try:
            callback()
        except Exception:
            pass

    def remove_callback(self, callback: Callable[[], None]) -> None:
        """Unregister a callback that has not fired yet."""
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def child(self, timeout: Optional[float] = None) -> 'CancelToken':
        """Derive a token that is cancelled together with this one.

        Args:
            timeout: Optional deadline in seconds. When it elapses the child
                is cancelled with REASON_DEADLINE_EXCEEDED; the parent is
                not affected.

        Returns:
            The new child token.
        """
        child = CancelToken()
        if timeout is not None:
            timer = threading.Timer(
                timeout, child.cancel, kwargs={"reason": REASON_DEADLINE_EXCEEDED}
            )
            timer.daemon = True
            child._timer = timer
            timer.start()
        self.on_cancel(child.cancel)
        # Drop the parent's reference once the child is done with.
        child.on_cancel(lambda: self.remove_callback(child.cancel))
        return child
