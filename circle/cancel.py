"""Hierarchical cancellation for worker threads.

A `CancelScope` wraps a `threading.Event`. Child scopes derived from it are
cancelled together with their parent, but cancelling a child leaves the
parent and its siblings running. Cancelling is idempotent, and a cancelled
child is dropped from its parent so long-lived parents do not accumulate
finished children.
"""

from __future__ import annotations

import threading


class CancelScope:
    def __init__(self, parent: CancelScope | None = None):
        self._event = threading.Event()
        self._children: list[CancelScope] = []
        self._lock = threading.Lock()
        self._parent = parent
        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: CancelScope) -> None:
        with self._lock:
            if not self._event.is_set():
                self._children.append(child)
                return
        # parent already gone, so is the child
        child.cancel()

    def _release(self, child: CancelScope) -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    def child(self) -> CancelScope:
        return CancelScope(self)

    def children(self) -> list[CancelScope]:
        with self._lock:
            return list(self._children)

    def cancel(self) -> None:
        with self._lock:
            self._event.set()
            children, self._children = self._children, []
        for c in children:
            c.cancel()
        if self._parent is not None:
            self._parent._release(self)

    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or `timeout` elapses. Returns True when
        the scope was cancelled."""
        return self._event.wait(timeout)
