"""
Sync Listeners
==============

Ordered registry of callbacks fired at the end of every sync session.

Callback signature:
    callback(success: bool, new_target: Offset, old_target: Offset)
"""

import logging
from typing import Callable, Optional

from .protocol import Offset

logger = logging.getLogger(__name__)

SyncListener = Callable[[bool, Offset, Offset], None]


class ListenerRegistry:

    def __init__(self):
        self._listeners: list[SyncListener] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def add(self, callback: SyncListener):
        if not callable(callback):
            raise TypeError(f"Listener must be callable, got {type(callback).__name__}")
        self._listeners.append(callback)

    def remove(self, callback: Optional[SyncListener] = None):
        """Remove ``callback``, or every listener if none is given.

        Removing a callback that was never added is a no-op.
        """
        if callback is None:
            self._listeners = []
            return
        self._listeners = [cb for cb in self._listeners if cb is not callback]

    def notify(
        self,
        success: bool,
        new_target: Offset,
        old_target: Offset,
        callback: Optional[SyncListener] = None,
    ):
        """Call every listener, then the optional per-call ``callback``.

        A failing callback is logged and does not stop the others.
        """
        chain = list(self._listeners)
        if callback is not None:
            chain.append(callback)

        for cb in chain:
            try:
                cb(success, new_target, old_target)
            except Exception as e:
                logger.error(f"Listener error: {e}")
