"""Listener registry and cancellable subscription handles."""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterator
from enum import StrEnum
from typing import Any

from herdstore.scope import Scope

_logger = logging.getLogger(__name__)


class SubscriptionState(StrEnum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class Subscription:
    """Handle for one registered snapshot callback.

    ``ACTIVE -> CANCELLED`` is the only transition.  Once :meth:`cancel`
    returns, the callback is never invoked through this handle again;
    deliveries that already ran are not retracted.  The teardown hook
    runs exactly once no matter how often ``cancel`` is called.
    """

    def __init__(
        self,
        scope: Scope,
        callback: Callable[[Any], None],
        *,
        on_cancel: Callable[[], None] | None = None,
    ) -> None:
        self._handle = uuid.uuid4().hex
        self._scope = scope
        self._callback = callback
        self._on_cancel = on_cancel
        self._state = SubscriptionState.ACTIVE
        # Re-entrant so a callback may cancel its own subscription.
        self._lock = threading.RLock()

    @property
    def handle(self) -> str:
        return self._handle

    @property
    def scope(self) -> Scope:
        return self._scope

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SubscriptionState.ACTIVE

    def set_teardown(self, on_cancel: Callable[[], None]) -> None:
        """Attach the teardown hook once the underlying listener exists.

        If the handle was already cancelled the hook runs immediately.
        """
        with self._lock:
            if self.is_active:
                self._on_cancel = on_cancel
                return
        on_cancel()

    def deliver(self, result: Any) -> bool:
        """Invoke the callback unless cancelled; return whether it ran.

        A callback that raises is logged; the error does not propagate
        into the store's fan-out.
        """
        with self._lock:
            if not self.is_active:
                return False
            try:
                self._callback(result)
            except Exception:
                _logger.exception("Snapshot callback failed for subscription %s (scope %s)", self._handle, self._scope)
            return True

    def cancel(self) -> None:
        with self._lock:
            if not self.is_active:
                return
            self._state = SubscriptionState.CANCELLED
            hook = self._on_cancel
            self._on_cancel = None
        _logger.debug("Subscription %s cancelled (scope %s)", self._handle, self._scope)
        if hook is not None:
            hook()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.cancel()

    def __repr__(self) -> str:
        return f"Subscription(handle={self._handle!r}, scope={self._scope}, state={self._state.value})"


class ListenerRegistry:
    """Active subscriptions keyed by handle, in registration order."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}

    def add(self, subscription: Subscription) -> None:
        self._subscriptions[subscription.handle] = subscription

    def remove(self, handle: str) -> Subscription | None:
        """Drop a handle; removing an unknown handle is a no-op."""
        return self._subscriptions.pop(handle, None)

    def for_scope(self, scope: Scope) -> list[Subscription]:
        return [sub for sub in self._subscriptions.values() if sub.scope == scope and sub.is_active]

    def dispatch(self, scope: Scope, result: Any) -> int:
        """Deliver *result* to every active listener of *scope*; return the count."""
        delivered = 0
        for subscription in self.for_scope(scope):
            if subscription.deliver(result):
                delivered += 1
        return delivered

    def cancel_all(self) -> None:
        for subscription in list(self._subscriptions.values()):
            subscription.cancel()
        self._subscriptions.clear()

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __contains__(self, handle: object) -> bool:
        return handle in self._subscriptions

    def __iter__(self) -> Iterator[Subscription]:
        return iter(list(self._subscriptions.values()))
