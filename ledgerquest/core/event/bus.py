"""
LedgerQuest EventBus: async pub/sub with tiered concurrency.

Purpose
-------
Decouple the economy engines from whoever consumes their notifications
(UI refresh, analytics, achievements). Engines publish after their
transaction commits; the bus never participates in a unit of work.

Responsibilities
----------------
- Register/unregister listeners with priorities and wildcard patterns
  (``"quest.*"`` or ``"*"``).
- Execute listeners per tier:
  * CRITICAL / HIGH: sequential, awaited with timeout
  * NORMAL: concurrent (gather), awaited
  * LOW: fire-and-forget background tasks
- Isolate listener errors: a failing listener is logged and never reaches
  the publisher.
- Track simple publish/error counters.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import Counter
from typing import Any, Optional

from ledgerquest.core.config.manager import ConfigManager
from ledgerquest.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from ledgerquest.core.logging.logger import LogContext, get_logger

logger = get_logger(__name__)


class EventBus:
    """
    Instance-based EventBus (tests build their own).

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("balance.changed", on_balance_changed)
    >>> await bus.publish("balance.changed", {"account_id": "a1", "new_balance": 50})
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._listeners: dict[str, list[EventListener]] = {}
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self._published: Counter[str] = Counter()
        self._errors: Counter[str] = Counter()

        self._critical_timeout = self._load_timeout(
            "events.listener_timeout.critical_seconds", critical_timeout_seconds, 5.0
        )
        self._high_timeout = self._load_timeout(
            "events.listener_timeout.high_seconds", high_timeout_seconds, 5.0
        )

    def _load_timeout(self, key: str, override: Optional[float], default: float) -> float:
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return float(default)
        return float(self._config_manager.get(key, default))

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """Catch mis-registered listeners at subscription time."""
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", None) or repr(callback)
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Subscribe ``callback`` to ``event_name`` (exact name or wildcard).

        Returns the listener identifier. Re-subscribing the same identifier
        to the same event is a no-op.
        """
        self._validate_callback_signature(callback)
        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        bucket = self._listeners.setdefault(event_name, [])
        if any(existing.identifier == listener.identifier for existing in bucket):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        bucket.append(listener)
        bucket.sort(key=lambda lst: lst.priority.value)
        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        bucket = self._listeners.get(event_name, [])
        remaining = [lst for lst in bucket if lst.identifier != identifier]
        removed = len(remaining) != len(bucket)
        if remaining:
            self._listeners[event_name] = remaining
        else:
            self._listeners.pop(event_name, None)
        return removed

    def clear(self) -> None:
        self._listeners.clear()

    @staticmethod
    def _matches(pattern: str, event_name: str) -> bool:
        if pattern == event_name or pattern == "*":
            return True
        if pattern.endswith(".*"):
            return event_name.startswith(pattern[:-1])
        return False

    def _resolve(self, event_name: str) -> list[EventListener]:
        matched: list[EventListener] = []
        for pattern, bucket in list(self._listeners.items()):
            if not self._matches(pattern, event_name):
                continue
            for listener in list(bucket):
                matched.append(listener)
                if listener.once:
                    self.unsubscribe(pattern, listener.identifier)
        matched.sort(key=lambda lst: lst.priority.value)
        return matched

    # ------------------------------------------------------------------ #
    # Publishing
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event to all matching listeners.

        Returns results from CRITICAL/HIGH/NORMAL listeners; LOW listeners run
        in the background and contribute nothing.
        """
        self._published[event_name] += 1
        listeners = self._resolve(event_name)
        if not listeners:
            return []

        results: list[Any] = []
        for listener in listeners:
            if listener.priority == ListenerPriority.CRITICAL:
                results.append(
                    await self._run_with_timeout(listener, event_name, data, self._critical_timeout)
                )
        for listener in listeners:
            if listener.priority == ListenerPriority.HIGH:
                results.append(
                    await self._run_with_timeout(listener, event_name, data, self._high_timeout)
                )

        normal = [lst for lst in listeners if lst.priority == ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(
                    *[self._run_listener(lst, event_name, data) for lst in normal]
                )
            )

        loop = asyncio.get_running_loop()
        for listener in listeners:
            if listener.priority != ListenerPriority.LOW:
                continue
            task = loop.create_task(
                self._run_listener(listener, event_name, data),
                name=f"eventbus-low-{event_name}-{listener.identifier}",
            )
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        return results

    async def drain(self) -> None:
        """Wait for every in-flight LOW-priority listener to finish."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def _run_with_timeout(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        timeout: Optional[float],
    ) -> Any:
        if timeout is None or timeout <= 0:
            return await self._run_listener(listener, event_name, payload)
        try:
            return await asyncio.wait_for(
                self._run_listener(listener, event_name, payload),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            self._errors[event_name] += 1
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "timeout_seconds": timeout,
                },
            )
            return None

    async def _run_listener(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
    ) -> Any:
        """Run one listener; sync callbacks go to the default executor."""
        with LogContext(operation=f"event:{event_name}"):
            try:
                if inspect.iscoroutinefunction(listener.callback):
                    return await listener.callback(payload)
                loop = asyncio.get_running_loop()
                return await loop.run_in_executor(None, listener.callback, payload)
            except Exception as exc:
                self._errors[event_name] += 1
                logger.error(
                    "EventBus listener failed",
                    extra={
                        "event_name": event_name,
                        "listener_id": listener.identifier,
                        "priority": listener.priority.name,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
                return None

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name:
            return sum(
                len(bucket)
                for pattern, bucket in self._listeners.items()
                if self._matches(pattern, event_name)
            )
        return sum(len(bucket) for bucket in self._listeners.values())

    def get_metrics_summary(self) -> dict[str, Any]:
        total = sum(self._published.values())
        errors = sum(self._errors.values())
        return {
            "total_events_published": total,
            "events_by_type": dict(self._published),
            "total_errors": errors,
            "errors_by_event": dict(self._errors),
            "total_listeners": self.get_listener_count(),
        }
