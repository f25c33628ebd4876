"""Notification dispatcher — native channel with an in-app fallback.

Tries the native notification facility when permission is granted. Any
failure, or missing permission, degrades to a ``reminder:fallback`` event for
the in-app channel. ``dispatch`` never raises.
"""

from __future__ import annotations

import logging

from cadence.core.events import (
    PERMISSION_CHANGED,
    REMINDER_CLICKED,
    REMINDER_FALLBACK,
    REMINDER_TRIGGERED,
)
from cadence.data.models import Reminder
from cadence.ports.event_port import EventBusPort
from cadence.ports.notification_port import NativeNotifierPort

logger = logging.getLogger(__name__)

GRANTED = "granted"
DENIED = "denied"
DEFAULT = "default"

NATIVE = "native"
FALLBACK = "fallback"


class NotificationDispatcher:
    """Delivers fired reminders to the user."""

    def __init__(
        self,
        event_bus: EventBusPort,
        notifier: NativeNotifierPort | None = None,
        title: str = "Cadence reminder",
    ) -> None:
        self._bus = event_bus
        self._notifier = notifier
        self._title = title
        self.permission = DEFAULT if notifier is not None else DENIED

    def _publish(self, topic: str, payload: object) -> None:
        try:
            self._bus.publish(topic, payload)
        except Exception:
            logger.exception("Publishing %s failed", topic)

    async def request_permission(self) -> str:
        """Ask the native facility for permission and cache the answer."""
        if self._notifier is None:
            self.permission = DENIED
            return DENIED

        try:
            state = await self._notifier.request_permission()
        except Exception as exc:
            logger.warning("Notification permission request failed: %s", exc)
            state = DENIED

        if state not in (GRANTED, DENIED, DEFAULT):
            state = DENIED
        if state != self.permission:
            self.permission = state
            self._publish(PERMISSION_CHANGED, state)
        logger.info("Notification permission: %s", state)
        return state

    async def dispatch(self, reminder: Reminder) -> str:
        """Show ``reminder``. Returns the channel used: "native" or "fallback"."""
        channel = FALLBACK
        if self._notifier is not None and self.permission == GRANTED:
            try:
                await self._notifier.show(
                    self._title,
                    reminder.text,
                    on_click=lambda: self._publish(REMINDER_CLICKED, reminder),
                )
                channel = NATIVE
            except Exception as exc:
                logger.error("Native notification for %s failed, using fallback: %s", reminder.id, exc)

        if channel == FALLBACK:
            self._publish(REMINDER_FALLBACK, reminder)

        self._publish(REMINDER_TRIGGERED, reminder)
        logger.info("Reminder %s dispatched via %s", reminder.id, channel)
        return channel
