"""Telegram notification adapter — implements NativeNotifierPort.

Wraps a telegram.Bot instance and delivers each notification to the
configured chats. Permission is granted when at least one chat is configured.
"""

from __future__ import annotations

import logging
from typing import Callable

from telegram import Bot
from telegram.error import TelegramError

from cadence.core.errors import DispatchFailure

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NativeNotifierPort."""

    def __init__(self, bot: Bot, chat_ids: list[int]) -> None:
        self._bot = bot
        self._chat_ids = list(chat_ids)

    async def request_permission(self) -> str:
        return "granted" if self._chat_ids else "denied"

    async def show(
        self,
        title: str,
        body: str,
        on_click: Callable[[], None] | None = None,
    ) -> list[int]:
        """Send ``title``/``body`` to every chat. Returns the sent message ids.

        Plain Telegram messages have no click event, so ``on_click`` is unused.
        Raises DispatchFailure when no chat received the message.
        """
        text = f"{title}\n\n{body}"
        message_ids: list[int] = []
        for chat_id in self._chat_ids:
            try:
                message = await self._bot.send_message(chat_id=chat_id, text=text)
                message_ids.append(message.message_id)
            except TelegramError as exc:
                logger.error("Telegram notification to %d failed: %s", chat_id, exc)

        if not message_ids:
            raise DispatchFailure("Telegram notification reached no chat")
        return message_ids
