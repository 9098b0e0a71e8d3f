"""
Outbound message capability used by the reminder cycle.

The cycle depends on the Notifier protocol only; TelegramNotifier is the
production adapter and tests pass in fakes.
"""

import logging
from typing import Protocol, runtime_checkable

from aiogram import Bot
from aiogram.types import LinkPreviewOptions

from core.config import settings
from core.errors import DeliveryError


@runtime_checkable
class Notifier(Protocol):
    async def send(self, recipient: int | str, text: str) -> None:
        """Delivers text or raises DeliveryError."""
        ...


def resolve_recipient(owner: str) -> int | str:
    """Shared review chat when configured, otherwise the owner's private chat."""
    target = settings.review_chat_id or str(owner)
    try:
        return int(target)
    except ValueError:
        # Public channel usernames like "@grind_reviews".
        return target


class TelegramNotifier:
    def __init__(self, bot: Bot):
        self._bot = bot

    async def send(self, recipient: int | str, text: str) -> None:
        try:
            await self._bot.send_message(
                chat_id=recipient,
                text=text,
                parse_mode="HTML",
                link_preview_options=LinkPreviewOptions(is_disabled=True),
            )
        except Exception as exc:
            logging.debug("send_message failed chat=%s", recipient, exc_info=exc)
            raise DeliveryError(recipient, str(exc)) from exc
