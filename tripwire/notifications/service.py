"""Telegram messaging channel.

Delivers automation output to an owner's Telegram chats. ``deliver`` only
queues the text; a background task sends it with per-chat rate limiting
(about one message per second per chat) and splits long messages.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional

import structlog
from telegram import Bot
from telegram.error import TelegramError

from ..owners.directory import OwnerDirectory
from ..utils.constants import TELEGRAM_MAX_MESSAGE_LENGTH

logger = structlog.get_logger()

SEND_INTERVAL_SECONDS = 1.1

_SPLIT_SEPARATORS = ("\n\n", "\n", " ")


def split_message(
    text: str, max_length: int = TELEGRAM_MAX_MESSAGE_LENGTH
) -> List[str]:
    """Break text into chunks no longer than ``max_length``.

    Prefers paragraph breaks, then line breaks, then spaces; falls back to
    a hard cut.
    """
    chunks: List[str] = []
    remaining = text
    while len(remaining) > max_length:
        cut = -1
        for separator in _SPLIT_SEPARATORS:
            cut = remaining.rfind(separator, 0, max_length)
            if cut > 0:
                break
        if cut <= 0:
            cut = max_length
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip()
    if remaining or not chunks:
        chunks.append(remaining)
    return chunks


@dataclass
class _Outgoing:
    owner_id: str
    text: str


class TelegramChannel:
    """Messaging channel backed by the Telegram bot API."""

    def __init__(self, bot: Bot, directory: OwnerDirectory) -> None:
        self.bot = bot
        self.directory = directory
        self._send_queue: "asyncio.Queue[_Outgoing]" = asyncio.Queue()
        self._last_send_per_chat: Dict[int, float] = {}
        self._running = False
        self._sender_task: Optional["asyncio.Task[None]"] = None

    async def start(self) -> None:
        """Start the send queue processor."""
        if self._running:
            return
        await self.bot.initialize()
        self._running = True
        self._sender_task = asyncio.create_task(self._process_send_queue())
        logger.info("Telegram channel started")

    async def stop(self) -> None:
        """Stop the send queue processor."""
        if not self._running:
            return
        self._running = False
        if self._sender_task:
            self._sender_task.cancel()
            try:
                await self._sender_task
            except asyncio.CancelledError:
                pass
        await self.bot.shutdown()
        logger.info("Telegram channel stopped", unsent=self._send_queue.qsize())

    async def deliver(self, owner_id: str, text: str) -> None:
        """Queue text for an owner."""
        if not text.strip():
            logger.debug("Skipping empty notification", owner_id=owner_id)
            return
        await self._send_queue.put(_Outgoing(owner_id=owner_id, text=text))

    async def send_now(self, owner_id: str, text: str) -> int:
        """Send to every chat of an owner immediately; returns chats reached."""
        chat_ids = self.directory.telegram_chat_ids(owner_id)
        if not chat_ids:
            logger.warning("Owner has no telegram chat", owner_id=owner_id)
            return 0
        reached = 0
        for chat_id in chat_ids:
            if await self._rate_limited_send(chat_id, text):
                reached += 1
        return reached

    async def _process_send_queue(self) -> None:
        """Process queued messages with rate limiting."""
        while self._running:
            try:
                outgoing = await asyncio.wait_for(self._send_queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

            await self.send_now(outgoing.owner_id, outgoing.text)

    async def _rate_limited_send(self, chat_id: int, text: str) -> bool:
        """Send one message to one chat, honouring the per-chat interval."""
        loop = asyncio.get_running_loop()
        wait_time = SEND_INTERVAL_SECONDS - (
            loop.time() - self._last_send_per_chat.get(chat_id, 0.0)
        )
        if wait_time > 0:
            await asyncio.sleep(wait_time)

        chunks = split_message(text)
        try:
            for index, chunk in enumerate(chunks):
                if index:
                    await asyncio.sleep(SEND_INTERVAL_SECONDS)
                await self.bot.send_message(chat_id=chat_id, text=chunk)
                self._last_send_per_chat[chat_id] = loop.time()
        except TelegramError as e:
            logger.error("Failed to send notification", chat_id=chat_id, error=str(e))
            return False

        logger.info(
            "Notification sent",
            chat_id=chat_id,
            text_length=len(text),
            chunks=len(chunks),
        )
        return True
