"""
TextSet listener.

Follows the contract's TextSet(tokenId, text) event by polling logs and
upserts each event's text into `catTexts`.

State machine:
  DISCONNECTED -> CONNECTING -> SUBSCRIBED -> DISCONNECTED (on RPC failure)

Reconnection is bounded by `max_retries` consecutive failed attempts, after
which the listener stays DISCONNECTED. The count resets only once a poll on
the new subscription succeeds. Progress is kept in a block cursor persisted
to the store, so events emitted while disconnected are picked up after
reconnecting. With no cursor yet, following starts at the
current head.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Optional

from zircats.chain import ChainConnector, ChainReader, TextSetEvent
from zircats.errors import ConnectivityError, ZirCatsError
from zircats.store import Store

logger = logging.getLogger(__name__)

CURSOR_NAME = "TextSet"


class SubscriptionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"


class TextEventListener:
    def __init__(
        self,
        connector: ChainConnector,
        store: Store,
        *,
        poll_interval: float = 5.0,
        max_retries: int = 5,
        retry_delay: float = 5.0,
        max_block_range: int = 500,
    ) -> None:
        self.connector = connector
        self.store = store
        self.poll_interval = poll_interval
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_block_range = max_block_range
        self.state = SubscriptionState.DISCONNECTED
        self.cursor: Optional[int] = None

    def _transition(self, state: SubscriptionState) -> None:
        if state is not self.state:
            logger.info("TextSet listener: %s -> %s", self.state.value, state.value)
            self.state = state

    async def handle_event(self, token_id: int, text: str) -> bool:
        """Upsert the text for one event. Store failures are logged, not raised."""
        key = str(token_id)
        try:
            await self.store.set_cat_text(key, text)
        except ZirCatsError as exc:
            logger.warning("Error storing text for token ID %s: %s", key, exc)
            return False
        logger.info("Stored text for token ID %s", key)
        return True

    async def _start_cursor(self, reader: ChainReader) -> int:
        if self.cursor is not None:
            return self.cursor
        try:
            saved = await self.store.load_cursor(CURSOR_NAME)
        except ZirCatsError as exc:
            logger.warning("Could not load TextSet cursor: %s", exc)
            saved = None
        if saved is not None:
            return saved
        return await reader.block_number()

    async def _save_cursor(self, block: int) -> None:
        self.cursor = block
        try:
            await self.store.save_cursor(CURSOR_NAME, block)
        except ZirCatsError as exc:
            logger.warning("Could not persist TextSet cursor at block %d: %s", block, exc)

    async def poll_once(self, reader: ChainReader) -> int:
        """Process one window of new blocks. Returns the number of events seen.

        RPC failures propagate; the caller treats them as a dropped connection.
        """
        last = await self._start_cursor(reader)
        if self.cursor is None:
            self.cursor = last
        head = await reader.block_number()
        if head <= last:
            logger.debug("No new blocks (head %d)", head)
            return 0

        to_block = min(head, last + self.max_block_range)
        events: list[TextSetEvent] = await reader.text_set_events(last + 1, to_block)
        for event in events:
            logger.info("TextSet event: TokenID %s, Text: %s", event.token_id, event.text)
            await self.handle_event(event.token_id, event.text)
        await self._save_cursor(to_block)
        return len(events)

    async def _follow(self, reader: ChainReader) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.poll_once(reader)

    async def run(self) -> None:
        """Connect, follow events, reconnect on drops; return once retries run out.

        A failed connect and a dropped subscription both count as failed
        attempts. The count resets once a subscription's first poll completes.
        """
        attempts = 0
        while True:
            self._transition(SubscriptionState.CONNECTING)
            result = await self.connector.connect()
            if isinstance(result, ConnectivityError):
                attempts += 1
                reason = "Could not connect to the network"
            else:
                self._transition(SubscriptionState.SUBSCRIBED)
                logger.info("Listening for TextSet events...")
                try:
                    await self.poll_once(result)
                    attempts = 0
                    await self._follow(result)
                except Exception as exc:
                    attempts += 1
                    reason = f"TextSet subscription dropped: {exc}"

            self._transition(SubscriptionState.DISCONNECTED)
            if attempts > self.max_retries:
                logger.error(
                    "%s after %d attempts. Stopped listening for TextSet events.",
                    reason,
                    attempts,
                )
                return
            logger.warning(
                "%s (attempt %d/%d), retrying in %ss",
                reason,
                attempts,
                self.max_retries + 1,
                self.retry_delay,
            )
            await asyncio.sleep(self.retry_delay)
