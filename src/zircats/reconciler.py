"""
SVG reconciler: copies every on-chain token image into the `svgs` collection.

One pass reads totalSupply once, walks indices 0..totalSupply-1 and inserts
records for token ids the store does not have yet. A failure on one token is
logged and the pass moves on to the next index.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from zircats.chain import ChainConnector, ChainReader, decode_token_uri
from zircats.errors import ConnectivityError, ReconcileError
from zircats.store import Store

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    connected: bool
    total_supply: int = 0
    inserted: list[str] = field(default_factory=list)
    skipped: int = 0
    failed: dict[int, str] = field(default_factory=dict)

    def summary(self) -> str:
        if not self.connected:
            return "Could not connect to the network. Skipped SVG fetch."
        return (
            f"Processed {self.total_supply} tokens: {len(self.inserted)} stored, "
            f"{self.skipped} already present, {len(self.failed)} failed"
        )


class SvgReconciler:
    def __init__(self, connector: ChainConnector, store: Store, *, interval: float = 10.0) -> None:
        self.connector = connector
        self.store = store
        self.interval = interval

    async def reconcile(self) -> ReconcileReport:
        """Run one pass. Raises ReconcileError if totalSupply cannot be read."""
        result = await self.connector.connect()
        if isinstance(result, ConnectivityError):
            logger.warning("Could not connect to the network. Skipping SVG fetch.")
            return ReconcileReport(connected=False)

        reader = result
        try:
            total = int(await reader.total_supply())
        except Exception as exc:
            raise ReconcileError(f"Could not read totalSupply: {exc}") from exc

        report = ReconcileReport(connected=True, total_supply=total)
        for index in range(total):
            try:
                token_id = await self._reconcile_index(reader, index, report)
            except Exception as exc:
                logger.warning("Failed to reconcile token at index %d: %s", index, exc)
                report.failed[index] = str(exc)
                continue
            if token_id is not None:
                report.inserted.append(token_id)

        logger.info("Finished fetching and storing SVGs: %s", report.summary())
        return report

    async def _reconcile_index(
        self, reader: ChainReader, index: int, report: ReconcileReport
    ) -> Optional[str]:
        token_id = str(await reader.token_by_index(index))
        if await self.store.has_token(token_id):
            logger.debug("Token ID %s already exists, skipping.", token_id)
            report.skipped += 1
            return None

        svg = decode_token_uri(await reader.token_uri(int(token_id)))
        if not await self.store.insert_reconciled(token_id, svg):
            report.skipped += 1
            return None
        logger.info("Stored SVG for token ID %s (%d chars)", token_id, len(svg))
        return token_id

    async def run_forever(self) -> None:
        """Reconcile now, then once every `interval` seconds until cancelled."""
        while True:
            logger.info("Initiating periodic SVG fetch...")
            try:
                await self.reconcile()
            except Exception:
                logger.exception("Error fetching and storing SVGs")
            await asyncio.sleep(self.interval)
