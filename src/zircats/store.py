"""
MongoDB-backed document store.

Collections:
  svgs     : Token Records, tagged by `kind`:
                reconciled: {kind, tokenId, svg, createdAt}
                published:  {kind, svg, createdAt}
  catTexts : {tokenId, text}, one per tokenId
  cursors  : {name, block}, listener progress
"""

from __future__ import annotations

import enum
import functools
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pymongo import AsyncMongoClient
from pymongo.errors import ConnectionFailure, DuplicateKeyError, OperationFailure, PyMongoError

from zircats.errors import ConnectivityError, StoreError

logger = logging.getLogger(__name__)

SVGS = "svgs"
CAT_TEXTS = "catTexts"
CURSORS = "cursors"

DUPLICATE_KEY = 11000


class SvgKind(str, enum.Enum):
    RECONCILED = "reconciled"
    PUBLISHED = "published"


def _translate_errors(method):
    """Re-raise pymongo failures as ConnectivityError / StoreError."""

    @functools.wraps(method)
    async def wrapper(*args, **kwargs):
        try:
            return await method(*args, **kwargs)
        except ConnectionFailure as exc:
            raise ConnectivityError(f"Document store unreachable: {exc}", target="mongodb") from exc
        except PyMongoError as exc:
            raise StoreError(f"{method.__name__} failed: {exc}") from exc

    return wrapper


def _serialize(doc: dict) -> dict:
    out = dict(doc)
    if "_id" in out:
        out["_id"] = str(out["_id"])
    return out


class Store:
    """Idempotent upserts and lookups over the ZirCats collections."""

    def __init__(self, db: Any, client: Optional[AsyncMongoClient] = None) -> None:
        self.db = db
        self._client = client

    @classmethod
    def from_uri(cls, uri: str, database_name: str) -> "Store":
        client: AsyncMongoClient = AsyncMongoClient(uri, tz_aware=True)
        return cls(client[database_name], client)

    @property
    def svgs(self):
        return self.db[SVGS]

    @property
    def cat_texts(self):
        return self.db[CAT_TEXTS]

    @property
    def cursors(self):
        return self.db[CURSORS]

    @_translate_errors
    async def ensure_indexes(self) -> None:
        """Create the unique keys the upserts rely on."""
        await self.db.command("ping")
        try:
            await self.svgs.create_index(
                "tokenId",
                unique=True,
                partialFilterExpression={"tokenId": {"$exists": True}},
            )
        except OperationFailure as exc:
            if exc.code == DUPLICATE_KEY:
                logger.error(
                    "The %s collection holds several records for the same tokenId, "
                    "so its unique tokenId index cannot be built. Remove the "
                    "duplicate records and restart: %s",
                    SVGS,
                    exc,
                )
            raise
        await self.cat_texts.create_index("tokenId", unique=True)
        await self.cursors.create_index("name", unique=True)
        logger.info("Connected to MongoDB, indexes ensured")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    # ── Token Records ─────────────────────────────────────────────────────────

    @_translate_errors
    async def has_token(self, token_id: str) -> bool:
        return await self.svgs.find_one({"tokenId": token_id}, {"_id": 1}) is not None

    @_translate_errors
    async def insert_reconciled(self, token_id: str, svg: str) -> bool:
        """Insert a reconciled record unless one exists. Returns True if inserted."""
        try:
            result = await self.svgs.update_one(
                {"tokenId": token_id},
                {
                    "$setOnInsert": {
                        "kind": SvgKind.RECONCILED.value,
                        "svg": svg,
                        "createdAt": datetime.now(timezone.utc),
                    }
                },
                upsert=True,
            )
        except DuplicateKeyError:
            # concurrent pass inserted the same token first
            return False
        return result.upserted_id is not None

    @_translate_errors
    async def publish_svg(self, svg: str) -> str:
        result = await self.svgs.insert_one(
            {
                "kind": SvgKind.PUBLISHED.value,
                "svg": svg,
                "createdAt": datetime.now(timezone.utc),
            }
        )
        return str(result.inserted_id)

    @_translate_errors
    async def list_svgs(self) -> list[dict]:
        docs = await self.svgs.find({}).to_list(length=None)
        return [_serialize(d) for d in docs]

    # ── Cat Text Records ──────────────────────────────────────────────────────

    @_translate_errors
    async def set_cat_text(self, token_id: str, text: str) -> None:
        await self.cat_texts.update_one(
            {"tokenId": token_id},
            {"$set": {"text": text}},
            upsert=True,
        )

    @_translate_errors
    async def get_cat_text(self, token_id: str) -> Optional[str]:
        doc = await self.cat_texts.find_one({"tokenId": token_id})
        return doc["text"] if doc else None

    # ── Listener cursor ───────────────────────────────────────────────────────

    @_translate_errors
    async def load_cursor(self, name: str) -> Optional[int]:
        doc = await self.cursors.find_one({"name": name})
        return int(doc["block"]) if doc else None

    @_translate_errors
    async def save_cursor(self, name: str, block: int) -> None:
        await self.cursors.update_one(
            {"name": name},
            {"$set": {"block": block, "updatedAt": datetime.now(timezone.utc)}},
            upsert=True,
        )
