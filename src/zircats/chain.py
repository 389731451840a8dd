"""
Read-only access to the ZirCats contract.

ChainConnector owns the single AsyncWeb3 instance for the process. Every
`connect()` re-checks liveness and hands back either a ChainReader or the
ConnectivityError describing why the endpoint is unusable; it never raises
for an unreachable endpoint, so periodic callers can skip a cycle and carry on.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from zircats.errors import ConfigError, ConnectivityError, DecodeError

logger = logging.getLogger(__name__)

# ── Contract ABI (minimal, only what we read) ─────────────────────────────────

ZIRCATS_ABI = [
    {
        "name": "totalSupply",
        "type": "function",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "name": "tokenByIndex",
        "type": "function",
        "inputs": [{"name": "index", "type": "uint256"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "name": "tokenURI",
        "type": "function",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
    },
    {
        "name": "TextSet",
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "tokenId", "indexed": True, "type": "uint256"},
            {"name": "text", "indexed": False, "type": "string"},
        ],
    },
]


def load_abi(path: Optional[Path]) -> list[dict]:
    """Return the ABI at `path`, or the built-in one when no path is given.

    Accepts a bare ABI list or a compiler artifact with an "abi" key.
    """
    if path is None:
        return ZIRCATS_ABI
    try:
        data = json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not read contract ABI from {path}: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("abi")
    if not isinstance(data, list):
        raise ConfigError(f"{path} does not contain an ABI list")
    return data


# ── Token URI decoding ────────────────────────────────────────────────────────

def decode_token_uri(token_uri: str) -> str:
    """Decode `data:<mime>;base64,<payload>` into the image markup text.

    Everything after the first comma is the payload. Whitespace and missing
    padding are tolerated; characters outside the base64 alphabet are not.
    """
    _, sep, payload = token_uri.partition(",")
    if not sep:
        raise DecodeError(f"Token URI has no data payload: {token_uri[:60]!r}")
    payload = "".join(payload.split()).rstrip("=")
    payload += "=" * (-len(payload) % 4)
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Token URI payload is not valid base64: {exc}") from exc
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"Token URI payload is not UTF-8 text: {exc}") from exc


# ── Reader ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TextSetEvent:
    token_id: int
    text: str
    block_number: int


class ChainReader:
    """View-function and event access over a live connection."""

    def __init__(self, w3: AsyncWeb3, contract: Any, chain_id: int) -> None:
        self.w3 = w3
        self.contract = contract
        self.chain_id = chain_id

    async def total_supply(self) -> int:
        return await self.contract.functions.totalSupply().call()

    async def token_by_index(self, index: int) -> int:
        return await self.contract.functions.tokenByIndex(index).call()

    async def token_uri(self, token_id: int) -> str:
        return await self.contract.functions.tokenURI(token_id).call()

    async def block_number(self) -> int:
        return await self.w3.eth.block_number

    async def text_set_events(self, from_block: int, to_block: int) -> list[TextSetEvent]:
        """TextSet events in [from_block, to_block], in chain order."""
        logs = await self.contract.events.TextSet.get_logs(
            from_block=from_block,
            to_block=to_block,
        )
        return [
            TextSetEvent(
                token_id=log["args"]["tokenId"],
                text=log["args"]["text"],
                block_number=log["blockNumber"],
            )
            for log in logs
        ]


ConnectResult = Union[ChainReader, ConnectivityError]


class ChainConnector:
    """Builds ChainReaders on top of one shared AsyncWeb3 instance."""

    def __init__(self, rpc_url: str, contract_address: str, abi: Optional[list[dict]] = None) -> None:
        self.rpc_url = rpc_url
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.abi = abi if abi is not None else ZIRCATS_ABI
        self._w3: Optional[AsyncWeb3] = None

    def _web3(self) -> AsyncWeb3:
        if self._w3 is None:
            self._w3 = AsyncWeb3(AsyncHTTPProvider(self.rpc_url))
        return self._w3

    async def connect(self) -> ConnectResult:
        """Verify the endpoint answers and return a reader, or the failure."""
        w3 = self._web3()
        try:
            chain_id = await w3.eth.chain_id
        except Exception as exc:
            logger.warning("Failed to connect to the network at %s: %s", self.rpc_url, exc)
            return ConnectivityError(f"RPC endpoint unreachable: {exc}", target=self.rpc_url)
        logger.debug("Connected to the network (chain id %s)", chain_id)
        contract = w3.eth.contract(address=self.contract_address, abi=self.abi)
        return ChainReader(w3, contract, chain_id)
