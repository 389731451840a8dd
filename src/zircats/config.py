"""
Runtime configuration.

Values come from the process environment, optionally seeded from a `.env`
file in the working directory (variables already set in the environment win).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from zircats.errors import ConfigError

# ── Defaults ──────────────────────────────────────────────────────────────────

CONTRACT_ADDRESS = "0x7D37e8fb2c0AD546DfeF3f8E39d3EEEd9D9ac82C"
DEFAULT_RPC_URL = "https://zircuit1.p2pify.com"
DEFAULT_ORIGINS = ["http://localhost:3000", "https://zir-catz-brussels.vercel.app"]

# env var -> Settings field
_ENV_FIELDS = {
    "RPC_URL": "rpc_url",
    "CONTRACT_ADDRESS": "contract_address",
    "CONTRACT_ABI_PATH": "abi_path",
    "MONGODB_URI": "mongodb_uri",
    "MONGODB_DB": "database_name",
    "ANTHROPIC_MODEL": "anthropic_model",
    "ANTHROPIC_MAX_TOKENS": "max_tokens",
    "FETCH_INTERVAL_SECONDS": "fetch_interval",
    "LISTENER_POLL_SECONDS": "listener_poll_interval",
    "LISTENER_MAX_RETRIES": "listener_max_retries",
    "LISTENER_RETRY_SECONDS": "listener_retry_delay",
    "LISTENER_MAX_BLOCK_RANGE": "listener_max_block_range",
    "GENERATE_RATE_LIMIT": "generate_rate_limit",
    "LOG_LEVEL": "log_level",
    "PORT": "port",
}


class Settings(BaseModel):
    """Process-wide settings, built once at startup."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    rpc_url: str = DEFAULT_RPC_URL
    contract_address: str = CONTRACT_ADDRESS
    abi_path: Optional[Path] = None

    mongodb_uri: str = "mongodb://localhost:27017"
    database_name: str = "zircats"

    anthropic_model: str = "claude-sonnet-4-6"
    max_tokens: int = Field(1024, gt=0)

    cors_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_ORIGINS))

    fetch_interval: float = Field(10.0, gt=0)
    listener_poll_interval: float = Field(5.0, gt=0)
    listener_max_retries: int = Field(5, ge=0)
    listener_retry_delay: float = Field(5.0, ge=0)
    listener_max_block_range: int = Field(500, gt=0)

    generate_rate_limit: str = "10/minute"
    log_level: str = "INFO"
    port: int = Field(3001, gt=0, lt=65536)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from an environment mapping (defaults to os.environ).

        Empty values are treated as unset.
        """
        env = os.environ if env is None else env
        values: dict = {}
        for key, field in _ENV_FIELDS.items():
            raw = env.get(key, "").strip()
            if raw:
                values[field] = raw
        origins = env.get("CORS_ORIGINS", "").strip()
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """Load `.env` (if any) into the environment, then read Settings."""
    path = env_file if env_file is not None else find_dotenv(usecwd=True)
    if path:
        load_dotenv(path, override=False)
    return Settings.from_env()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
