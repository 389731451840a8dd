"""Exception hierarchy for the ZirCats backend."""

from __future__ import annotations


class ZirCatsError(Exception):
    """Base exception for all zircats errors."""


class ConfigError(ZirCatsError):
    """Invalid or missing configuration."""


class ConnectivityError(ZirCatsError):
    """The RPC endpoint or the document store could not be reached."""

    def __init__(self, message: str, *, target: str = "") -> None:
        self.target = target
        super().__init__(message)


class DecodeError(ZirCatsError):
    """A token URI did not carry a decodable base64 image payload."""


class UpstreamError(ZirCatsError):
    """A collaborator failed while serving a request."""


class StoreError(UpstreamError):
    """Document store operation failed."""


class GenerationError(UpstreamError):
    """The generative model call failed or returned no text."""


class ReconcileError(ZirCatsError):
    """A reconciliation pass failed as a whole."""
