"""ZirCats backend: on-chain SVG sync, TextSet listener and generation API."""

__version__ = "0.3.0"
