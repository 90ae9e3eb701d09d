"""DraftDeck — Figma file dashboard backend and sync client."""

__version__ = "0.1.0"
