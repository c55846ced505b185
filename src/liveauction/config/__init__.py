"""Configuration helpers for the auction service."""

from .settings import AuctionSettings, load_settings, parse_registration_tokens

__all__ = [
    "AuctionSettings",
    "load_settings",
    "parse_registration_tokens",
]
