"""Client-side API access and board reconciliation."""

from .http import ApiError, AuctionApiClient
from .reconcile import DEFAULT_DEBOUNCE, DEFAULT_HEARTBEAT_INTERVAL, AuctionBoard

__all__ = ["ApiError", "AuctionApiClient", "AuctionBoard", "DEFAULT_DEBOUNCE", "DEFAULT_HEARTBEAT_INTERVAL"]
