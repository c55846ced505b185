"""Exception hierarchy shared by the store, engine and HTTP layer."""

from __future__ import annotations


class AuctionError(Exception):
    """Base class for every error the auction core raises on purpose."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuctionValidationError(AuctionError):
    """Input rejected before any entity was mutated."""


class SlotsExhausted(AuctionValidationError):
    def __init__(self, team_name: str | None = None):
        label = f"Team {team_name!r}" if team_name else "Team"
        super().__init__(f"{label} has no available slots")


class InsufficientBudget(AuctionValidationError):
    def __init__(self, remaining: float | None, amount: float):
        super().__init__(
            f"Team does not have enough budget (remaining {remaining}, requested {amount})"
        )
        self.remaining = remaining
        self.amount = amount


class NotFoundError(AuctionError):
    """Entity absent, or owned by another tenant. Both cases look identical."""


class ConflictError(AuctionError):
    """Uniqueness violation within a tenant."""


class StaleWriteError(ConflictError):
    """A guarded write found the row changed since it was read."""


class TeamNotEmpty(AuctionError):
    def __init__(self) -> None:
        super().__init__("Cannot delete team with assigned players")


class AccessDenied(AuctionError):
    """Principal missing, inactive or past its access expiry."""


__all__ = [
    "AccessDenied",
    "AuctionError",
    "AuctionValidationError",
    "ConflictError",
    "InsufficientBudget",
    "NotFoundError",
    "SlotsExhausted",
    "StaleWriteError",
    "TeamNotEmpty",
]
