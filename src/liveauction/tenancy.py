"""Tenant isolation: caller scope, principal resolution and registration tokens."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional, Protocol

from pydantic import ValidationError

from liveauction.errors import AccessDenied
from liveauction.models import Principal


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TenantScope:
    """Binds an engine call to the authenticated caller's tenant."""

    principal: Principal
    clock: Callable[[], datetime] = field(default=_utcnow, compare=False, repr=False)

    @property
    def tenant_id(self) -> str:
        return self.principal.tenant_id

    def for_mutation(self) -> str:
        """Return the tenant id, refusing inactive or expired principals."""

        if not self.principal.is_active:
            raise AccessDenied("Your account has been deactivated by admin")
        if self.principal.is_expired(self.clock()):
            raise AccessDenied("Your access has expired. Please contact admin.")
        return self.principal.tenant_id


class PrincipalResolver(Protocol):
    """Auth collaborator: turns request metadata into a principal (or None)."""

    def resolve(self, headers: Mapping[str, str], query: Mapping[str, str]) -> Optional[Principal]:
        ...


_TRUE_VALUES = {"1", "true", "yes", "on"}


class HeaderPrincipalResolver:
    """Trusts identity headers set by an authenticating gateway.

    WebSocket handshakes from browsers cannot set headers, so the same keys
    are also accepted as query parameters (``tenant``, ``role``, ``active``,
    ``expiry``).
    """

    tenant_header = "x-tenant-id"
    role_header = "x-role"
    active_header = "x-active"
    expiry_header = "x-access-expiry"

    def resolve(self, headers: Mapping[str, str], query: Mapping[str, str]) -> Optional[Principal]:
        tenant_id = headers.get(self.tenant_header) or query.get("tenant")
        if not tenant_id:
            return None
        role = headers.get(self.role_header) or query.get("role") or "auctioneer"
        active_raw = headers.get(self.active_header) or query.get("active")
        expiry_raw = headers.get(self.expiry_header) or query.get("expiry")
        try:
            return Principal(
                tenant_id=tenant_id,
                role=role,
                is_active=True if active_raw is None else active_raw.strip().lower() in _TRUE_VALUES,
                access_expiry=datetime.fromisoformat(expiry_raw) if expiry_raw else None,
            )
        except (ValueError, ValidationError) as exc:
            raise AccessDenied("Invalid credentials") from exc


class RegistrationDirectory(Protocol):
    """Maps public registration tokens to the tenant that issued them."""

    def resolve_token(self, token: str) -> Optional[str]:
        ...


class StaticRegistrationDirectory:
    def __init__(self, tokens: Optional[Mapping[str, str]] = None):
        self._tokens: Dict[str, str] = dict(tokens or {})

    def resolve_token(self, token: str) -> Optional[str]:
        return self._tokens.get(token)

    def issue(self, token: str, tenant_id: str) -> None:
        self._tokens[token] = tenant_id


__all__ = [
    "HeaderPrincipalResolver",
    "PrincipalResolver",
    "RegistrationDirectory",
    "StaticRegistrationDirectory",
    "TenantScope",
]
