from __future__ import annotations

from liveauction.engine import AssignmentEngine, PlayerDraft, TeamDraft
from liveauction.models import Principal
from liveauction.tenancy import TenantScope


def scope_for(tenant_id: str, **principal_fields) -> TenantScope:
    return TenantScope(Principal(tenant_id=tenant_id, **principal_fields))


def add_player(engine: AssignmentEngine, scope: TenantScope, name: str, **fields):
    return engine.create_player(scope, PlayerDraft(name=name, **fields))


def add_team(engine: AssignmentEngine, scope: TenantScope, name: str, slots: int = 3, budget: float | None = 1000):
    return engine.create_team(scope, TeamDraft(name=name, total_slots=slots, budget=budget))
