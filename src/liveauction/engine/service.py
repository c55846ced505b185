"""Assignment engine: every auction mutation and the reads that back the board."""

from __future__ import annotations

import logging
import random
from typing import Any, List, Optional, Sequence, Tuple
from uuid import uuid4

from liveauction.broadcast import EventName, NullPublisher, Publisher, player_payload, team_payload
from liveauction.errors import AuctionValidationError, ConflictError, NotFoundError, TeamNotEmpty
from liveauction.forms import FormSchemaRegistry
from liveauction.media import MediaStore, Upload, placeholder_url
from liveauction.models import PlayerRecord, PlayerStatus, TeamRecord
from liveauction.persistence import AuctionStore, StoreTransaction
from liveauction.tenancy import RegistrationDirectory, TenantScope

from . import ledger
from .types import (
    AssignmentResult,
    PlayerDraft,
    PlayerPatch,
    ResetSummary,
    ResultPlayer,
    TeamDraft,
    TeamPatch,
    TeamResult,
)


logger = logging.getLogger(__name__)

PLAYER_MEDIA_FOLDER = "auction-players"
TEAM_MEDIA_FOLDER = "auction-teams"

_Events = List[Tuple[EventName, Any]]


class AssignmentEngine:
    """Applies auction mutations atomically and announces them after commit.

    Each mutation runs inside one store transaction, so a player and the
    teams it touches are written together or not at all. Announcements are
    queued while the transaction runs and only handed to the publisher once
    it has committed; a failing publisher never undoes a mutation.
    """

    def __init__(
        self,
        store: AuctionStore,
        publisher: Publisher | None = None,
        *,
        media: MediaStore | None = None,
        form_schemas: FormSchemaRegistry | None = None,
        registrations: RegistrationDirectory | None = None,
        rng: random.Random | None = None,
    ):
        self._store = store
        self._publisher: Publisher = publisher or NullPublisher()
        self._media = media
        self._form_schemas = form_schemas or FormSchemaRegistry()
        self._registrations = registrations
        self._rng = rng or random.Random()

    @property
    def form_schemas(self) -> FormSchemaRegistry:
        return self._form_schemas

    # sale lifecycle ----------------------------------------------------------

    def assign(self, scope: TenantScope, player_id: str, team_id: str, amount: object) -> AssignmentResult:
        """Sell a player to a team for ``amount``.

        A player already sold to another team is moved: the previous team is
        refunded and loses the slot in the same transaction.
        """

        tenant_id = scope.for_mutation()
        price = ledger.require_amount(amount)
        events: _Events = []
        with self._store.transaction() as tx:
            player = self._load_player(tx, tenant_id, player_id)
            if player.is_sold and player.team_id == team_id:
                raise AuctionValidationError("Player is already assigned to this team")
            sold, team, previous = self._sell(tx, tenant_id, player, team_id, price, events)
            tx.update_player(sold)
        events.insert(0, (EventName.PLAYER_SOLD, player_payload(sold)))
        self._announce(tenant_id, events)
        logger.info("Player %s sold to team %s for %s (tenant %s)", sold.player_id, team.team_id, price, tenant_id)
        return AssignmentResult(player=sold, team=team, previous_team=previous)

    def mark_unsold(self, scope: TenantScope, player_id: str) -> AssignmentResult:
        tenant_id = scope.for_mutation()
        events: _Events = []
        with self._store.transaction() as tx:
            player = self._load_player(tx, tenant_id, player_id)
            if player.status is PlayerStatus.UNSOLD and player.team_id is None:
                return AssignmentResult(player=player)
            previous = self._detach(tx, tenant_id, player, events)
            updated = player.model_copy(
                update={"status": PlayerStatus.UNSOLD, "team_id": None, "sold_amount": None}
            )
            tx.update_player(updated)
        payload = player_payload(updated)
        events[:0] = [(EventName.PLAYER_MARKED_UNSOLD, payload), (EventName.PLAYER_UPDATED, payload)]
        self._announce(tenant_id, events)
        logger.info("Player %s marked unsold (tenant %s)", player_id, tenant_id)
        return AssignmentResult(player=updated, previous_team=previous)

    def remove_from_team(self, scope: TenantScope, player_id: str) -> AssignmentResult:
        """Return a sold player to the available pool and refund the team."""

        tenant_id = scope.for_mutation()
        events: _Events = []
        with self._store.transaction() as tx:
            player = self._load_player(tx, tenant_id, player_id)
            team = self._detach(tx, tenant_id, player, events)
            if team is None and not (player.is_sold or player.team_id):
                raise AuctionValidationError("Player is not assigned to any team")
            updated = player.model_copy(
                update={"status": PlayerStatus.AVAILABLE, "team_id": None, "sold_amount": None}
            )
            tx.update_player(updated)
        events.insert(0, (EventName.PLAYER_UPDATED, player_payload(updated)))
        events.append(
            (
                EventName.PLAYER_REMOVED_FROM_TEAM,
                {"player": player_payload(updated), "team": team_payload(team) if team else None},
            )
        )
        self._announce(tenant_id, events)
        logger.info("Player %s removed from team %s (tenant %s)", player_id, team.team_id if team else None, tenant_id)
        return AssignmentResult(player=updated, previous_team=team)

    # player CRUD -------------------------------------------------------------

    def create_player(self, scope: TenantScope, draft: PlayerDraft) -> PlayerRecord:
        """Create an available player with a placeholder photo.

        The real photo, if any, is attached later through ``attach_photo``.
        """

        tenant_id = scope.for_mutation()
        return self._insert_player(tenant_id, draft, placeholder_url(draft.name))

    def attach_photo(self, tenant_id: str, player_id: str, upload: Upload) -> Optional[PlayerRecord]:
        """Upload a photo for an existing player and swap it in.

        Runs after the creating request has already answered, so failures
        are logged and leave the placeholder in place.
        """

        url = self._store_upload(upload, PLAYER_MEDIA_FOLDER)
        if not url:
            return None
        with self._store.transaction() as tx:
            player = tx.get_player(tenant_id, player_id)
            if player is None:
                logger.info("Player %s deleted before its photo upload finished", player_id)
                return None
            updated = player.model_copy(update={"photo_url": url})
            tx.update_player(updated)
        self._announce(tenant_id, [(EventName.PLAYER_UPDATED, player_payload(updated))])
        return updated

    def register_player(self, token: str, draft: PlayerDraft, photo: Upload | None = None) -> PlayerRecord:
        """Public self-registration: the token decides the tenant."""

        tenant_id = self._registrations.resolve_token(token) if (token and self._registrations) else None
        if not tenant_id:
            raise AuctionValidationError("Invalid registration link. Please contact the organizer.")
        reg_no = (draft.reg_no or "").strip()
        if reg_no:
            with self._store.read() as tx:
                if reg_no in tx.reg_numbers(tenant_id):
                    raise ConflictError("A player with this registration number already exists")
        photo_url = self._store_upload(photo, PLAYER_MEDIA_FOLDER) if photo is not None else ""
        return self._insert_player(tenant_id, draft, photo_url or placeholder_url(draft.name))

    def update_player(self, scope: TenantScope, player_id: str, patch: PlayerPatch) -> PlayerRecord:
        """Apply a partial update, moving sale state through the ledger.

        Changing team or amount requires ``status == sold``; dropping out of
        ``sold`` refunds the owning team.
        """

        tenant_id = scope.for_mutation()
        fields = patch.model_fields_set
        if patch.status is None and fields & {"team_id", "sold_amount"}:
            raise AuctionValidationError("Set status to 'sold' to change team or sold amount")
        events: _Events = []
        sale_event: EventName | None = None
        with self._store.transaction() as tx:
            player = self._load_player(tx, tenant_id, player_id)
            updated = player.model_copy(update=self._descriptive_changes(tenant_id, patch))

            if patch.status is PlayerStatus.SOLD:
                team_id = patch.team_id or player.team_id
                if not team_id:
                    raise AuctionValidationError("A team is required to mark a player sold")
                if "sold_amount" in fields:
                    price = ledger.require_amount(patch.sold_amount)
                elif player.is_sold and player.team_id == team_id:
                    price = player.sold_amount or 0.0
                else:
                    raise AuctionValidationError("Sold amount is required")
                updated, _, _ = self._sell(tx, tenant_id, updated, team_id, price, events)
                if not (player.is_sold and player.team_id == team_id):
                    sale_event = EventName.PLAYER_SOLD
            elif patch.status is not None:
                if patch.status is not player.status or player.team_id is not None:
                    self._detach(tx, tenant_id, player, events)
                    updated = updated.model_copy(
                        update={"status": patch.status, "team_id": None, "sold_amount": None}
                    )
                    if patch.status is PlayerStatus.UNSOLD:
                        sale_event = EventName.PLAYER_MARKED_UNSOLD

            tx.update_player(updated)
        payload = player_payload(updated)
        head: _Events = [(EventName.PLAYER_UPDATED, payload)]
        if sale_event is not None:
            head.append((sale_event, payload))
        self._announce(tenant_id, head + events)
        return updated

    def delete_player(self, scope: TenantScope, player_id: str) -> Optional[TeamRecord]:
        """Delete a player, refunding the team that bought it."""

        tenant_id = scope.for_mutation()
        events: _Events = []
        with self._store.transaction() as tx:
            player = self._load_player(tx, tenant_id, player_id)
            team = self._detach(tx, tenant_id, player, events)
            tx.delete_player(tenant_id, player_id)
        events.append((EventName.PLAYER_DELETED, {"playerId": player_id}))
        self._announce(tenant_id, events)
        logger.info("Player %s deleted (tenant %s)", player_id, tenant_id)
        return team

    # player reads ------------------------------------------------------------

    def random_available_player(self, scope: TenantScope) -> PlayerRecord:
        with self._store.read() as tx:
            candidates = tx.list_player_ids(scope.tenant_id, status=PlayerStatus.AVAILABLE)
            if not candidates:
                raise NotFoundError("No available players found")
            return self._load_player(tx, scope.tenant_id, self._rng.choice(candidates))

    def list_players(self, scope: TenantScope, *, status: PlayerStatus | None = None) -> List[PlayerRecord]:
        with self._store.read() as tx:
            return tx.list_players(scope.tenant_id, status=status)

    def list_unsold(self, scope: TenantScope) -> List[PlayerRecord]:
        with self._store.read() as tx:
            return tx.list_players(scope.tenant_id, status=PlayerStatus.UNSOLD, order_by="name")

    def get_player(self, scope: TenantScope, player_id: str) -> PlayerRecord:
        with self._store.read() as tx:
            return self._load_player(tx, scope.tenant_id, player_id)

    # teams -------------------------------------------------------------------

    def create_team(self, scope: TenantScope, draft: TeamDraft, logo: Upload | None = None) -> TeamRecord:
        tenant_id = scope.for_mutation()
        name = draft.name.strip()
        if not name:
            raise AuctionValidationError("Team name is required")
        logo_url = draft.logo_url
        if logo is not None:
            logo_url = self._store_upload(logo, TEAM_MEDIA_FOLDER) or logo_url
        team = TeamRecord(
            team_id=uuid4().hex,
            tenant_id=tenant_id,
            name=name,
            logo_url=logo_url,
            total_slots=draft.total_slots,
            budget=draft.budget,
            remaining_budget=draft.budget,
        )
        with self._store.transaction() as tx:
            tx.insert_team(team)
        self._announce(tenant_id, [(EventName.TEAM_CREATED, team_payload(team))])
        logger.info("Team %s (%s) created (tenant %s)", team.team_id, team.name, tenant_id)
        return team

    def update_team(
        self,
        scope: TenantScope,
        team_id: str,
        patch: TeamPatch,
        logo: Upload | None = None,
    ) -> TeamRecord:
        """Edit a team. A new budget keeps what has already been spent."""

        tenant_id = scope.for_mutation()
        fields = patch.model_fields_set
        logo_url = self._store_upload(logo, TEAM_MEDIA_FOLDER) if logo is not None else ""
        with self._store.transaction() as tx:
            team = self._load_team(tx, tenant_id, team_id)
            changes: dict[str, Any] = {}
            if patch.name is not None:
                name = patch.name.strip()
                if not name:
                    raise AuctionValidationError("Team name is required")
                changes["name"] = name
            if patch.total_slots is not None:
                if patch.total_slots < team.filled_slots:
                    raise AuctionValidationError("New total slots cannot be less than current filled slots")
                changes["total_slots"] = patch.total_slots
            if logo_url:
                changes["logo_url"] = logo_url
            elif patch.logo_url is not None:
                changes["logo_url"] = patch.logo_url
            updated = team.model_copy(update=changes)
            if "budget" in fields:
                members = {player.player_id: player for player in tx.list_players(tenant_id)}
                updated = ledger.rebudget(updated, patch.budget, ledger.spent_by(team, members))
            tx.update_team(updated, expected=team)
        self._announce(tenant_id, [(EventName.TEAM_UPDATED, team_payload(updated))])
        return updated

    def delete_team(self, scope: TenantScope, team_id: str) -> None:
        tenant_id = scope.for_mutation()
        with self._store.transaction() as tx:
            team = self._load_team(tx, tenant_id, team_id)
            if team.filled_slots > 0 or team.player_ids:
                raise TeamNotEmpty()
            tx.delete_team(tenant_id, team_id)
        self._announce(tenant_id, [(EventName.TEAM_DELETED, {"teamId": team_id})])
        logger.info("Team %s deleted (tenant %s)", team_id, tenant_id)

    def list_teams(self, scope: TenantScope) -> List[TeamRecord]:
        with self._store.read() as tx:
            return tx.list_teams(scope.tenant_id)

    def get_team(self, scope: TenantScope, team_id: str) -> TeamRecord:
        with self._store.read() as tx:
            return self._load_team(tx, scope.tenant_id, team_id)

    def final_results(self, scope: TenantScope) -> List[TeamResult]:
        """Every team with the players it bought, ordered by team name."""

        with self._store.read() as tx:
            teams = tx.list_teams(scope.tenant_id, order_by="name")
            players = {player.player_id: player for player in tx.list_players(scope.tenant_id)}
        results: List[TeamResult] = []
        for team in teams:
            roster = [
                ResultPlayer(
                    player_id=player.player_id,
                    name=player.name,
                    reg_no=player.reg_no,
                    player_class=player.player_class,
                    position=player.position,
                    sold_amount=player.sold_amount,
                )
                for player in (players.get(pid) for pid in team.player_ids)
                if player is not None
            ]
            results.append(
                TeamResult(
                    team_id=team.team_id,
                    team_name=team.name,
                    total_slots=team.total_slots,
                    budget=team.budget,
                    remaining_budget=team.remaining_budget,
                    players=roster,
                )
            )
        return results

    # tenant ------------------------------------------------------------------

    def reset_all(self, scope: TenantScope) -> ResetSummary:
        """Delete every player and team of the caller's tenant."""

        tenant_id = scope.for_mutation()
        with self._store.transaction() as tx:
            players, teams = tx.delete_tenant(tenant_id)
        self._form_schemas.clear(tenant_id)
        self._announce(
            tenant_id,
            [
                (EventName.DATA_RESET, {"playersDeleted": players, "teamsDeleted": teams}),
                (EventName.PLAYERS_CLEARED, {}),
            ],
        )
        logger.warning("Tenant %s reset: %d players and %d teams deleted", tenant_id, players, teams)
        return ResetSummary(players_deleted=players, teams_deleted=teams)

    def audit_tenant(self, scope: TenantScope) -> List[ledger.InvariantViolation]:
        with self._store.read() as tx:
            players = tx.list_players(scope.tenant_id)
            teams = tx.list_teams(scope.tenant_id)
        return ledger.audit(players, teams)

    # internals ---------------------------------------------------------------

    def _sell(
        self,
        tx: StoreTransaction,
        tenant_id: str,
        player: PlayerRecord,
        team_id: str,
        price: float,
        events: _Events,
    ) -> Tuple[PlayerRecord, TeamRecord, Optional[TeamRecord]]:
        """Debit ``team_id`` for ``player`` and return the sold record.

        Writes the team rows; the caller writes the player.
        """

        target = self._load_team(tx, tenant_id, team_id)
        previous: Optional[TeamRecord] = None
        if player.is_sold and player.team_id == target.team_id and player.player_id in target.player_ids:
            updated = ledger.adjust_spend(target, price - (player.sold_amount or 0.0))
        else:
            previous = self._detach(tx, tenant_id, player, events)
            if previous is not None:
                target = self._load_team(tx, tenant_id, team_id)
            updated = ledger.add_member(target, player.player_id, price)
        tx.update_team(updated, expected=target)
        events.append((EventName.TEAM_UPDATED, team_payload(updated)))
        sold = player.model_copy(
            update={"status": PlayerStatus.SOLD, "team_id": updated.team_id, "sold_amount": price}
        )
        return sold, updated, previous

    def _detach(
        self,
        tx: StoreTransaction,
        tenant_id: str,
        player: PlayerRecord,
        events: _Events,
    ) -> Optional[TeamRecord]:
        """Unwind the player's membership, refunding what it was sold for.

        Normally the owner is ``player.team_id``. If that team is gone or no
        longer lists the player, the membership index is consulted so a
        drifted roster is repaired instead of leaking a slot.
        """

        refund = player.sold_amount if (player.is_sold and player.sold_amount) else 0.0
        owner = tx.get_team(tenant_id, player.team_id) if player.team_id else None
        if owner is None or player.player_id not in owner.player_ids:
            listed = tx.find_team_containing(tenant_id, player.player_id)
            if listed is not None and (owner is None or listed.team_id != owner.team_id):
                logger.warning(
                    "Repairing drifted roster: player %s listed by team %s but points at %s (tenant %s)",
                    player.player_id,
                    listed.team_id,
                    player.team_id,
                    tenant_id,
                )
                if owner is None:
                    owner = listed
                else:
                    stray = ledger.remove_member(listed, player.player_id, 0.0)
                    tx.update_team(stray, expected=listed)
                    events.append((EventName.TEAM_UPDATED, team_payload(stray)))
        if owner is None:
            return None
        updated = ledger.remove_member(owner, player.player_id, refund)
        tx.update_team(updated, expected=owner)
        events.append((EventName.TEAM_UPDATED, team_payload(updated)))
        return updated

    def _insert_player(self, tenant_id: str, draft: PlayerDraft, photo_url: str) -> PlayerRecord:
        name = draft.name.strip()
        if not name:
            raise AuctionValidationError("Player name is required")
        custom = self._form_schemas.check(tenant_id, draft.custom_fields)
        with self._store.transaction() as tx:
            reg_no = (draft.reg_no or "").strip() or ledger.next_reg_no(tx.reg_numbers(tenant_id))
            record = PlayerRecord(
                player_id=uuid4().hex,
                tenant_id=tenant_id,
                name=name,
                reg_no=reg_no,
                player_class=(draft.player_class or "").strip() or "N/A",
                position=(draft.position or "").strip() or "N/A",
                photo_url=photo_url,
                custom_fields=custom,
            )
            tx.insert_player(record)
        self._announce(tenant_id, [(EventName.PLAYER_ADDED, player_payload(record))])
        logger.info("Player %s (%s) added (tenant %s)", record.player_id, record.reg_no, tenant_id)
        return record

    def _descriptive_changes(self, tenant_id: str, patch: PlayerPatch) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        if patch.name is not None:
            name = patch.name.strip()
            if not name:
                raise AuctionValidationError("Player name is required")
            changes["name"] = name
        if patch.reg_no is not None and patch.reg_no.strip():
            changes["reg_no"] = patch.reg_no.strip()
        if patch.player_class is not None:
            changes["player_class"] = patch.player_class.strip() or "N/A"
        if patch.position is not None:
            changes["position"] = patch.position.strip() or "N/A"
        if patch.photo_url is not None:
            changes["photo_url"] = patch.photo_url
        if patch.custom_fields is not None:
            changes["custom_fields"] = self._form_schemas.check(tenant_id, patch.custom_fields)
        return changes

    def _store_upload(self, upload: Upload | None, folder: str) -> str:
        if upload is None or self._media is None:
            return ""
        try:
            return self._media.store(upload.data, folder=folder, filename=upload.filename)
        except (OSError, ValueError) as exc:
            logger.warning("Upload of %s to %s failed: %s", upload.filename, folder, exc)
            return ""

    def _announce(self, tenant_id: str, events: Sequence[Tuple[EventName, Any]]) -> None:
        for event, payload in events:
            try:
                self._publisher.announce(tenant_id, event.value, payload)
            except Exception:
                logger.exception("Announcing %s to tenant %s failed", event.value, tenant_id)

    @staticmethod
    def _load_player(tx: StoreTransaction, tenant_id: str, player_id: str) -> PlayerRecord:
        player = tx.get_player(tenant_id, player_id)
        if player is None:
            raise NotFoundError("Player not found")
        return player

    @staticmethod
    def _load_team(tx: StoreTransaction, tenant_id: str, team_id: str) -> TeamRecord:
        team = tx.get_team(tenant_id, team_id)
        if team is None:
            raise NotFoundError("Team not found")
        return team


__all__ = ["AssignmentEngine", "PLAYER_MEDIA_FOLDER", "TEAM_MEDIA_FOLDER"]
