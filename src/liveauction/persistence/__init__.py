"""Persistence layer for players, teams and team membership."""

from __future__ import annotations

import json
import logging
import sqlite3
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from liveauction.errors import AuctionValidationError, ConflictError, NotFoundError, StaleWriteError
from liveauction.models import CustomFields, PlayerRecord, PlayerStatus, TeamRecord


logger = logging.getLogger(__name__)

_UNIQUE_MESSAGES = {
    "teams": "Team name already exists in your auction",
    "players": "A player with this registration number already exists",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _translate_integrity_error(exc: sqlite3.IntegrityError) -> Exception:
    text = str(exc)
    if "UNIQUE" in text:
        for table, message in _UNIQUE_MESSAGES.items():
            if f"{table}." in text:
                return ConflictError(message)
        if "team_members." in text:
            return ConflictError("Player already belongs to another team")
        return ConflictError("Duplicate entry")
    if "CHECK" in text:
        return AuctionValidationError("Team slot or budget constraint violated")
    return exc


class StoreTransaction:
    """Entity CRUD bound to one open SQLite unit of work.

    Every lookup is keyed on ``tenant_id`` as well as the entity id, so a row
    owned by another tenant is indistinguishable from a missing one.
    """

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    # players -----------------------------------------------------------------

    def get_player(self, tenant_id: str, player_id: str) -> Optional[PlayerRecord]:
        row = self._conn.execute(
            "SELECT * FROM players WHERE id = ? AND tenant_id = ?",
            (player_id, tenant_id),
        ).fetchone()
        return self._row_to_player(row) if row is not None else None

    def list_players(
        self,
        tenant_id: str,
        *,
        status: PlayerStatus | None = None,
        order_by: str = "created",
    ) -> List[PlayerRecord]:
        query = "SELECT * FROM players WHERE tenant_id = ?"
        params: list[str] = [tenant_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        if order_by == "name":
            query += " ORDER BY name COLLATE NOCASE ASC, id ASC"
        else:
            query += " ORDER BY created_at DESC, rowid DESC"
        rows = self._conn.execute(query, tuple(params)).fetchall()
        return [self._row_to_player(row) for row in rows]

    def count_players(self, tenant_id: str, *, status: PlayerStatus | None = None) -> int:
        query = "SELECT COUNT(*) FROM players WHERE tenant_id = ?"
        params: list[str] = [tenant_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        return int(self._conn.execute(query, tuple(params)).fetchone()[0])

    def list_player_ids(self, tenant_id: str, *, status: PlayerStatus) -> List[str]:
        rows = self._conn.execute(
            "SELECT id FROM players WHERE tenant_id = ? AND status = ? ORDER BY rowid",
            (tenant_id, status.value),
        ).fetchall()
        return [row["id"] for row in rows]

    def reg_numbers(self, tenant_id: str) -> List[str]:
        rows = self._conn.execute(
            "SELECT reg_no FROM players WHERE tenant_id = ? AND reg_no IS NOT NULL",
            (tenant_id,),
        ).fetchall()
        return [row["reg_no"] for row in rows]

    def insert_player(self, record: PlayerRecord) -> None:
        now = _now_iso()
        try:
            self._conn.execute(
                """
                INSERT INTO players (
                    id, tenant_id, name, reg_no, player_class, position, photo_url,
                    status, team_id, sold_amount, custom_fields_json, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.player_id,
                    record.tenant_id,
                    record.name,
                    record.reg_no,
                    record.player_class,
                    record.position,
                    record.photo_url,
                    record.status.value,
                    record.team_id,
                    record.sold_amount,
                    json.dumps(record.custom_fields.root),
                    record.created_at.isoformat(),
                    now,
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise _translate_integrity_error(exc) from exc

    def update_player(self, record: PlayerRecord) -> None:
        try:
            cursor = self._conn.execute(
                """
                UPDATE players
                SET name = ?, reg_no = ?, player_class = ?, position = ?, photo_url = ?,
                    status = ?, team_id = ?, sold_amount = ?, custom_fields_json = ?,
                    updated_at = ?
                WHERE id = ? AND tenant_id = ?
                """,
                (
                    record.name,
                    record.reg_no,
                    record.player_class,
                    record.position,
                    record.photo_url,
                    record.status.value,
                    record.team_id,
                    record.sold_amount,
                    json.dumps(record.custom_fields.root),
                    _now_iso(),
                    record.player_id,
                    record.tenant_id,
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise _translate_integrity_error(exc) from exc
        if cursor.rowcount == 0:
            raise NotFoundError("Player not found")

    def delete_player(self, tenant_id: str, player_id: str) -> None:
        self._conn.execute(
            "DELETE FROM team_members WHERE player_id = ? AND tenant_id = ?",
            (player_id, tenant_id),
        )
        cursor = self._conn.execute(
            "DELETE FROM players WHERE id = ? AND tenant_id = ?",
            (player_id, tenant_id),
        )
        if cursor.rowcount == 0:
            raise NotFoundError("Player not found")

    # teams -------------------------------------------------------------------

    def get_team(self, tenant_id: str, team_id: str) -> Optional[TeamRecord]:
        row = self._conn.execute(
            "SELECT * FROM teams WHERE id = ? AND tenant_id = ?",
            (team_id, tenant_id),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_team(row, self._member_ids(row["id"]))

    def list_teams(self, tenant_id: str, *, order_by: str = "created") -> List[TeamRecord]:
        order = "name COLLATE NOCASE ASC" if order_by == "name" else "created_at ASC, rowid ASC"
        rows = self._conn.execute(
            f"SELECT * FROM teams WHERE tenant_id = ? ORDER BY {order}",
            (tenant_id,),
        ).fetchall()
        members: Dict[str, List[str]] = {}
        for member in self._conn.execute(
            "SELECT team_id, player_id FROM team_members WHERE tenant_id = ? ORDER BY seq",
            (tenant_id,),
        ).fetchall():
            members.setdefault(member["team_id"], []).append(member["player_id"])
        return [self._row_to_team(row, members.get(row["id"], [])) for row in rows]

    def count_teams(self, tenant_id: str) -> int:
        return int(
            self._conn.execute("SELECT COUNT(*) FROM teams WHERE tenant_id = ?", (tenant_id,)).fetchone()[0]
        )

    def find_team_containing(self, tenant_id: str, player_id: str) -> Optional[TeamRecord]:
        row = self._conn.execute(
            "SELECT team_id FROM team_members WHERE player_id = ? AND tenant_id = ?",
            (player_id, tenant_id),
        ).fetchone()
        if row is None:
            return None
        return self.get_team(tenant_id, row["team_id"])

    def insert_team(self, record: TeamRecord) -> None:
        now = _now_iso()
        try:
            self._conn.execute(
                """
                INSERT INTO teams (
                    id, tenant_id, name, logo_url, total_slots, filled_slots,
                    budget, remaining_budget, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.team_id,
                    record.tenant_id,
                    record.name,
                    record.logo_url,
                    record.total_slots,
                    record.filled_slots,
                    record.budget,
                    record.remaining_budget,
                    record.created_at.isoformat(),
                    now,
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise _translate_integrity_error(exc) from exc
        self._sync_members(record)

    def update_team(self, record: TeamRecord, *, expected: TeamRecord) -> None:
        """Write ``record`` only if slots and budget still match ``expected``."""

        try:
            cursor = self._conn.execute(
                """
                UPDATE teams
                SET name = ?, logo_url = ?, total_slots = ?, filled_slots = ?,
                    budget = ?, remaining_budget = ?, updated_at = ?
                WHERE id = ? AND tenant_id = ?
                  AND filled_slots = ? AND remaining_budget IS ?
                """,
                (
                    record.name,
                    record.logo_url,
                    record.total_slots,
                    record.filled_slots,
                    record.budget,
                    record.remaining_budget,
                    _now_iso(),
                    record.team_id,
                    record.tenant_id,
                    expected.filled_slots,
                    expected.remaining_budget,
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise _translate_integrity_error(exc) from exc
        if cursor.rowcount == 0:
            if self.get_team(record.tenant_id, record.team_id) is None:
                raise NotFoundError("Team not found")
            raise StaleWriteError("Team was modified concurrently; please retry")
        self._sync_members(record)

    def delete_team(self, tenant_id: str, team_id: str) -> None:
        self._conn.execute("DELETE FROM team_members WHERE team_id = ? AND tenant_id = ?", (team_id, tenant_id))
        cursor = self._conn.execute("DELETE FROM teams WHERE id = ? AND tenant_id = ?", (team_id, tenant_id))
        if cursor.rowcount == 0:
            raise NotFoundError("Team not found")

    # tenant ------------------------------------------------------------------

    def delete_tenant(self, tenant_id: str) -> tuple[int, int]:
        self._conn.execute("DELETE FROM team_members WHERE tenant_id = ?", (tenant_id,))
        players = self._conn.execute("DELETE FROM players WHERE tenant_id = ?", (tenant_id,)).rowcount
        teams = self._conn.execute("DELETE FROM teams WHERE tenant_id = ?", (tenant_id,)).rowcount
        return int(players), int(teams)

    # internals ---------------------------------------------------------------

    def _member_ids(self, team_id: str) -> List[str]:
        rows = self._conn.execute(
            "SELECT player_id FROM team_members WHERE team_id = ? ORDER BY seq",
            (team_id,),
        ).fetchall()
        return [row["player_id"] for row in rows]

    def _sync_members(self, record: TeamRecord) -> None:
        current = self._member_ids(record.team_id)
        wanted = list(dict.fromkeys(record.player_ids))
        removed = [pid for pid in current if pid not in wanted]
        for player_id in removed:
            self._conn.execute(
                "DELETE FROM team_members WHERE team_id = ? AND player_id = ?",
                (record.team_id, player_id),
            )
        seq_row = self._conn.execute(
            "SELECT COALESCE(MAX(seq), 0) FROM team_members WHERE team_id = ?",
            (record.team_id,),
        ).fetchone()
        seq = int(seq_row[0])
        for player_id in wanted:
            if player_id in current:
                continue
            seq += 1
            try:
                self._conn.execute(
                    "INSERT INTO team_members (player_id, team_id, tenant_id, seq) VALUES (?, ?, ?, ?)",
                    (player_id, record.team_id, record.tenant_id, seq),
                )
            except sqlite3.IntegrityError as exc:
                raise _translate_integrity_error(exc) from exc

    def _row_to_player(self, row: sqlite3.Row) -> PlayerRecord:
        return PlayerRecord(
            player_id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            reg_no=row["reg_no"],
            player_class=row["player_class"],
            position=row["position"],
            photo_url=row["photo_url"] or "",
            status=PlayerStatus(row["status"]),
            team_id=row["team_id"],
            sold_amount=row["sold_amount"],
            custom_fields=CustomFields(json.loads(row["custom_fields_json"] or "{}")),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _row_to_team(self, row: sqlite3.Row, member_ids: Sequence[str]) -> TeamRecord:
        return TeamRecord(
            team_id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            logo_url=row["logo_url"] or "",
            total_slots=row["total_slots"],
            filled_slots=row["filled_slots"],
            budget=row["budget"],
            remaining_budget=row["remaining_budget"],
            player_ids=list(member_ids),
            created_at=datetime.fromisoformat(row["created_at"]),
        )


class AuctionStore:
    """SQLite-backed store for auction entities.

    ``transaction()`` takes the database write lock up front (``BEGIN
    IMMEDIATE``) so read-check-write sequences inside it are serialised
    across threads and processes.
    """

    def __init__(self, db_path: Path | str, *, busy_timeout: float = 5.0):
        self._use_uri = False
        self._busy_timeout = busy_timeout
        if isinstance(db_path, str) and db_path.startswith("file:"):
            self.db_path: Path | str = db_path
            self._use_uri = True
        else:
            self.db_path = Path(db_path)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        if isinstance(self.db_path, Path):
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, timeout=self._busy_timeout, isolation_level=None)
            except (OSError, sqlite3.OperationalError):
                fallback_dir = Path(tempfile.gettempdir()) / "liveauction-runtime"
                fallback_dir.mkdir(parents=True, exist_ok=True)
                fallback = fallback_dir / "liveauction.sqlite"
                logger.warning("Cannot open %s; falling back to %s", self.db_path, fallback)
                self.db_path = fallback
                conn = sqlite3.connect(fallback, timeout=self._busy_timeout, isolation_level=None)
                self._create_schema(conn)
        else:
            conn = sqlite3.connect(
                self.db_path,
                uri=self._use_uri,
                timeout=self._busy_timeout,
                isolation_level=None,
                check_same_thread=False,
            )
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        conn = self._connect()
        try:
            self._create_schema(conn)
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS players (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                name TEXT NOT NULL,
                reg_no TEXT,
                player_class TEXT NOT NULL,
                position TEXT NOT NULL,
                photo_url TEXT NOT NULL DEFAULT '',
                status TEXT NOT NULL CHECK (status IN ('available', 'sold', 'unsold')),
                team_id TEXT,
                sold_amount REAL,
                custom_fields_json TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS teams (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                name TEXT NOT NULL,
                logo_url TEXT NOT NULL DEFAULT '',
                total_slots INTEGER NOT NULL CHECK (total_slots >= 1),
                filled_slots INTEGER NOT NULL DEFAULT 0
                    CHECK (filled_slots >= 0 AND filled_slots <= total_slots),
                budget REAL,
                remaining_budget REAL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS team_members (
                player_id TEXT PRIMARY KEY,
                team_id TEXT NOT NULL,
                tenant_id TEXT NOT NULL,
                seq INTEGER NOT NULL
            )
            """
        )
        conn.execute("CREATE UNIQUE INDEX IF NOT EXISTS ux_teams_tenant_name ON teams (tenant_id, name)")
        conn.execute("CREATE UNIQUE INDEX IF NOT EXISTS ux_players_tenant_reg ON players (tenant_id, reg_no)")
        conn.execute("CREATE INDEX IF NOT EXISTS ix_players_tenant_status ON players (tenant_id, status)")
        conn.execute("CREATE INDEX IF NOT EXISTS ix_members_team ON team_members (team_id, seq)")

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """Open a write unit of work; commits on clean exit, rolls back otherwise."""

        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield StoreTransaction(conn)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def read(self) -> Iterator[StoreTransaction]:
        """Open a read-only snapshot."""

        conn = self._connect()
        try:
            conn.execute("BEGIN")
            try:
                yield StoreTransaction(conn)
            finally:
                conn.execute("ROLLBACK")
        finally:
            conn.close()


__all__ = ["AuctionStore", "StoreTransaction"]
