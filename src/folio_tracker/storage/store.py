"""Storage backend: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, ClassVar, Protocol, runtime_checkable
from uuid import uuid4

import aiosqlite

from folio_tracker.core.config import StorageConfig
from folio_tracker.core.exceptions import (
    FamilyMemberNotFoundError,
    HoldingNotFoundError,
    StorageError,
)
from folio_tracker.core.models import (
    FamilyMember,
    Holding,
    HoldingCreate,
    HoldingType,
    HoldingUpdate,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class HoldingStore(Protocol):
    """Persistence collaborator consumed by the price monitor."""

    async def get_holdings(
        self,
        family_member_id: str | None = None,
        holding_type: HoldingType | None = None,
    ) -> list[Holding]: ...
    async def save_holding(
        self, holding_id: str, current_price: float, last_updated: datetime
    ) -> Holding: ...


def _now() -> datetime:
    return datetime.now(UTC)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12]}"


class SqliteHoldingStore:
    """SQLite implementation of the holdings store.

    Uses aiosqlite for async access, WAL mode for concurrent reads, and a
    version-tracked migration system. Holdings reference family members
    without a foreign key: deleting a member leaves its holdings intact.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS family_members (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    relationship TEXT,
                    created_at TEXT NOT NULL
                )""",
                """CREATE TABLE IF NOT EXISTS holdings (
                    id TEXT PRIMARY KEY,
                    symbol TEXT,
                    name TEXT NOT NULL,
                    holding_type TEXT NOT NULL DEFAULT 'stock',
                    quantity REAL NOT NULL,
                    average_buy_price REAL NOT NULL,
                    current_price REAL NOT NULL,
                    sector TEXT,
                    family_member_id TEXT,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    last_updated TEXT
                )""",
                "CREATE INDEX IF NOT EXISTS idx_holdings_symbol ON holdings(symbol)",
                "CREATE INDEX IF NOT EXISTS idx_holdings_member ON holdings(family_member_id)",
                "CREATE INDEX IF NOT EXISTS idx_holdings_type ON holdings(holding_type)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute("SELECT MAX(version) FROM schema_version") as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))

    # --- Holding Operations ---

    async def create_holding(self, data: HoldingCreate) -> Holding:
        now = _now()
        holding = Holding(
            id=_new_id("hold"),
            symbol=data.symbol,
            name=data.name,
            holding_type=data.holding_type,
            quantity=data.quantity,
            average_buy_price=data.average_buy_price,
            # New holdings are valued at cost until the first refresh
            current_price=(
                data.current_price if data.current_price is not None else data.average_buy_price
            ),
            sector=data.sector,
            family_member_id=data.family_member_id,
            notes=data.notes,
            created_at=now,
            updated_at=now,
        )
        try:
            await self._db.execute(
                """INSERT INTO holdings
                   (id, symbol, name, holding_type, quantity, average_buy_price,
                    current_price, sector, family_member_id, notes,
                    created_at, updated_at, last_updated)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                self._holding_params(holding),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to create holding: {e}",
                context={"operation": "insert", "table": "holdings"},
            ) from e
        logger.info("Created holding %s (%s)", holding.id, holding.symbol or holding.name)
        return holding

    async def get_holding(self, holding_id: str) -> Holding | None:
        try:
            async with self._db.execute(
                "SELECT * FROM holdings WHERE id = ?", (holding_id,)
            ) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise StorageError(
                f"Failed to get holding: {e}",
                context={"operation": "query", "table": "holdings", "id": holding_id},
            ) from e
        return self._row_to_holding(row) if row is not None else None

    async def get_holdings(
        self,
        family_member_id: str | None = None,
        holding_type: HoldingType | None = None,
    ) -> list[Holding]:
        """Return holdings in insertion order, optionally narrowed."""
        conditions: list[str] = []
        params: list[Any] = []
        if family_member_id is not None:
            conditions.append("family_member_id = ?")
            params.append(family_member_id)
        if holding_type is not None:
            conditions.append("holding_type = ?")
            params.append(str(holding_type))

        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        try:
            async with self._db.execute(
                f"SELECT * FROM holdings{where} ORDER BY rowid", params
            ) as cursor:
                rows = await cursor.fetchall()
        except Exception as e:
            raise StorageError(
                f"Failed to list holdings: {e}",
                context={"operation": "query", "table": "holdings"},
            ) from e
        return [self._row_to_holding(r) for r in rows]

    async def update_holding(self, holding_id: str, changes: HoldingUpdate) -> Holding:
        """Apply a partial update. Raises HoldingNotFoundError for unknown ids."""
        existing = await self.get_holding(holding_id)
        if existing is None:
            raise HoldingNotFoundError(
                f"Holding not found: {holding_id}",
                context={"operation": "update", "table": "holdings", "id": holding_id},
            )
        fields = changes.model_dump(exclude_unset=True)
        updated = existing.model_copy(update={**fields, "updated_at": _now()})
        # Re-validate so symbol normalization and bounds still apply
        updated = Holding.model_validate(updated.model_dump())
        await self._write_holding(updated, operation="update")
        return updated

    async def save_holding(
        self, holding_id: str, current_price: float, last_updated: datetime
    ) -> Holding:
        """Persist a refreshed price for one holding."""
        existing = await self.get_holding(holding_id)
        if existing is None:
            raise HoldingNotFoundError(
                f"Holding not found: {holding_id}",
                context={"operation": "update", "table": "holdings", "id": holding_id},
            )
        updated = existing.model_copy(
            update={
                "current_price": current_price,
                "last_updated": last_updated,
                "updated_at": _now(),
            }
        )
        await self._write_holding(updated, operation="update_price")
        return updated

    async def delete_holding(self, holding_id: str) -> None:
        try:
            cursor = await self._db.execute("DELETE FROM holdings WHERE id = ?", (holding_id,))
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to delete holding: {e}",
                context={"operation": "delete", "table": "holdings", "id": holding_id},
            ) from e
        if cursor.rowcount == 0:
            raise HoldingNotFoundError(
                f"Holding not found: {holding_id}",
                context={"operation": "delete", "table": "holdings", "id": holding_id},
            )

    async def _write_holding(self, holding: Holding, operation: str) -> None:
        try:
            await self._db.execute(
                """UPDATE holdings SET
                   symbol = ?, name = ?, holding_type = ?, quantity = ?,
                   average_buy_price = ?, current_price = ?, sector = ?,
                   family_member_id = ?, notes = ?, created_at = ?,
                   updated_at = ?, last_updated = ?
                   WHERE id = ?""",
                (*self._holding_params(holding)[1:], holding.id),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to update holding: {e}",
                context={"operation": operation, "table": "holdings", "id": holding.id},
            ) from e

    # --- Family Member Operations ---

    async def create_family_member(
        self, name: str, relationship: str | None = None
    ) -> FamilyMember:
        member = FamilyMember(
            id=_new_id("fam"), name=name, relationship=relationship, created_at=_now()
        )
        try:
            await self._db.execute(
                """INSERT INTO family_members (id, name, relationship, created_at)
                   VALUES (?, ?, ?, ?)""",
                (member.id, member.name, member.relationship, member.created_at.isoformat()),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to create family member: {e}",
                context={"operation": "insert", "table": "family_members"},
            ) from e
        return member

    async def list_family_members(self) -> list[FamilyMember]:
        try:
            async with self._db.execute(
                "SELECT * FROM family_members ORDER BY rowid"
            ) as cursor:
                rows = await cursor.fetchall()
        except Exception as e:
            raise StorageError(
                f"Failed to list family members: {e}",
                context={"operation": "query", "table": "family_members"},
            ) from e
        return [
            FamilyMember(
                id=r["id"],
                name=r["name"],
                relationship=r["relationship"],
                created_at=datetime.fromisoformat(r["created_at"]),
            )
            for r in rows
        ]

    async def delete_family_member(self, member_id: str) -> None:
        """Delete a member. Their holdings keep the (now dangling) reference."""
        try:
            cursor = await self._db.execute(
                "DELETE FROM family_members WHERE id = ?", (member_id,)
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to delete family member: {e}",
                context={"operation": "delete", "table": "family_members", "id": member_id},
            ) from e
        if cursor.rowcount == 0:
            raise FamilyMemberNotFoundError(
                f"Family member not found: {member_id}",
                context={"operation": "delete", "table": "family_members", "id": member_id},
            )

    # --- Statistics ---

    async def get_statistics(self) -> dict[str, Any]:
        try:
            async with self._db.execute(
                """SELECT COUNT(*) AS total,
                          COUNT(DISTINCT symbol) AS symbols,
                          MAX(last_updated) AS latest_refresh
                   FROM holdings"""
            ) as cursor:
                row = await cursor.fetchone()
            async with self._db.execute("SELECT COUNT(*) FROM family_members") as cursor:
                members = await cursor.fetchone()
        except Exception as e:
            raise StorageError(
                f"Failed to gather statistics: {e}",
                context={"operation": "query", "table": "holdings"},
            ) from e
        return {
            "total_holdings": row["total"],
            "unique_symbols": row["symbols"],
            "latest_refresh": row["latest_refresh"],
            "family_members": members[0],
        }

    # --- Row mapping ---

    @staticmethod
    def _holding_params(h: Holding) -> tuple:
        return (
            h.id,
            h.symbol,
            h.name,
            str(h.holding_type),
            h.quantity,
            h.average_buy_price,
            h.current_price,
            h.sector,
            h.family_member_id,
            h.notes,
            h.created_at.isoformat(),
            h.updated_at.isoformat(),
            h.last_updated.isoformat() if h.last_updated else None,
        )

    @staticmethod
    def _row_to_holding(row: aiosqlite.Row) -> Holding:
        return Holding(
            id=row["id"],
            symbol=row["symbol"],
            name=row["name"],
            holding_type=HoldingType(row["holding_type"]),
            quantity=row["quantity"],
            average_buy_price=row["average_buy_price"],
            current_price=row["current_price"],
            sector=row["sector"],
            family_member_id=row["family_member_id"],
            notes=row["notes"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            last_updated=(
                datetime.fromisoformat(row["last_updated"]) if row["last_updated"] else None
            ),
        )


async def create_store(config: StorageConfig) -> SqliteHoldingStore:
    """Create and initialize the holdings store."""
    if config.sqlite_path != ":memory:":
        from pathlib import Path

        Path(config.sqlite_path).parent.mkdir(parents=True, exist_ok=True)
    store = SqliteHoldingStore(config)
    await store.initialize()
    return store
