"""In-memory portfolio state shared by the monitor, the API and the CLI."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from folio_tracker.core.models import FamilyMember, Holding

if TYPE_CHECKING:
    from folio_tracker.storage.store import SqliteHoldingStore

logger = logging.getLogger(__name__)

UNKNOWN_MEMBER = "Unknown"


class PortfolioState:
    """Holdings keyed by id plus the family-member name directory.

    Owned by the application (``AppState`` in the API, the click context
    object in the CLI) and passed explicitly to whatever needs it. Writers
    are not synchronized: the latest ``apply_price`` for a holding wins.
    """

    def __init__(
        self,
        holdings: Iterable[Holding] = (),
        family_members: Iterable[FamilyMember] = (),
    ) -> None:
        self._holdings: dict[str, Holding] = {h.id: h for h in holdings}
        self._members: dict[str, FamilyMember] = {m.id: m for m in family_members}

    async def load(self, store: SqliteHoldingStore) -> None:
        """Replace the state with the store's current contents."""
        self.replace_holdings(await store.get_holdings())
        self.set_family_members(await store.list_family_members())
        logger.debug(
            "Loaded %d holdings and %d family members", len(self._holdings), len(self._members)
        )

    # --- Holdings ---

    @property
    def holdings(self) -> list[Holding]:
        return list(self._holdings.values())

    def __len__(self) -> int:
        return len(self._holdings)

    def get(self, holding_id: str) -> Holding | None:
        return self._holdings.get(holding_id)

    def replace_holdings(self, holdings: Iterable[Holding]) -> None:
        self._holdings = {h.id: h for h in holdings}

    def upsert(self, holding: Holding) -> None:
        self._holdings[holding.id] = holding

    def remove(self, holding_id: str) -> None:
        self._holdings.pop(holding_id, None)

    def symbols(self) -> list[str]:
        """Unique market symbols held, in first-seen order."""
        return list(dict.fromkeys(h.symbol for h in self._holdings.values() if h.symbol))

    def apply_price(self, holding_id: str, price: float, last_updated: datetime) -> Holding | None:
        """Set a holding's current price. Returns None for unknown ids."""
        holding = self._holdings.get(holding_id)
        if holding is None:
            return None
        updated = holding.model_copy(update={"current_price": price, "last_updated": last_updated})
        self._holdings[holding_id] = updated
        return updated

    # --- Family members ---

    @property
    def family_members(self) -> list[FamilyMember]:
        return list(self._members.values())

    def set_family_members(self, members: Iterable[FamilyMember]) -> None:
        self._members = {m.id: m for m in members}

    def add_family_member(self, member: FamilyMember) -> None:
        self._members[member.id] = member

    def remove_family_member(self, member_id: str) -> None:
        # Holdings keep the dangling id and resolve to UNKNOWN_MEMBER
        self._members.pop(member_id, None)

    def member_name(self, member_id: str | None) -> str | None:
        """Display name for a holding's owner; None when unassigned."""
        if member_id is None:
            return None
        member = self._members.get(member_id)
        return member.name if member is not None else UNKNOWN_MEMBER
