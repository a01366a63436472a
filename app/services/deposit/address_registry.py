"""
Address registry.

In-memory map of monitored deposit addresses, refreshed from the user
store. Entries are only ever added while the process runs, so an address
seen once stays attributable to its owner.
"""

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.repositories.user_repository import UserRepository
from app.utils.security import mask_address


@dataclass(frozen=True)
class DepositAddress:
    """Monitored deposit address and its owner."""

    index: int
    address: str
    owner_id: str


class AddressRegistry:
    """
    Registry of deposit addresses keyed by lowercase address.

    Readers get immutable snapshots; refresh and register_immediately
    swap in a new map under a lock.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory
        self._lock = threading.Lock()
        self._entries: Mapping[str, DepositAddress] = MappingProxyType({})

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and address.lower() in self._entries

    async def refresh(self) -> int:
        """
        Merge the user store into the registry.

        Returns:
            Number of newly added addresses
        """
        async with self.session_factory() as session:
            users = await UserRepository(session).list_with_deposit_address()
            rows = [
                DepositAddress(
                    index=user.derivation_index,
                    address=user.deposit_address.lower(),
                    owner_id=user.owner_id,
                )
                for user in users
            ]

        added = self._merge(rows)
        if added:
            logger.info(
                f"[Registry] Added {added} deposit address(es), "
                f"monitoring {len(self)} total"
            )
        return added

    def register_immediately(self, entry: DepositAddress) -> bool:
        """
        Add one address without waiting for the next refresh.

        Returns:
            True if the address was added
        """
        entry = DepositAddress(
            index=entry.index,
            address=entry.address.lower(),
            owner_id=entry.owner_id,
        )
        added = self._merge([entry]) == 1
        if added:
            logger.info(
                f"[Registry] Registered {mask_address(entry.address)} "
                f"for owner {entry.owner_id}"
            )
        return added

    def snapshot(self) -> Mapping[str, DepositAddress]:
        """Get a read-only view that later merges do not change."""
        return self._entries

    def lookup(self, address: str) -> DepositAddress | None:
        """Find the registry entry for an address (any case)."""
        return self._entries.get(address.lower())

    def _merge(self, rows: list[DepositAddress]) -> int:
        with self._lock:
            current = dict(self._entries)
            added = 0
            for row in rows:
                existing = current.get(row.address)
                if existing is None:
                    current[row.address] = row
                    added += 1
                elif existing != row:
                    logger.error(
                        f"[Registry] Conflicting entry for "
                        f"{mask_address(row.address)} ignored: "
                        f"owner {existing.owner_id} stays registered"
                    )
            if added:
                self._entries = MappingProxyType(current)
            return added
