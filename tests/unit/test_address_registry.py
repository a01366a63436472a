"""Unit tests for the deposit address registry."""

import pytest

from app.models import User
from app.services.deposit.address_registry import DepositAddress


class TestRefresh:
    """Merging the user store into the registry."""

    @pytest.mark.asyncio
    async def test_refresh_loads_users(self, registry, add_user, deriver):
        await add_user("alice", 0)
        await add_user("bob", 1)

        added = await registry.refresh()

        assert added == 2
        assert len(registry) == 2
        entry = registry.lookup(deriver.address_at(1))
        assert entry == DepositAddress(1, deriver.address_at(1), "bob")

    @pytest.mark.asyncio
    async def test_refresh_is_additive(self, registry, add_user):
        await add_user("alice", 0)
        await registry.refresh()
        await add_user("bob", 1)

        added = await registry.refresh()

        assert added == 1
        assert len(registry) == 2

    @pytest.mark.asyncio
    async def test_refresh_twice_adds_nothing(self, registry, add_user):
        await add_user("alice", 0)
        await registry.refresh()
        assert await registry.refresh() == 0

    @pytest.mark.asyncio
    async def test_users_without_address_skipped(self, registry, session_factory):
        async with session_factory() as session:
            session.add(User(owner_id="pending"))
            await session.commit()

        assert await registry.refresh() == 0
        assert len(registry) == 0


class TestRegisterAndLookup:
    """Immediate registration, lookups and snapshots."""

    def test_lookup_is_case_insensitive(self, registry, deriver):
        address = deriver.address_at(4)
        mixed_case = "0x" + address[2:].upper()
        registry.register_immediately(DepositAddress(4, mixed_case, "carol"))

        assert registry.lookup(address).owner_id == "carol"
        assert mixed_case in registry

    def test_lookup_unknown_returns_none(self, registry):
        assert registry.lookup("0x" + "12" * 20) is None

    def test_register_does_not_overwrite(self, registry, deriver):
        address = deriver.address_at(4)
        assert registry.register_immediately(DepositAddress(4, address, "carol"))
        assert not registry.register_immediately(DepositAddress(4, address, "mallory"))

        assert registry.lookup(address).owner_id == "carol"

    def test_snapshot_is_isolated_from_later_merges(self, registry, deriver):
        registry.register_immediately(DepositAddress(0, deriver.address_at(0), "alice"))
        snapshot = registry.snapshot()

        registry.register_immediately(DepositAddress(1, deriver.address_at(1), "bob"))

        assert len(snapshot) == 1
        assert deriver.address_at(1) not in snapshot
        assert len(registry.snapshot()) == 2

    def test_snapshot_is_read_only(self, registry, deriver):
        snapshot = registry.snapshot()
        with pytest.raises(TypeError):
            snapshot[deriver.address_at(0)] = DepositAddress(0, deriver.address_at(0), "x")
