"""Tests for the authorization facade."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from neo_authz.core.exceptions import (
    ConfigurationError,
    HiddenPermissionError,
    InvalidPermissionNameError,
    RoleNotFoundError,
    StoreUnavailableError,
    StoreWriteError,
)
from neo_authz.core.value_objects import AuthorizationContext
from neo_authz.features.permissions.entities import (
    GrantOverride,
    ResourceAccess,
    RevokeOverride,
    SystemRole,
)


class TestPermissionChecks:
    """Test decisions returned by has_permission and friends."""

    @pytest.mark.asyncio
    async def test_revoke_precedence(self, store, make_service):
        store.add_role("tech", permissions=["device.update"])
        store.assign("u1", "tech")
        store.overrides.append(RevokeOverride(user_id="u1", permission_name="device.update"))
        service = make_service()

        assert await service.has_permission("u1", "device.update") is False

    @pytest.mark.asyncio
    async def test_role_union(self, store, make_service):
        store.add_role("r1", permissions=["device.read"])
        store.add_role("r2", permissions=["maintenance.read"])
        store.assign("u1", "r1")
        store.assign("u1", "r2")
        service = make_service()

        assert await service.has_permission("u1", "device.read") is True
        assert await service.has_permission("u1", "maintenance.read") is True
        assert await service.has_permission("u1", "device.delete") is False

    @pytest.mark.asyncio
    async def test_temporal_boundary_is_exclusive(self, store, make_service, clock):
        store.add_role("r1", permissions=["device.read"])
        store.assign("u1", "r1", valid_until=clock.now)
        service = make_service()

        assert await service.has_permission("u1", "device.read") is False

    @pytest.mark.asyncio
    async def test_repeated_checks_hit_store_once(self, store, make_service):
        store.add_role("r1", permissions=["device.read"])
        store.assign("u1", "r1")
        service = make_service()

        first = await service.has_permission("u1", "device.read")
        second = await service.has_permission("u1", "device.read")

        assert first is second is True
        assert store.read_round_trips == 1

    @pytest.mark.asyncio
    async def test_system_role_shortcut(self, store, make_service):
        store.add_role("admin", kind=SystemRole())
        store.assign("u1", "admin")
        service = make_service()

        assert await service.has_permission("u1", "anything.whatsoever") is True
        assert await service.has_all_permissions("u1", ["a.read", "b.delete"]) is True

    @pytest.mark.asyncio
    async def test_fail_closed_when_store_down(self, store, make_service, caplog):
        store.add_role("r1", permissions=["device.read"])
        store.assign("u1", "r1")
        store.fail_with = ConnectionError("database unreachable")
        service = make_service()

        with caplog.at_level("ERROR"):
            allowed = await service.has_permission("u1", "device.read")

        assert allowed is False
        assert service.get_stats()["decisions"]["failed_closed"] == 1
        assert "user=u1" in caplog.text
        assert "permission=device.read" in caplog.text
        assert "StoreUnavailableError" in caplog.text

    @pytest.mark.asyncio
    async def test_fail_closed_on_inheritance_cycle(self, store, make_service):
        store.add_role("a", permissions=["device.read"], parents=["b"])
        store.add_role("b", parents=["a"])
        store.assign("u1", "a")
        service = make_service()

        assert await service.has_permission("u1", "device.read") is False

    @pytest.mark.asyncio
    async def test_resource_acl_fallback(self, store, make_service):
        store.resources.append(
            ResourceAccess(user_id="u1", resource_type="document", resource_id="d1", access_level="write")
        )
        service = make_service()

        assert await service.has_permission("u1", "document.update", "document", "d1") is True
        assert await service.has_permission("u1", "document.delete", "document", "d1") is False
        assert await service.has_permission("u1", "document.update", "document", "d2") is False
        assert await service.has_permission("u1", "document.update") is False

    @pytest.mark.asyncio
    async def test_revoke_does_not_block_resource_acl(self, store, make_service):
        store.overrides.append(RevokeOverride(user_id="u1", permission_name="document.read"))
        store.resources.append(ResourceAccess(user_id="u1", resource_type="document", resource_id="d1"))
        service = make_service()

        assert await service.has_permission("u1", "document.read") is False
        assert await service.has_permission("u1", "document.read", "document", "d1") is True

    @pytest.mark.asyncio
    async def test_any_and_all(self, store, make_service):
        store.add_role("r1", permissions=["device.read"])
        store.assign("u1", "r1")
        service = make_service()

        assert await service.has_any_permission("u1", ["device.delete", "device.read"]) is True
        assert await service.has_any_permission("u1", ["device.delete"]) is False
        assert await service.has_any_permission("u1", []) is False
        assert await service.has_all_permissions("u1", ["device.read", "device.delete"]) is False
        assert await service.has_all_permissions("u1", ["device.read"]) is True
        assert await service.has_all_permissions("u1", []) is True

    @pytest.mark.asyncio
    async def test_any_and_all_fail_closed(self, store, make_service):
        store.fail_with = ConnectionError("down")
        service = make_service()

        assert await service.has_any_permission("u1", ["device.read"]) is False
        assert await service.has_all_permissions("u1", ["device.read"]) is False

    @pytest.mark.asyncio
    async def test_uuid_and_string_ids_share_snapshot(self, store, make_service):
        user_id = uuid4()
        store.add_role("r1", permissions=["device.read"])
        store.assign(str(user_id), "r1")
        service = make_service()

        assert await service.has_permission(user_id, "device.read") is True
        assert await service.has_permission(str(user_id), "device.read") is True
        assert store.read_round_trips == 1

    @pytest.mark.asyncio
    async def test_scopes_cached_separately(self, store, make_service):
        store.add_role("org_role", permissions=["device.delete"])
        store.assign("u1", "org_role", organization_id="org-a")
        service = make_service()

        assert await service.has_permission(
            "u1", "device.delete", context=AuthorizationContext(organization_id="org-a")
        ) is True
        assert await service.has_permission(
            "u1", "device.delete", context=AuthorizationContext(organization_id="org-b")
        ) is False
        assert store.read_round_trips == 2

    @pytest.mark.asyncio
    async def test_has_role(self, store, make_service):
        store.add_role("base", permissions=["device.read"])
        store.add_role("tech", parents=["base"])
        store.assign("u1", "tech")
        service = make_service()

        assert await service.has_role("u1", "tech") is True
        assert await service.has_role("u1", "base") is False
        assert await service.has_role("u2", "tech") is False

    @pytest.mark.asyncio
    async def test_has_role_respects_organization_scope(self, store, make_service):
        store.add_role("supervisor")
        store.assign("u1", "supervisor", organization_id="org-a")
        service = make_service()

        assert await service.has_role(
            "u1", "supervisor", context=AuthorizationContext(organization_id="org-a")
        ) is True
        assert await service.has_role(
            "u1", "supervisor", context=AuthorizationContext(organization_id="org-b")
        ) is False

    @pytest.mark.asyncio
    async def test_has_role_fails_closed(self, store, make_service, caplog):
        store.add_role("tech")
        store.assign("u1", "tech")
        store.fail_with = ConnectionError("database unreachable")
        service = make_service()

        with caplog.at_level("ERROR"):
            assert await service.has_role("u1", "tech") is False

        assert service.get_stats()["decisions"]["failed_closed"] == 1
        assert "permission=role:tech" in caplog.text


class TestEffectivePermissions:
    """Test snapshot reads and store retries."""

    @pytest.mark.asyncio
    async def test_nurse_scenario(self, nurse_store, make_service):
        service = make_service()

        snapshot = await service.get_effective_permissions("user-u")

        assert snapshot.permission_names == frozenset({"device.read", "device.update"})
        assert snapshot.verify_hash() is True

    @pytest.mark.asyncio
    async def test_raises_after_retries_exhausted(self, store, make_service):
        store.fail_with = ConnectionError("down")
        service = make_service(store_retry_attempts=3)

        with pytest.raises(StoreUnavailableError):
            await service.get_effective_permissions("u1")

        assert store.read_round_trips == 3

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, store, make_service):
        store.add_role("r1", permissions=["device.read"])
        store.assign("u1", "r1")
        store.fail_next(1, ConnectionError("blip"))
        service = make_service()

        snapshot = await service.get_effective_permissions("u1")

        assert "device.read" in snapshot.permission_names

    @pytest.mark.asyncio
    async def test_snapshot_expires_after_ttl(self, store, make_service, clock):
        store.add_role("r1", permissions=["device.read"])
        store.assign("u1", "r1")
        service = make_service(cache_ttl_seconds=60)

        await service.get_effective_permissions("u1")
        clock.advance(60)
        await service.get_effective_permissions("u1")

        assert store.read_round_trips == 2


class TestWriteWrappers:
    """Test write-then-invalidate ordering of the mutation wrappers."""

    @pytest.mark.asyncio
    async def test_revoke_invalidates_cached_grant(self, store, make_service):
        store.add_role("r1", permissions=["device.update"])
        store.assign("u1", "r1")
        service = make_service()
        assert await service.has_permission("u1", "device.update") is True

        override = await service.revoke_permission("u1", "device.update", notes="locked")

        assert isinstance(override, RevokeOverride)
        assert await service.has_permission("u1", "device.update") is False

    @pytest.mark.asyncio
    async def test_grant_then_clear_override(self, store, make_service):
        service = make_service()
        assert await service.has_permission("u1", "device.read") is False

        override = await service.grant_permission("u1", "device.read", granted_by="admin-1")
        assert isinstance(override, GrantOverride)
        assert await service.has_permission("u1", "device.read") is True

        assert await service.clear_permission_override("u1", "device.read") is True
        assert await service.has_permission("u1", "device.read") is False

    @pytest.mark.asyncio
    async def test_grant_replaces_prior_revoke(self, store, make_service):
        store.overrides.append(RevokeOverride(user_id="u1", permission_name="device.read"))
        service = make_service()

        await service.grant_permission("u1", "device.read")

        assert await service.has_permission("u1", "device.read") is True
        assert len(store.overrides) == 1

    @pytest.mark.asyncio
    async def test_assign_and_remove_role(self, store, make_service, clock):
        store.add_role("r1", permissions=["device.read"])
        service = make_service()
        assert await service.has_permission("u1", "device.read") is False

        assignment = await service.assign_role("u1", "r1", valid_until=clock.now + timedelta(days=1))
        assert assignment.user_id == "u1"
        assert await service.has_permission("u1", "device.read") is True

        assert await service.remove_role_assignment("u1", "r1") is True
        assert await service.has_permission("u1", "device.read") is False

    @pytest.mark.asyncio
    async def test_failed_write_does_not_invalidate(self, store, make_service):
        store.add_role("r1", permissions=["device.read"])
        store.assign("u1", "r1")
        service = make_service()
        await service.has_permission("u1", "device.read")
        store.write_error = StoreWriteError("insert failed")

        with pytest.raises(StoreWriteError):
            await service.revoke_permission("u1", "device.read")

        assert service.cache.peek("u1", "*") is not None
        assert service.get_stats()["cache"]["invalidations"] == 0

    @pytest.mark.asyncio
    async def test_hidden_permission_cannot_be_granted(self, store, make_service):
        service = make_service()

        with pytest.raises(HiddenPermissionError):
            await service.grant_permission("u1", "system.admin")
        with pytest.raises(HiddenPermissionError):
            await service.link_role_permission("r1", "system.admin")

        assert store.calls["set_override"] == 0
        assert store.calls["link_role_permission"] == 0

    @pytest.mark.asyncio
    async def test_malformed_permission_name_rejected(self, store, make_service):
        service = make_service()

        with pytest.raises(InvalidPermissionNameError):
            await service.grant_permission("u1", "not-a-permission")

        assert store.calls["set_override"] == 0

    @pytest.mark.asyncio
    async def test_link_role_permission_invalidates_role_holders(self, store, make_service):
        store.add_role("r1", permissions=["device.read"])
        store.assign("u1", "r1")
        store.assign("u2", "r1")
        service = make_service()
        assert await service.has_permission("u1", "device.update") is False
        assert await service.has_permission("u2", "device.update") is False

        assert await service.link_role_permission("r1", "device.update") is True

        assert await service.has_permission("u1", "device.update") is True
        assert await service.has_permission("u2", "device.update") is True

        assert await service.unlink_role_permission("r1", "device.update") is True
        assert await service.has_permission("u1", "device.update") is False

    @pytest.mark.asyncio
    async def test_add_role_parent_rejects_cycles(self, store, make_service):
        store.add_role("base", permissions=["device.read"])
        store.add_role("tech", permissions=["device.update"], parents=["base"])
        service = make_service()

        with pytest.raises(ConfigurationError, match="inheritance cycle"):
            await service.add_role_parent("tech", "base")

        assert store.calls["add_role_parent"] == 0

    @pytest.mark.asyncio
    async def test_add_role_parent_requires_existing_roles(self, store, make_service):
        store.add_role("base", permissions=["device.read"])
        service = make_service()

        with pytest.raises(RoleNotFoundError):
            await service.add_role_parent("base", "ghost")

        assert store.calls["add_role_parent"] == 0

    @pytest.mark.asyncio
    async def test_add_role_parent_invalidates_descendants(self, store, make_service):
        store.add_role("base", permissions=["device.read"])
        store.add_role("tech", permissions=["device.update"])
        store.add_role("lead", parents=["tech"])
        store.assign("u1", "lead")
        service = make_service()
        assert await service.has_permission("u1", "device.read") is False

        assert await service.add_role_parent("base", "tech") is True

        assert await service.has_permission("u1", "device.read") is True

    @pytest.mark.asyncio
    async def test_writes_require_writer(self, make_service):
        service = make_service(writer=None)

        with pytest.raises(ConfigurationError, match="No grant writer"):
            await service.grant_permission("u1", "device.read")


class TestInvalidationAndOperations:
    """Test invalidation hooks, warmup and statistics."""

    @pytest.mark.asyncio
    async def test_invalidate_bulk(self, store, make_service):
        for user_id in ("u1", "u2", "u3"):
            store.assign(user_id, "r1")
        store.add_role("r1", permissions=["device.read"])
        service = make_service()
        for user_id in ("u1", "u2", "u3"):
            await service.has_permission(user_id, "device.read")

        removed = await service.invalidate_bulk(["u1", "u2", "u1"])

        assert removed == 2
        assert service.cache.peek("u3", "*") is not None
        assert service.cache.peek("u1", "*") is None

    @pytest.mark.asyncio
    async def test_invalidate_role_falls_back_to_clear(self, store, make_service):
        store.add_role("r1", permissions=["device.read"])
        store.assign("u1", "r1")
        service = make_service()
        await service.has_permission("u1", "device.read")
        store.fail_with = ConnectionError("down")

        await service.invalidate_role("r1")

        assert service.cache.peek("u1", "*") is None

    @pytest.mark.asyncio
    async def test_invalidate_all(self, store, make_service):
        store.add_role("r1", permissions=["device.read"])
        store.assign("u1", "r1")
        service = make_service()
        await service.has_permission("u1", "device.read")

        assert await service.invalidate_all() == 1
        assert service.get_stats()["cache"]["memory_size"] == 0

    @pytest.mark.asyncio
    async def test_warmup_counts_successes(self, store, make_service):
        store.add_role("r1", permissions=["device.read"])
        store.assign("u1", "r1")
        store.assign("u2", "r1")
        service = make_service()

        warmed = await service.warmup(["u1", "u2", "u1"])

        assert warmed == 2
        assert store.read_round_trips == 2
        await service.has_permission("u1", "device.read")
        assert store.read_round_trips == 2

    @pytest.mark.asyncio
    async def test_warmup_tolerates_failures(self, store, make_service):
        store.fail_with = ConnectionError("down")
        service = make_service()

        assert await service.warmup(["u1"]) == 0

    @pytest.mark.asyncio
    async def test_concurrent_checks_share_one_computation(self, store, make_service):
        store.add_role("r1", permissions=["device.read"])
        store.assign("u1", "r1")
        store.delay = 0.01
        service = make_service()

        results = await asyncio.gather(*(service.has_permission("u1", "device.read") for _ in range(20)))

        assert all(results)
        assert store.read_round_trips == 1

    @pytest.mark.asyncio
    async def test_stats(self, store, make_service):
        store.add_role("r1", permissions=["device.read"])
        store.assign("u1", "r1")
        service = make_service()

        await service.has_permission("u1", "device.read")
        await service.has_permission("u1", "device.delete")
        stats = service.get_stats()

        assert stats["decisions"] == {"allowed": 1, "denied": 1, "failed_closed": 0}
        assert stats["cache"]["memory_hits"] == 1
        assert stats["cache"]["misses"] == 1
        assert stats["catalog_size"] == 6
