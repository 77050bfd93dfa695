"""Tests for commerce_api/commerce_api/services/access_gate.py

Covers:
- Bearer credential verification and expiry
- Read-through user cache and cache outages
- Tenant-scope derivation for members, owners and superadmins
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from commerce_core.cache.store import CacheUnavailableError, InMemoryKeyValueStore
from commerce_core.models.tenant import TenantSnapshot
from commerce_core.models.user import UserRole

from commerce_api.services.access_gate import AccessControlGate, issue_credential, user_cache_key

_SECRET = "test-secret-key-for-commerce-tests"


def _snapshot(tenant) -> TenantSnapshot:
    return TenantSnapshot.model_validate(tenant)


class TestSubjectOf:
    def test_valid_credential(self, gate) -> None:
        assert gate.subject_of(issue_credential("u1", _SECRET)) == "u1"

    def test_wrong_secret(self, gate) -> None:
        assert gate.subject_of(issue_credential("u1", "other-secret")) is None

    def test_expired(self, gate) -> None:
        token = issue_credential("u1", _SECRET, expires_in=timedelta(seconds=-10))
        assert gate.subject_of(token) is None

    def test_garbage(self, gate) -> None:
        assert gate.subject_of("not-a-jwt") is None

    def test_no_secret_configured(self, session_factory, kv_store) -> None:
        gate = AccessControlGate(session_factory, kv_store, jwt_secret="")
        assert gate.subject_of(issue_credential("u1", _SECRET)) is None


class TestDerive:
    @pytest.mark.asyncio
    async def test_member_of_request_tenant(self, gate, seed) -> None:
        tenant = await seed.tenant("acme")
        user = await seed.user(tenant.id, "student")

        access = await gate.derive(issue_credential(user.id, _SECRET), _snapshot(tenant))

        assert access is not None
        assert access.user.id == user.id
        assert access.effective_tenant_id == tenant.id
        assert access.role is UserRole.STUDENT

    @pytest.mark.asyncio
    async def test_member_of_other_tenant_is_rejected(self, gate, seed) -> None:
        acme = await seed.tenant("acme")
        globex = await seed.tenant("globex")
        user = await seed.user(globex.id, "owner")

        assert await gate.derive(issue_credential(user.id, _SECRET), _snapshot(acme)) is None

    @pytest.mark.asyncio
    async def test_superadmin_acts_as_request_tenant(self, gate, seed) -> None:
        tenant = await seed.tenant("acme")
        admin = await seed.user(None, "superadmin")

        access = await gate.derive(issue_credential(admin.id, _SECRET), _snapshot(tenant))

        assert access.effective_tenant_id == tenant.id
        assert access.role is UserRole.SUPERADMIN

    @pytest.mark.asyncio
    async def test_superadmin_without_tenant(self, gate, seed) -> None:
        admin = await seed.user(None, "superadmin")
        access = await gate.derive(issue_credential(admin.id, _SECRET), None)
        assert access is not None
        assert access.effective_tenant_id is None

    @pytest.mark.asyncio
    async def test_onboarding_owner_passes(self, gate, seed) -> None:
        tenant = await seed.tenant("acme")
        owner = await seed.user(None, "owner")

        access = await gate.derive(issue_credential(owner.id, _SECRET), _snapshot(tenant))

        assert access is not None
        assert access.effective_tenant_id is None

    @pytest.mark.asyncio
    async def test_missing_or_unknown_user(self, gate) -> None:
        assert await gate.derive(None, None) is None
        assert await gate.derive(issue_credential("ghost", _SECRET), None) is None


class TestUserCache:
    @pytest.mark.asyncio
    async def test_user_is_cached(self, gate, kv_store, seed) -> None:
        tenant = await seed.tenant("acme")
        user = await seed.user(tenant.id)

        await gate.get_user(user.id)
        assert user.id in await kv_store.get(user_cache_key(user.id))

        await gate.invalidate_user(user.id)
        assert await kv_store.get(user_cache_key(user.id)) is None

    @pytest.mark.asyncio
    async def test_cache_outage_is_tolerated(self, session_factory, seed) -> None:
        tenant = await seed.tenant("acme")
        user = await seed.user(tenant.id)
        broken = AsyncMock(spec=InMemoryKeyValueStore)
        broken.get.side_effect = CacheUnavailableError("down")
        broken.set.side_effect = CacheUnavailableError("down")
        gate = AccessControlGate(session_factory, broken, jwt_secret=_SECRET)

        snapshot = await gate.get_user(user.id)
        assert snapshot is not None
        assert snapshot.email == user.email
