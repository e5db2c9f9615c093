"""Unit tests for the tenant context provider"""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from tenantguard.tenancy import (
    get_current_tenant_id,
    reset_current_tenant_id,
    resolve_session_tenant_id,
    set_current_tenant_id,
    tenant_scope,
)


pytestmark = pytest.mark.unit


class FakeSession:
    def __init__(self, **info):
        self.info = info


class TestTenantScope:

    def test_default_is_none(self):
        assert get_current_tenant_id() is None

    def test_scope_sets_and_restores(self):
        with tenant_scope("tenant-a"):
            assert get_current_tenant_id() == "tenant-a"
            with tenant_scope("tenant-b"):
                assert get_current_tenant_id() == "tenant-b"
            assert get_current_tenant_id() == "tenant-a"
        assert get_current_tenant_id() is None

    def test_scope_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with tenant_scope("tenant-a"):
                raise RuntimeError("boom")
        assert get_current_tenant_id() is None

    def test_set_and_reset(self):
        token = set_current_tenant_id(7)
        try:
            assert get_current_tenant_id() == 7
        finally:
            reset_current_tenant_id(token)
        assert get_current_tenant_id() is None

    def test_threads_do_not_share_tenant(self):
        with tenant_scope("tenant-a"):
            with ThreadPoolExecutor(max_workers=1) as pool:
                seen = pool.submit(get_current_tenant_id).result()
        assert seen is None

    def test_tasks_have_own_tenant(self):
        async def worker(tenant):
            with tenant_scope(tenant):
                await asyncio.sleep(0)
                return get_current_tenant_id()

        async def main():
            return await asyncio.gather(worker("tenant-a"), worker("tenant-b"))

        assert asyncio.run(main()) == ["tenant-a", "tenant-b"]


class TestResolveSessionTenant:

    def test_falls_back_to_context(self):
        with tenant_scope("tenant-a"):
            assert resolve_session_tenant_id(FakeSession()) == "tenant-a"

    def test_session_info_wins(self):
        with tenant_scope("tenant-a"):
            assert resolve_session_tenant_id(FakeSession(tenant_id="tenant-b")) == "tenant-b"

    def test_explicit_none_in_session_info(self):
        with tenant_scope("tenant-a"):
            assert resolve_session_tenant_id(FakeSession(tenant_id=None)) is None

    def test_no_session(self):
        with tenant_scope("tenant-a"):
            assert resolve_session_tenant_id(None) == "tenant-a"
