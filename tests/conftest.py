"""Pytest fixtures shared by the hostrpc tests."""

import pytest

from hostrpc.apps import make_admin_module, make_guestbook_module
from hostrpc.client import RpcClient
from hostrpc.host import InMemoryHost, InMemoryHostClient

ACCESS_KEY = "guestbook-test-key"
ADMIN_KEY = "admin-test-key"


class CountingHostClient(InMemoryHostClient):
    """Records every call that reaches the host."""

    def __init__(self, host):
        super().__init__(host)
        self.calls = []

    async def query(self, path, args):
        self.calls.append(("query", path, dict(args)))
        return await super().query(path, args)

    async def mutation(self, path, args):
        self.calls.append(("mutation", path, dict(args)))
        return await super().mutation(path, args)

    async def action(self, path, args):
        self.calls.append(("action", path, dict(args)))
        return await super().action(path, args)


@pytest.fixture
def host():
    return InMemoryHost()


@pytest.fixture
def guestbook_module():
    return make_guestbook_module(ACCESS_KEY)


@pytest.fixture
def admin_module():
    return make_admin_module(ADMIN_KEY)


@pytest.fixture
def guestbook_host(host, guestbook_module, admin_module):
    host.register_module(guestbook_module)
    host.register_module(admin_module)
    return host


@pytest.fixture
def host_client(guestbook_host):
    return CountingHostClient(guestbook_host)


@pytest.fixture
def shared():
    """Mutable shared fields; tests may swap the key between calls."""
    return {"privateAccessKey": ACCESS_KEY}


@pytest.fixture
def client(guestbook_module, host_client, shared):
    return RpcClient(guestbook_module, host_client, get_shared=lambda: shared)


@pytest.fixture
def admin_client(admin_module, guestbook_host):
    return RpcClient(admin_module, guestbook_host.client(), get_shared=lambda: {"adminKey": ADMIN_KEY})
