import pytest

from conftest import ACCESS_KEY, ADMIN_KEY
from hostrpc.apps import AdminStats, NotFoundError, UnauthorizedError


def _seed(host, count):
    return [host.store.insert("guestbook", {"name": f"g{n}", "message": "m"}) for n in range(count)]


@pytest.mark.asyncio
async def test_get_stats(admin_client, guestbook_host):
    empty = await admin_client["getStats"].query().load()
    assert empty.value == AdminStats(total_entries=0, latest_entry_time=None)

    ids = _seed(guestbook_host, 3)
    stats = (await admin_client["getStats"].query().refresh()).value
    assert stats.total_entries == 3
    assert stats.latest_entry_time == guestbook_host.store.get(ids[-1])["_creationTime"]


@pytest.mark.asyncio
async def test_stats_wire_uses_camel_case(guestbook_host):
    _seed(guestbook_host, 1)
    wire = await guestbook_host.run("admin:getStats", {"adminKey": ADMIN_KEY})
    assert set(wire["value"]) == {"totalEntries", "latestEntryTime"}


@pytest.mark.asyncio
async def test_admin_key_is_required(guestbook_host):
    missing = await guestbook_host.run("admin:getStats", {})
    assert missing["cause"]["error"] == {"_tag": "UnauthorizedError", "message": "Admin key required"}
    guestbook_key = await guestbook_host.run("admin:getStats", {"adminKey": ACCESS_KEY})
    assert guestbook_key["cause"]["error"] == {"_tag": "UnauthorizedError", "message": "Invalid admin key"}


@pytest.mark.asyncio
async def test_list_entries_respects_limit(admin_client, guestbook_host):
    _seed(guestbook_host, 5)
    result = await admin_client["listEntries"].query({"limit": 2}).load()
    assert [e.name for e in result.value] == ["g4", "g3"]
    default = await admin_client["listEntries"].query().load()
    assert len(default.value) == 5


@pytest.mark.asyncio
async def test_delete_entry(admin_client, guestbook_host):
    [doc_id] = _seed(guestbook_host, 1)
    deleted = await admin_client["deleteEntry"].mutate({"entryId": doc_id})
    assert deleted.is_success
    assert deleted.value is None
    assert guestbook_host.store.get(doc_id) is None

    again = await admin_client["deleteEntry"].mutate({"entryId": doc_id})
    assert again.is_failure
    assert again.error == NotFoundError(resource="guestbook", id=doc_id)


@pytest.mark.asyncio
async def test_prune_action_runs_internal_mutation(admin_client, guestbook_host):
    ids = _seed(guestbook_host, 4)
    result = await admin_client["prune"].call({"keep": 1})
    assert result.is_success
    assert result.value == 3
    assert [d["_id"] for d in guestbook_host.store.documents("guestbook")] == [ids[-1]]


@pytest.mark.asyncio
async def test_prune_with_wrong_key_is_typed_failure(guestbook_host):
    wire = await guestbook_host.run("admin:prune", {"adminKey": "wrong", "keep": 0})
    assert wire["cause"]["_tag"] == "Fail"
    assert wire["cause"]["error"]["_tag"] == "UnauthorizedError"
    assert UnauthorizedError("x")._tag == "UnauthorizedError"
