import asyncio
import json

from models import TokenDirectoryEntry, WatchedToken
from token_directory import TokenDirectory
from watch_list import JsonFileBacking, MemoryBacking, NATIVE_COIN_TYPE, WatchList
from fakes import balance_lookup, coin


def record(creator="0xcreator", balance="100", curve="0xcurve", name="Token", token_type="0xa::a::A"):
    return {"creator": creator, "balance": balance, "curveId": curve,
            "data": {"name": name, "type": token_type, "ticker": ""}}


def entry(token_type="0xa::a::A", creator="0xCreator"):
    return TokenDirectoryEntry(curve_id="0xcurve", token_type=token_type, name="Token", ticker="TOK", creator=creator)


async def agen(items):
    for item in items:
        yield item


def test_missing_file_is_recreated_empty(tmp_path):
    path = tmp_path / "data" / "watched_tokens.json"
    backing = JsonFileBacking(str(path))

    assert backing.read() == {}
    assert json.loads(path.read_text()) == {}


def test_corrupt_file_is_recreated_empty(tmp_path):
    path = tmp_path / "watched_tokens.json"
    path.write_text("{not json")
    watch_list = WatchList(JsonFileBacking(str(path)), balance_lookup({}))

    assert watch_list.load() == {}
    assert json.loads(path.read_text()) == {}


def test_add_with_zero_balance_is_rejected():
    backing = MemoryBacking()
    watch_list = WatchList(backing, balance_lookup({"0xa::a::A": 0}))

    assert asyncio.run(watch_list.add("0xa::a::A", entry())) is False
    assert len(watch_list) == 0
    assert backing.writes == 0
    assert backing.records == {}


def test_add_with_failed_balance_lookup_is_rejected():
    backing = MemoryBacking()
    watch_list = WatchList(backing, balance_lookup({"0xa::a::A": RuntimeError("rpc down")}))

    assert asyncio.run(watch_list.add("0xa::a::A", entry())) is False
    assert backing.writes == 0


def test_add_persists_immediately():
    backing = MemoryBacking()
    watch_list = WatchList(backing, balance_lookup({"0xa::a::A": 500}))

    assert asyncio.run(watch_list.add("0xa::a::A", entry())) is True
    stored = backing.records["0xa::a::A"]
    assert stored["balance"] == "500"
    assert stored["creator"] == "0xcreator"
    assert stored["data"]["name"] == "Token"


def test_save_merges_with_disk_state():
    backing = MemoryBacking({"A": record(token_type="A")})
    watch_list = WatchList(backing, balance_lookup({}))
    watch_list.tokens["B"] = WatchedToken.from_record("B", record(token_type="B", balance="7"))

    assert watch_list.save() is True
    assert set(backing.records) == {"A", "B"}
    assert backing.records["A"] == record(token_type="A")
    assert backing.records["B"]["balance"] == "7"


def test_two_instances_do_not_clobber_each_other():
    backing = MemoryBacking()
    first = WatchList(backing, balance_lookup({"A": 10}))
    second = WatchList(backing, balance_lookup({"B": 20}))
    first.load()
    second.load()

    asyncio.run(first.add("A", entry("A")))
    asyncio.run(second.add("B", entry("B")))

    assert set(backing.records) == {"A", "B"}


def test_remove_deletes_from_disk():
    backing = MemoryBacking({"A": record(token_type="A"), "B": record(token_type="B")})
    watch_list = WatchList(backing, balance_lookup({}))
    watch_list.load()

    watch_list.remove("A")

    assert "A" not in watch_list
    assert set(backing.records) == {"B"}


def test_reconcile_is_idempotent():
    backing = MemoryBacking({"A": record(token_type="A", balance="100"), "B": record(token_type="B", balance="50")})
    watch_list = WatchList(backing, balance_lookup({"A": 100, "B": 0}))
    watch_list.load()

    assert asyncio.run(watch_list.reconcile_and_prune()) is True
    assert backing.writes == 1
    assert set(backing.records) == {"A"}

    assert asyncio.run(watch_list.reconcile_and_prune()) is False
    assert backing.writes == 1


def test_reconcile_updates_changed_balance():
    backing = MemoryBacking({"A": record(token_type="A", balance="100")})
    watch_list = WatchList(backing, balance_lookup({"A": 40}))
    watch_list.load()

    asyncio.run(watch_list.reconcile_and_prune())

    assert watch_list.get("A").balance == 40
    assert backing.records["A"]["balance"] == "40"


def test_reconcile_keeps_entry_when_lookup_fails():
    backing = MemoryBacking({"A": record(token_type="A")})
    watch_list = WatchList(backing, balance_lookup({"A": RuntimeError("timeout")}))
    watch_list.load()

    assert asyncio.run(watch_list.reconcile_and_prune()) is False
    assert "A" in watch_list
    assert backing.writes == 0


def test_overlapping_reconcile_passes_do_not_collide():
    backing = MemoryBacking({"A": record(token_type="A", balance="100"), "B": record(token_type="B", balance="100")})
    balances = {"A": 40, "B": 0}

    async def slow_balance_of(token_type):
        await asyncio.sleep(0.01)
        return balances[token_type]

    watch_list = WatchList(backing, slow_balance_of)
    watch_list.load()

    async def scenario():
        return await asyncio.gather(watch_list.reconcile_and_prune(), watch_list.reconcile_and_prune())

    results = asyncio.run(scenario())

    assert results == [True, False]
    assert set(backing.records) == {"A"}
    assert backing.records["A"]["balance"] == "40"


def test_reconcile_skips_entry_removed_during_lookup():
    backing = MemoryBacking({"A": record(token_type="A", balance="100")})
    watch_list = WatchList(backing, balance_lookup({}))
    watch_list.load()

    async def balance_of(token_type):
        watch_list.remove(token_type)
        return 0

    watch_list.balance_of = balance_of

    assert asyncio.run(watch_list.reconcile_and_prune()) is False
    assert backing.records == {}


def test_bootstrap_registers_held_tokens_found_in_directory(tmp_path):
    directory = TokenDirectory(str(tmp_path / "tokens.json"))
    directory.store("abc123", entry("0xa::a::A"))
    backing = MemoryBacking()
    watch_list = WatchList(backing, balance_lookup({"0xa::a::A": 300, "0xb::b::B": 10}))

    coins = [
        coin("gas", 5, NATIVE_COIN_TYPE),
        coin("a1", 100, "0xa::a::A"),
        coin("a2", 200, "0xa::a::A"),
        coin("b1", 10, "0xb::b::B"),
    ]
    added = asyncio.run(watch_list.bootstrap(agen(coins), directory))

    assert added == 1
    assert list(watch_list) == ["0xa::a::A"]
    assert backing.records["0xa::a::A"]["balance"] == "300"
