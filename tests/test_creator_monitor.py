import asyncio

import aiohttp

from creator_monitor import CreatorSellMonitor
from models import TradeDirection, TradeRequest, TradeSummary, TransactionOutcome
from watch_list import MemoryBacking, WatchList
from fakes import TEST_CONFIG, SleepRecorder, balance_lookup


def watched(token_type, creator, curve):
    return {"creator": creator, "balance": "100", "curveId": curve,
            "data": {"name": token_type.split("::")[-1], "type": token_type, "ticker": ""}}


def sells_payload(*senders):
    nodes = [{"digest": f"d{i}", "sender": {"address": s}} for i, s in enumerate(senders)]
    return {"data": {"transactionBlocks": {"nodes": nodes}}}


class FakeQueries:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def recent_function_calls(self, function_id, last, max_retries=3):
        self.calls.append((function_id, last))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeExecutor:
    def __init__(self, succeed=True):
        self.succeed = succeed
        self.sells = []

    async def sell(self, curve_id, percentage):
        self.sells.append((curve_id, percentage))
        request = TradeRequest(curve_id=curve_id, direction=TradeDirection.SELL, percentage=percentage)
        return TradeSummary(request=request, outcomes=[TransactionOutcome(0, self.succeed)])


class FakeNotifier:
    def __init__(self):
        self.exits = []

    async def send_creator_exit(self, token, summary):
        self.exits.append(token.token_type)
        return True


def make_monitor(outcomes, executor, notifier=None):
    backing = MemoryBacking({
        "0xa::a::A": watched("0xa::a::A", "0xCreatorA", "0xcurveA"),
        "0xb::b::B": watched("0xb::b::B", "0xcreatorb", "0xcurveB"),
    })
    watch_list = WatchList(backing, balance_lookup({}))
    watch_list.load()
    sleep = SleepRecorder()
    queries = FakeQueries(outcomes)
    monitor = CreatorSellMonitor(queries, watch_list, executor, TEST_CONFIG, notifier=notifier, sleep=sleep)
    return monitor, queries, backing, sleep


def test_creator_sell_triggers_full_protective_sell():
    executor = FakeExecutor(succeed=True)
    notifier = FakeNotifier()
    monitor, queries, backing, _ = make_monitor([sells_payload("0xsomeone", "0xcreatora")], executor, notifier)

    liquidated = asyncio.run(monitor.poll_once())

    assert liquidated == ["0xa::a::A"]
    assert executor.sells == [("0xcurveA", 100)]
    assert set(backing.records) == {"0xb::b::B"}
    assert notifier.exits == ["0xa::a::A"]
    assert queries.calls == [("0xda79::meme::sell", 15)]


def test_failed_protective_sell_keeps_token_watched():
    executor = FakeExecutor(succeed=False)
    monitor, _, backing, _ = make_monitor([sells_payload("0xcreatorb")], executor)

    assert asyncio.run(monitor.poll_once()) == []
    assert executor.sells == [("0xcurveB", 100)]
    assert "0xb::b::B" in monitor.watch_list
    assert "0xb::b::B" in backing.records


def test_unrelated_sellers_are_ignored():
    executor = FakeExecutor()
    monitor, _, backing, _ = make_monitor([sells_payload("0xrandom", "0xother")], executor)

    assert asyncio.run(monitor.poll_once()) == []
    assert executor.sells == []
    assert backing.writes == 0


def test_repeated_creator_sells_trigger_one_liquidation_per_cycle():
    executor = FakeExecutor(succeed=False)
    monitor, _, _, _ = make_monitor([sells_payload("0xcreatorb", "0xcreatorb", "0xcreatorb")], executor)

    asyncio.run(monitor.poll_once())

    assert executor.sells == [("0xcurveB", 100)]


def test_malformed_transactions_are_skipped():
    executor = FakeExecutor()
    payload = sells_payload("0xcreatora")
    payload["data"]["transactionBlocks"]["nodes"].insert(0, {"digest": "broken"})
    monitor, _, _, _ = make_monitor([payload], executor)

    assert asyncio.run(monitor.poll_once()) == ["0xa::a::A"]


def test_query_failures_are_retried_within_the_cycle():
    executor = FakeExecutor()
    outcomes = [aiohttp.ClientConnectionError("reset"), asyncio.TimeoutError(), sells_payload("0xcreatora")]
    monitor, queries, _, sleep = make_monitor(outcomes, executor)

    assert asyncio.run(monitor.poll_once()) == ["0xa::a::A"]
    assert len(queries.calls) == 3
    assert sleep.delays == [1.0, 1.0]


def test_run_keeps_polling_after_exhausted_retries():
    executor = FakeExecutor()
    errors = [aiohttp.ClientConnectionError("reset")] * 4
    monitor, queries, _, sleep = make_monitor(errors + [sells_payload("0xcreatora")], executor)

    async def stop_after_second_cycle(delay):
        sleep.delays.append(delay)
        if len(queries.calls) >= 5:
            monitor.stop()

    monitor._sleep = stop_after_second_cycle
    asyncio.run(monitor.run())

    assert executor.sells == [("0xcurveA", 100)]
    assert len(queries.calls) == 5
