"""
Exécution multi-wallets des achats et ventes sur les bonding curves.

Every configured wallet trades concurrently and independently. Results are
collected with settle-all semantics: one wallet failing never cancels the
others, and an operation succeeds when at least one wallet succeeded.
"""

import asyncio
import logging
import random
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from chain_queries import ChainQueries, MIST_PER_SUI
from ledger import GAS_COIN, LedgerClient, ObjectArg, TransactionPlan, address, u64
from models import (
    CoinRecord,
    TradeDirection,
    TradeRequest,
    TradeSummary,
    TransactionOutcome,
    WalletCredential,
)

logger = logging.getLogger("TradeExecutor")

CENT = Decimal("0.01")
VARIATION = Decimal("0.2")


class TradeError(Exception):
    pass


class AssetTypeUnresolved(TradeError):
    pass


class NoCoinsOwned(TradeError):
    pass


class MergeFailed(TradeError):
    pass


class SubmissionRejected(TradeError):
    pass


def random_variation(base_amount: Decimal, rng: random.Random) -> Decimal:
    """Draws within +/-20% of `base_amount`, never below 1 unit."""
    factor = (1 - VARIATION) + Decimal(str(rng.random())) * (2 * VARIATION)
    return max(Decimal(1), (base_amount * factor).quantize(CENT, rounding=ROUND_HALF_UP))


def distribute_amount(total_amount: float, num_wallets: int, rng: Optional[random.Random] = None) -> List[Decimal]:
    """
    Splits `total_amount` into randomized per-wallet shares that add up exactly
    to the total (to the cent), each at least 0.01.
    """
    if num_wallets <= 0:
        return []
    rng = rng or random.Random()
    total = Decimal(str(total_amount)).quantize(CENT, rounding=ROUND_HALF_UP)
    if total < CENT * num_wallets:
        raise ValueError(f"Cannot split {total} across {num_wallets} wallets")

    base = total / num_wallets
    draws = [random_variation(base, rng) for _ in range(num_wallets)]
    draw_sum = sum(draws)

    amounts = [max(CENT, (d / draw_sum * total).quantize(CENT, rounding=ROUND_HALF_UP)) for d in draws]

    diff = total - sum(amounts)
    if diff:
        largest = max(range(num_wallets), key=lambda i: amounts[i])
        amounts[largest] += diff
    return amounts


def to_mist(amount: Decimal) -> int:
    return int(Decimal(amount) * MIST_PER_SUI)


def select_coin(coins: Sequence[CoinRecord], amount: int) -> Tuple[CoinRecord, List[CoinRecord]]:
    """
    Picks the coin to split `amount` from. Returns (coin, to_merge) where
    `to_merge` is empty when a single coin already covers the amount; otherwise
    the largest coin is the merge destination and the rest are merged into it.
    """
    ordered = sorted(coins, key=lambda c: c.balance, reverse=True)
    for coin in ordered:
        if coin.balance >= amount:
            return coin, []
    return ordered[0], ordered[1:]


class TradeExecutor:
    def __init__(
        self,
        ledger: LedgerClient,
        queries: ChainQueries,
        wallets: Sequence[WalletCredential],
        config: Dict[str, Any],
        watch_list=None,
        directory=None,
        rng: Optional[random.Random] = None,
        sleep=asyncio.sleep,
    ):
        self.ledger = ledger
        self.queries = queries
        self.wallets = list(wallets)
        self.watch_list = watch_list
        self.directory = directory
        self.rng = rng or random.Random()
        self._sleep = sleep

        self.platform_package = config["PLATFORM_PACKAGE_ID"]
        self.sell_package = config.get("SELL_PACKAGE_ID") or self.platform_package
        self.meme_config_id = config["MEME_CONFIG_ID"]
        self.max_price_bound = int(config.get("MAX_PRICE_BOUND", 184467440737095))
        self.gas_budget = int(config.get("GAS_BUDGET", 50_000_000))
        self.merge_settle_seconds = float(config.get("MERGE_SETTLE_SECONDS", 1))
        self.explorer_url = config.get("EXPLORER_TX_URL", "https://suivision.xyz/txblock/")

        self._sell_locks: Dict[str, asyncio.Lock] = {}
        self._background: Set["asyncio.Task"] = set()

        logger.info(f"TradeExecutor initialised with {len(self.wallets)} wallets")

    # ------------------------------------------------------------------ helpers

    def _lock_for(self, asset_type: str) -> asyncio.Lock:
        lock = self._sell_locks.get(asset_type)
        if lock is None:
            lock = self._sell_locks[asset_type] = asyncio.Lock()
        return lock

    async def _submit(self, plan: TransactionPlan, wallet: WalletCredential) -> str:
        receipt = await self.ledger.sign_and_execute(plan, wallet)
        if not receipt.succeeded:
            raise SubmissionRejected(receipt.error or f"status={receipt.status}")
        return receipt.digest

    async def _settle(self, tasks) -> List[TransactionOutcome]:
        results = await asyncio.gather(*tasks, return_exceptions=True)
        outcomes = []
        for index, result in enumerate(results):
            if isinstance(result, TransactionOutcome):
                outcomes.append(result)
            else:
                logger.error(f"Wallet {index + 1} task crashed: {result!r}")
                outcomes.append(TransactionOutcome(wallet_index=index, success=False, error=repr(result)))
        return outcomes

    async def _run_wallet(self, wallet: WalletCredential, action: str, operation) -> TransactionOutcome:
        started = time.monotonic()
        try:
            digest = await operation()
        except NoCoinsOwned as e:
            duration = (time.monotonic() - started) * 1000
            logger.info(f"{wallet.label} has nothing to {action}: {e}")
            return TransactionOutcome(wallet.index, False, duration, error=str(e))
        except Exception as e:
            duration = (time.monotonic() - started) * 1000
            logger.error(f"❌ {wallet.label} {action} failed after {duration:.0f}ms: {e}")
            return TransactionOutcome(wallet.index, False, duration, error=str(e))

        duration = (time.monotonic() - started) * 1000
        logger.info(f"✅ {wallet.label} {action} completed in {duration:.0f}ms")
        logger.info(f"View transaction: {self.explorer_url}{digest}")
        return TransactionOutcome(wallet.index, True, duration, tx_digest=digest)

    def _log_summary(self, summary: TradeSummary, action: str):
        logger.info(f"{action} operation summary:")
        logger.info(f"Total time: {summary.duration_ms:.0f}ms")
        logger.info(f"Success rate: {summary.success_count}/{summary.total} wallets")

    # ------------------------------------------------------------------ buy

    def build_buy_plan(self, wallet: WalletCredential, curve_id: str, asset_type: str, amount_mist: int) -> TransactionPlan:
        plan = TransactionPlan(sender=wallet.address, gas_budget=self.gas_budget)
        payment = plan.split_coins(GAS_COIN, [u64(amount_mist)])
        plan.move_call(
            target=f"{self.platform_package}::meme::buy",
            type_arguments=[asset_type],
            arguments=[
                ObjectArg(curve_id),
                ObjectArg(self.meme_config_id),
                payment,
                u64(self.max_price_bound),
                u64(0),
                address(wallet.address),
            ],
        )
        return plan

    async def buy(self, curve_id: str, total_amount: float) -> TradeSummary:
        request = TradeRequest(curve_id=curve_id, direction=TradeDirection.BUY, amount=total_amount)
        started = time.monotonic()
        summary = TradeSummary(request=request)

        try:
            asset_type = await self.queries.resolve_asset_type(curve_id)
            if not asset_type:
                raise AssetTypeUnresolved(f"Could not extract type argument from bonding curve {curve_id}")
            amounts = distribute_amount(total_amount, len(self.wallets), self.rng)
        except (AssetTypeUnresolved, ValueError) as e:
            summary.error = str(e)
            logger.error(f"Error in multi-wallet buy: {e}")
            return summary
        summary.asset_type = asset_type
        object_id = curve_id.split("::")[0]

        def make_operation(wallet: WalletCredential, amount: Decimal):
            async def operation():
                plan = self.build_buy_plan(wallet, object_id, asset_type, to_mist(amount))
                return await self._submit(plan, wallet)
            return operation

        tasks = [
            self._run_wallet(wallet, f"buy ({amount} SUI)", make_operation(wallet, amount))
            for wallet, amount in zip(self.wallets, amounts)
        ]
        summary.outcomes = await self._settle(tasks)
        summary.duration_ms = (time.monotonic() - started) * 1000
        self._log_summary(summary, "Buy")

        if summary.success:
            await self.after_successful_buy(asset_type)
        return summary

    async def after_successful_buy(self, asset_type: str) -> bool:
        if self.watch_list is None or self.directory is None:
            return False
        try:
            entry = self.directory.find_by_type(asset_type)
            if entry is None:
                logger.info(f"⚠️ Token {asset_type} not found in database")
                return False
            if self.watch_list.is_watched(asset_type):
                logger.info(f"ℹ️ Token {entry.name} is already being watched")
                return False
            added = await self.watch_list.add(asset_type, entry)
            if added:
                logger.info(f"🆕 Added newly bought token to watch list: {entry.name}")
            return added
        except Exception as e:
            logger.error(f"Error in after_successful_buy: {e}")
            return False

    # ------------------------------------------------------------------ sell

    def build_sell_plan(self, wallet: WalletCredential, curve_id: str, asset_type: str,
                        coin_id: str, amount: int) -> TransactionPlan:
        plan = TransactionPlan(sender=wallet.address, gas_budget=self.gas_budget)
        to_sell = plan.split_coins(ObjectArg(coin_id), [u64(amount)])
        plan.move_call(
            target=f"{self.sell_package}::meme::sell",
            type_arguments=[asset_type],
            arguments=[
                ObjectArg(curve_id),
                ObjectArg(self.meme_config_id),
                to_sell,
                u64(0),
            ],
        )
        return plan

    def build_merge_plan(self, wallet: WalletCredential, destination: CoinRecord,
                         sources: Sequence[CoinRecord]) -> TransactionPlan:
        plan = TransactionPlan(sender=wallet.address, gas_budget=self.gas_budget)
        plan.merge_coins(ObjectArg(destination.coin_object_id), [ObjectArg(c.coin_object_id) for c in sources])
        return plan

    async def sell_for_wallet(self, wallet: WalletCredential, curve_id: str, asset_type: str, percentage: int) -> str:
        coins = await self.ledger.get_coins(wallet.address, asset_type)
        if not coins:
            raise NoCoinsOwned("No coins found")

        balance = sum(c.balance for c in coins)
        amount = (balance * percentage) // 100
        if amount <= 0:
            raise NoCoinsOwned(f"Balance {balance} too small to sell {percentage}%")

        coin, to_merge = select_coin(coins, amount)
        if to_merge:
            logger.info(f"{wallet.label}: merging {len(to_merge) + 1} coins before selling")
            merge_plan = self.build_merge_plan(wallet, coin, to_merge)
            try:
                await self._submit(merge_plan, wallet)
            except Exception as e:
                raise MergeFailed(f"Failed to merge coins: {e}") from e
            await self._sleep(self.merge_settle_seconds)

        plan = self.build_sell_plan(wallet, curve_id, asset_type, coin.coin_object_id, amount)
        return await self._submit(plan, wallet)

    async def sell(self, curve_id: str, percentage: int) -> TradeSummary:
        if isinstance(percentage, bool) or not isinstance(percentage, int) or not 0 < percentage <= 100:
            raise ValueError(f"Sell percentage must be an integer in (0, 100], got {percentage!r}")

        request = TradeRequest(curve_id=curve_id, direction=TradeDirection.SELL, percentage=percentage)
        started = time.monotonic()
        summary = TradeSummary(request=request)

        try:
            asset_type = await self.queries.resolve_asset_type(curve_id)
            if not asset_type:
                raise AssetTypeUnresolved("Could not determine token type")
            summary.asset_type = asset_type

            async with self._lock_for(asset_type):
                tasks = [
                    self._run_wallet(
                        wallet,
                        "sell",
                        lambda w=wallet: self.sell_for_wallet(w, curve_id, asset_type, percentage),
                    )
                    for wallet in self.wallets
                ]
                summary.outcomes = await self._settle(tasks)
        except AssetTypeUnresolved as e:
            summary.error = str(e)
            logger.error(f"Error in sell for {curve_id}: {e}")
        finally:
            summary.duration_ms = (time.monotonic() - started) * 1000
            summary.reconciliation = self.schedule_reconciliation()

        self._log_summary(summary, "Sell")
        return summary

    def schedule_reconciliation(self) -> Optional["asyncio.Task"]:
        if self.watch_list is None:
            return None
        task = asyncio.ensure_future(self._reconcile())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _reconcile(self) -> bool:
        try:
            return await self.watch_list.reconcile_and_prune()
        except Exception as e:
            logger.error(f"Error updating watched tokens: {e}")
            return False
