# Filename: creator_monitor.py

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

import aiohttp

from chain_queries import ChainQueries, GraphQLError
from events import EventDecodeError, decode_function_call, transaction_nodes
from telegram_alert import TelegramNotifier
from transport import BackoffPolicy, retry_async
from watch_list import WatchList

logger = logging.getLogger("CreatorSellMonitor")

# Same cycle retried 3 times, 1s apart, before waiting for the next cycle.
CYCLE_RETRY_POLICY = BackoffPolicy(base=1.0, multiplier=1.0, cap=1.0, max_retries=3)
CYCLE_RETRY_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, GraphQLError)


class CreatorSellMonitor:
    """
    Polls the platform's recent sell calls and liquidates any watched token
    whose creator shows up as a seller.
    """

    def __init__(
        self,
        queries: ChainQueries,
        watch_list: WatchList,
        executor,
        config: Dict[str, Any],
        notifier: Optional[TelegramNotifier] = None,
        sleep=asyncio.sleep,
    ):
        self.queries = queries
        self.watch_list = watch_list
        self.executor = executor
        self.notifier = notifier
        self._sleep = sleep

        self.sell_function = f"{config['PLATFORM_PACKAGE_ID']}::meme::sell"
        self.lookback = int(config.get("CREATOR_SELL_LOOKBACK", 15))
        self.check_interval = float(config.get("CREATOR_POLL_SECONDS", 1))
        self.policy = CYCLE_RETRY_POLICY
        self._running = False

    async def run(self):
        self._running = True
        logger.info(f"[CREATOR] Watching {len(self.watch_list)} tokens for creator sells")
        while self._running:
            try:
                await self.poll_once()
            except CYCLE_RETRY_ERRORS as e:
                logger.error(f"[CREATOR] Error in creator sell watch after retries: {e}")
            except Exception as e:
                logger.error(f"[CreatorSellMonitor Error] {e}")
            await self._sleep(self.check_interval)

    def stop(self):
        self._running = False

    async def fetch_recent_sellers(self) -> List[str]:
        payload = await retry_async(
            lambda: self.queries.recent_function_calls(self.sell_function, self.lookback, max_retries=1),
            self.policy,
            retry_on=CYCLE_RETRY_ERRORS,
            label="creator sell query",
            sleep=self._sleep,
        )
        sellers = []
        for node in transaction_nodes(payload):
            try:
                sellers.append(decode_function_call(node).sender)
            except EventDecodeError as e:
                logger.debug(f"[CREATOR] Skipping transaction: {e}")
        return sellers

    async def poll_once(self) -> List[str]:
        """Runs one detection cycle. Returns the token types that were liquidated."""
        sellers = await self.fetch_recent_sellers()
        if not sellers:
            logger.debug("[CREATOR] No transactions found")
            return []

        seller_set = set(sellers)
        handled: Set[str] = set()
        liquidated = []
        for token_type, token in self.watch_list.items():
            if token_type in handled or token.creator.lower() not in seller_set:
                continue
            handled.add(token_type)
            if await self.protective_sell(token_type, token):
                liquidated.append(token_type)
        return liquidated

    async def protective_sell(self, token_type: str, token) -> bool:
        logger.warning("🚨 CREATOR SELL DETECTED!")
        logger.info(f"📊 Our Token: {token.display_name} ({token_type})")
        logger.info(f"Creator Address: {token.creator}")
        logger.info(f"Curve ID: {token.curve_id}")

        summary = await self.executor.sell(token.curve_id, 100)
        if not summary.success:
            logger.error(f"[SELL FAIL] ❌ Dev sell failed for {token.display_name}, keeping it watched")
            return False

        logger.info(f"[SELL] ✅ Dev sell successful for {token.display_name}")
        self.watch_list.remove(token_type)
        if self.notifier:
            await self.notifier.send_creator_exit(token, summary)
        return True
