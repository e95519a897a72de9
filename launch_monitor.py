"""
Découverte des nouveaux tokens hop.fun
Scrute les derniers appels de lancement, publie une alerte Telegram,
enregistre le token dans l'annuaire et déclenche l'autobuy si activé.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from chain_queries import ChainQueries, MIST_PER_SUI, SUI_COIN_TYPE, owned_percentage
from events import EventDecodeError, LaunchEvent, decode_launch_event, transaction_nodes
from models import TokenDirectoryEntry
from settings import SettingsStore
from telegram_alert import TelegramNotifier
from token_directory import TokenDirectory, new_listing_id
from transport import BackoffPolicy, retry_async

logger = logging.getLogger("LaunchMonitor")

LAUNCH_RETRY_POLICY = BackoffPolicy(base=2.0, multiplier=2.0, cap=30.0, max_retries=5)
LAUNCH_RETRY_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class LaunchMonitor:
    def __init__(
        self,
        queries: ChainQueries,
        directory: TokenDirectory,
        settings: SettingsStore,
        executor,
        config: Dict[str, Any],
        notifier: Optional[TelegramNotifier] = None,
        sleep=asyncio.sleep,
    ):
        self.queries = queries
        self.directory = directory
        self.settings = settings
        self.executor = executor
        self.notifier = notifier
        self._sleep = sleep

        package = config["PLATFORM_PACKAGE_ID"]
        self.launch_function = f"{package}::meme::accept_connector_v3"
        self.dev_order_function = f"{package}::meme::place_dev_order"
        self.lookback = int(config.get("LAUNCH_LOOKBACK", 5))
        self.scan_interval = float(config.get("LAUNCH_POLL_SECONDS", 10))
        self.autobuy_amount = float(config.get("AUTOBUY_AMOUNT", 1))
        self.policy = LAUNCH_RETRY_POLICY
        self._running = False

    async def run(self):
        self._running = True
        logger.info("Token listing monitor started")
        while self._running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"[LaunchMonitor Error] {e}")
            await self._sleep(self.scan_interval)

    def stop(self):
        self._running = False

    async def poll_once(self) -> List[TokenDirectoryEntry]:
        payload = await retry_async(
            lambda: self.queries.recent_function_calls(self.launch_function, self.lookback, max_retries=1),
            self.policy,
            retry_on=LAUNCH_RETRY_ERRORS,
            label="launch query",
            sleep=self._sleep,
        )

        stored = []
        for node in transaction_nodes(payload):
            try:
                launch = decode_launch_event(node)
            except EventDecodeError as e:
                logger.error(f"[LAUNCH] {e}")
                continue
            try:
                entry = await self.handle_launch(launch)
            except Exception as e:
                logger.error(f"[LAUNCH] Error processing token {launch.curve_id}: {e}")
                continue
            if entry is not None:
                stored.append(entry)
        return stored

    async def handle_launch(self, launch: LaunchEvent) -> Optional[TokenDirectoryEntry]:
        if self.directory.is_duplicate(launch.curve_id):
            return None

        asset_type = await self.queries.resolve_asset_type(launch.curve_id)
        if not asset_type:
            logger.error(f"[LAUNCH] Could not extract type argument from bonding curve {launch.curve_id}")
            return None

        tokens_launched = await self.queries.count_function_calls(self.dev_order_function, launch.creator) - 1
        deployer_balance = await self.queries.get_balance(launch.creator, SUI_COIN_TYPE) / MIST_PER_SUI
        creator_pct = owned_percentage(await self.queries.get_balance(launch.creator, asset_type))

        logger.info(
            f"🚀 New launch: {launch.coin_name} ({launch.ticker}) | creator {launch.creator} | "
            f"{tokens_launched} previous launch(es) | {deployer_balance:.2f} SUI | holds {creator_pct:.2f}%"
        )
        if self.notifier:
            await self.notifier.send_listing(launch, asset_type, tokens_launched, deployer_balance, creator_pct)

        entry = TokenDirectoryEntry(
            curve_id=launch.curve_id,
            token_type=asset_type,
            name=launch.coin_name,
            ticker=launch.ticker,
            creator=launch.creator,
        )
        if not self.directory.store(new_listing_id(), entry):
            return None

        if self.settings.is_enabled("AUTOBUY"):
            logger.info(f"[AUTOBUY] Buying {self.autobuy_amount} SUI of {launch.coin_name}")
            summary = await self.executor.buy(launch.curve_id, self.autobuy_amount)
            if self.notifier:
                await self.notifier.send_trade_summary(summary)
        return entry
