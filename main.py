# Filename: main.py

import asyncio
import logging
import sys

from chain_queries import ChainQueries
from config import ConfigError, data_path, load_config, load_wallets
from creator_monitor import CreatorSellMonitor
from launch_monitor import LaunchMonitor
from settings import SettingsStore
from sui_ledger import SuiLedgerClient, derive_address
from telegram_alert import TelegramNotifier
from token_directory import TokenDirectory
from trade_executor import TradeExecutor
from transport import ProxyHttpClient
from watch_list import JsonFileBacking, WatchList

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("Main")


async def run_bot(config):
    wallets = load_wallets(lambda key: derive_address(key, config["RPC_HTTP_ENDPOINT"]))
    for wallet in wallets:
        logger.info(f"👛 {wallet.label}: {wallet.address}")

    timeout = float(config.get("HTTP_TIMEOUT_SECONDS", 10))
    proxy_http = ProxyHttpClient(
        proxy_url=config.get("PROXY_URL"),
        proxy_username=config.get("PROXY_USERNAME", ""),
        proxy_password=config.get("PROXY_PASSWORD", ""),
        timeout=timeout,
    )
    rpc_http = ProxyHttpClient(timeout=timeout)
    ledger = SuiLedgerClient(config["RPC_HTTP_ENDPOINT"], rpc_http)

    telegram_notifier = None
    if config.get("ENABLE_TELEGRAM") and config.get("TELEGRAM_BOT_TOKEN") and config.get("TELEGRAM_CHAT_ID"):
        telegram_notifier = TelegramNotifier(
            config["TELEGRAM_BOT_TOKEN"],
            config["TELEGRAM_CHAT_ID"]
        )

    queries = ChainQueries(ledger, proxy_http, config["GRAPHQL_URL"], wallets)
    directory = TokenDirectory(data_path(config, "TOKENS_FILE"))
    settings = SettingsStore(data_path(config, "SETTINGS_FILE"))
    watch_list = WatchList(JsonFileBacking(data_path(config, "WATCHED_TOKENS_FILE")), queries.get_canonical_balance)

    executor = TradeExecutor(
        ledger,
        queries,
        wallets,
        config,
        watch_list=watch_list,
        directory=directory,
    )
    creator_monitor = CreatorSellMonitor(queries, watch_list, executor, config, notifier=telegram_notifier)
    launch_monitor = LaunchMonitor(queries, directory, settings, executor, config, notifier=telegram_notifier)

    try:
        watch_list.load()
        logger.info("🔍 Scanning wallet for held tokens...")
        await watch_list.bootstrap(queries.iter_all_coins(wallets[0].address), directory)

        await asyncio.gather(creator_monitor.run(), launch_monitor.run())
    finally:
        creator_monitor.stop()
        launch_monitor.stop()
        await ledger.close()
        await proxy_http.close()
        await rpc_http.close()


def main():
    logger.info("🚀 Starting hop.fun multi-wallet bot...")

    config = load_config()
    logging.getLogger().setLevel(str(config.get("LOG_LEVEL", "INFO")).upper())

    try:
        asyncio.run(run_bot(config))
    except ConfigError as e:
        logger.error(f"❌ Configuration error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("❌ Bot stopped by user.")


if __name__ == "__main__":
    main()
