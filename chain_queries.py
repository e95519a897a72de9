"""
Read-only chain queries: balances, object types, coin enumeration and
transaction-history search through the GraphQL indexer.
"""

import asyncio
import logging
import re
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Sequence

from ledger import LedgerClient
from models import CoinRecord, WalletCredential
from transport import BackoffPolicy, CONNECTION_ERRORS, ProxyHttpClient, retry_async

logger = logging.getLogger("ChainQueries")

SUI_COIN_TYPE = "0x2::sui::SUI"
MIST_PER_SUI = 10 ** 9
TOTAL_SUPPLY = 10 ** 15       # Fixed supply of every curve token
PERCENT_SCALE = 10 ** 8       # 8 decimal digits kept before converting to float

FUNCTION_CALLS_PAGE_SIZE = 50

COUNT_CALLS_QUERY = """
query CountCalls($function: String!, $sender: SuiAddress!, $first: Int!, $after: String) {
  transactionBlocks(
    filter: { function: $function, sentAddress: $sender }
    first: $first
    after: $after
  ) {
    pageInfo { hasNextPage endCursor }
    nodes { digest }
  }
}
"""

RECENT_CALLS_QUERY = """
query RecentCalls($function: String!, $last: Int!) {
  transactionBlocks(filter: { function: $function }, last: $last) {
    nodes {
      digest
      sender { address }
      effects {
        events {
          nodes { contents { data } }
        }
      }
    }
  }
}
"""


_TYPE_ARGUMENT = re.compile(r"<(.+)>")


class GraphQLError(Exception):
    """The indexer answered with an error payload."""

    def __init__(self, errors: Any):
        super().__init__(f"GraphQL errors: {errors}")
        self.errors = errors


def extract_asset_type(type_descriptor: Optional[str]) -> Optional[str]:
    """'0x..::meme::BondingCurve<0xabc::tok::TOK>' -> '0xabc::tok::TOK'."""
    if not type_descriptor:
        return None
    match = _TYPE_ARGUMENT.search(type_descriptor)
    return match.group(1) if match else None


def owned_percentage(balance: int, total_supply: int = TOTAL_SUPPLY) -> float:
    scaled = (int(balance) * 100 * PERCENT_SCALE) // total_supply
    return round(scaled / PERCENT_SCALE, 2)


class ChainQueries:
    def __init__(
        self,
        ledger: LedgerClient,
        http: ProxyHttpClient,
        graphql_url: str,
        wallets: Sequence[WalletCredential] = (),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.ledger = ledger
        self.http = http
        self.graphql_url = graphql_url
        self.wallets = list(wallets)
        self._sleep = sleep

    # ------------------------------------------------------------------ balances

    async def get_balance(self, owner: str, asset_type: str) -> int:
        return int(await self.ledger.get_balance(owner, asset_type))

    async def get_canonical_balance(self, asset_type: str) -> int:
        """Balance of the first configured wallet, which stands in for the whole set."""
        if not self.wallets:
            return 0
        return await self.get_balance(self.wallets[0].address, asset_type)

    async def get_aggregate_balance(self, asset_type: str) -> int:
        async def one(wallet: WalletCredential) -> int:
            try:
                return await self.get_balance(wallet.address, asset_type)
            except Exception as e:
                logger.error(f"Error fetching balance for wallet {wallet.address}: {e}")
                return 0

        balances = await asyncio.gather(*(one(w) for w in self.wallets))
        return sum(balances)

    async def get_owned_percentage(self, asset_type: str) -> float:
        return owned_percentage(await self.get_aggregate_balance(asset_type))

    # ------------------------------------------------------------------ objects

    async def get_object_type(self, object_id: str) -> Optional[str]:
        try:
            obj = await self.ledger.get_object(object_id)
        except Exception as e:
            logger.debug(f"Object lookup failed for {object_id}: {e}")
            return None
        return (obj or {}).get("type")

    async def resolve_asset_type(self, curve_id: str) -> Optional[str]:
        object_id = curve_id.split("::")[0]
        return extract_asset_type(await self.get_object_type(object_id))

    async def iter_all_coins(self, owner: str, page_size: int = 100) -> AsyncIterator[CoinRecord]:
        cursor = None
        while True:
            page = await self.ledger.get_all_coins(owner, cursor, page_size)
            for coin in page.data:
                yield coin
            if page.has_next_page and page.next_cursor:
                cursor = page.next_cursor
                continue
            if page.has_next_page:
                logger.warning(f"Coin listing for {owner} reported more pages without a cursor, stopping.")
            break

    # ------------------------------------------------------------------ indexer

    async def run_graphql(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        max_retries: int = 3,
        delay_ms: int = 2000,
    ) -> Dict[str, Any]:
        # Fixed delay between attempts; max_retries counts total attempts.
        delay = delay_ms / 1000
        policy = BackoffPolicy(base=delay, multiplier=1.0, cap=delay, max_retries=max(max_retries - 1, 0))

        async def attempt():
            payload = await self.http.post(self.graphql_url, {"query": query, "variables": variables or {}})
            if isinstance(payload, dict) and payload.get("errors"):
                raise GraphQLError(payload["errors"])
            return payload

        return await retry_async(attempt, policy, retry_on=CONNECTION_ERRORS,
                                 label="GraphQL request", sleep=self._sleep)

    async def count_function_calls(self, function_id: str, sender: str) -> int:
        count = 0
        cursor = None
        while True:
            payload = await self.run_graphql(
                COUNT_CALLS_QUERY,
                {"function": function_id, "sender": sender,
                 "first": FUNCTION_CALLS_PAGE_SIZE, "after": cursor},
            )
            blocks = ((payload or {}).get("data") or {}).get("transactionBlocks") or {}
            count += len(blocks.get("nodes") or [])
            page_info = blocks.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")
            if not cursor:
                logger.warning(f"Call count for {sender} reported more pages without a cursor, stopping.")
                break
        return count

    async def recent_function_calls(self, function_id: str, last: int, max_retries: int = 3) -> Dict[str, Any]:
        return await self.run_graphql(RECENT_CALLS_QUERY, {"function": function_id, "last": last},
                                      max_retries=max_retries)
