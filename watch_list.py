# Filename: watch_list.py

import json
import logging
import os
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterator, List, Optional, Set, Tuple

from models import CoinRecord, TokenDirectoryEntry, WatchedToken

logger = logging.getLogger("WatchList")

NATIVE_COIN_TYPE = "0x2::sui::SUI"


class JsonFileBacking:
    """Durable storage for the watch-list: one JSON object keyed by token type."""

    def __init__(self, path: str = "data/watched_tokens.json"):
        self.path = path

    def _reset(self) -> Dict[str, Any]:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump({}, f, indent=2)
        return {}

    def read(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return self._reset()
        try:
            with open(self.path, "r") as f:
                content = f.read()
            if not content.strip():
                return self._reset()
            data = json.loads(content)
            if not isinstance(data, dict):
                raise ValueError("watch-list file is not a JSON object")
            return data
        except (OSError, ValueError) as e:
            logger.error(f"[WATCH] Failed to read {self.path}, recreating it: {e}")
            return self._reset()

    def write(self, records: Dict[str, Any]):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w") as f:
            json.dump(records, f, indent=2)
        os.replace(tmp_path, self.path)


class MemoryBacking:
    def __init__(self, records: Optional[Dict[str, Any]] = None):
        self.records: Dict[str, Any] = json.loads(json.dumps(records or {}))
        self.writes = 0

    def read(self) -> Dict[str, Any]:
        return json.loads(json.dumps(self.records))

    def write(self, records: Dict[str, Any]):
        self.writes += 1
        self.records = json.loads(json.dumps(records))


class WatchList:
    """
    Held tokens watched for a creator exit.

    Saves are read-modify-merge-write: entries another writer added to the file
    are kept, entries this instance removed are dropped, and for keys present in
    both the in-memory value wins.
    """

    def __init__(self, backing, balance_of: Callable[[str], Awaitable[int]]):
        self.backing = backing
        self.balance_of = balance_of
        self.tokens: Dict[str, WatchedToken] = {}
        self._removed: Set[str] = set()

    def __len__(self) -> int:
        return len(self.tokens)

    def __contains__(self, token_type: str) -> bool:
        return token_type in self.tokens

    def items(self) -> List[Tuple[str, WatchedToken]]:
        return list(self.tokens.items())

    def get(self, token_type: str) -> Optional[WatchedToken]:
        return self.tokens.get(token_type)

    def is_watched(self, token_type: str) -> bool:
        return token_type in self.tokens

    def load(self) -> Dict[str, WatchedToken]:
        records = self.backing.read()
        tokens = {}
        for token_type, record in records.items():
            try:
                tokens[token_type] = WatchedToken.from_record(token_type, record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"[WATCH] Skipping malformed entry {token_type}: {e}")
        self.tokens = tokens
        self._removed.clear()
        logger.info(f"[WATCH] Loaded {len(self.tokens)} tokens to watch")
        return dict(self.tokens)

    def save(self) -> bool:
        """Returns True when the backing store was written."""
        current = self.backing.read()
        merged = dict(current)
        for token_type in self._removed:
            merged.pop(token_type, None)
        for token_type, token in self.tokens.items():
            merged[token_type] = token.to_record()

        self._removed.clear()
        # Adopt entries other writers added so they are monitored too.
        for token_type, record in merged.items():
            if token_type not in self.tokens:
                try:
                    self.tokens[token_type] = WatchedToken.from_record(token_type, record)
                except (KeyError, TypeError, ValueError):
                    continue

        if merged == current:
            return False
        self.backing.write(merged)
        logger.info("[WATCH] Updated watched tokens file")
        return True

    async def add(self, token_type: str, info: TokenDirectoryEntry) -> bool:
        try:
            balance = await self.balance_of(token_type)
        except Exception as e:
            logger.error(f"[WATCH] Error adding token {token_type} to watch: {e}")
            return False
        if balance <= 0:
            return False

        self.tokens[token_type] = WatchedToken(
            token_type=token_type,
            creator=info.creator.lower(),
            curve_id=info.curve_id,
            balance=int(balance),
            display_name=info.name,
            ticker=info.ticker,
        )
        self._removed.discard(token_type)
        self.save()
        logger.info(f"🔍 Added {info.name} ({token_type}) to watch list")
        logger.info(f"👤 Creator: {info.creator}")
        logger.info(f"💰 Balance: {balance}")
        return True

    def remove(self, token_type: str):
        self.tokens.pop(token_type, None)
        self._removed.add(token_type)
        self.save()

    async def reconcile_and_prune(self) -> bool:
        """Refreshes balances, drops empty positions. Returns True if anything changed."""
        changed = False
        for token_type, token in list(self.tokens.items()):
            try:
                balance = await self.balance_of(token_type)
            except Exception as e:
                logger.warning(f"[WATCH] Balance check failed for {token_type}, keeping entry: {e}")
                continue

            # Entry removed or replaced while the lookup was in flight.
            if self.tokens.get(token_type) is not token:
                continue

            if balance <= 0:
                self.tokens.pop(token_type, None)
                self._removed.add(token_type)
                changed = True
                logger.info(f"[WATCH] Removed {token.display_name} ({token_type}) from watch list - zero balance")
            elif balance != token.balance:
                token.balance = int(balance)
                changed = True

        if changed:
            self.save()
        return changed

    async def bootstrap(self, coins: AsyncIterator[CoinRecord], directory) -> int:
        """
        Registers every held token found in the directory. Returns how many
        token types were added.
        """
        seen: Set[str] = set()
        added = 0
        async for coin in coins:
            token_type = coin.coin_type
            if token_type == NATIVE_COIN_TYPE or token_type in seen:
                continue
            seen.add(token_type)

            info = directory.find_by_type(token_type)
            if info is None:
                continue
            if await self.add(token_type, info):
                added += 1

        logger.info(f"[WATCH] Found {len(seen)} unique tokens, watching {len(self.tokens)}")
        for token_type, token in self.tokens.items():
            logger.info(f"📊 {token.display_name} ({token_type}) | 👤 {token.creator} | 🔄 {token.curve_id}")
        self.save()
        return added

    def __iter__(self) -> Iterator[str]:
        return iter(list(self.tokens))
