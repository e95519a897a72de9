# Filename: models.py

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class TradeDirection(Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass
class WatchedToken:
    """
    A held position monitored for a creator exit.
    Balance is the raw on-chain integer quantity (never a float).
    """
    token_type: str                  # Fungible asset type, unique key of the watch-list
    creator: str                     # Address that deployed the bonding curve
    curve_id: str                    # Bonding-curve object used to route trades
    balance: int = 0                 # Last observed quantity held
    display_name: str = ""
    ticker: str = ""

    def to_record(self) -> Dict[str, Any]:
        return {
            "creator": self.creator,
            "balance": str(self.balance),
            "curveId": self.curve_id,
            "data": {
                "name": self.display_name,
                "type": self.token_type,
                "ticker": self.ticker,
            },
        }

    @classmethod
    def from_record(cls, token_type: str, record: Dict[str, Any]) -> "WatchedToken":
        data = record.get("data") or {}
        return cls(
            token_type=token_type,
            creator=record["creator"],
            curve_id=record["curveId"],
            balance=int(record.get("balance", "0")),
            display_name=data.get("name", ""),
            ticker=data.get("ticker", ""),
        )


@dataclass
class TokenDirectoryEntry:
    """Static reference data about a launched token, written by launch discovery."""
    curve_id: str
    token_type: str
    name: str = ""
    ticker: str = ""
    creator: str = ""
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_record(self) -> Dict[str, Any]:
        return {
            "curveId": self.curve_id,
            "timestamp": self.timestamp,
            "name": self.name,
            "ticker": self.ticker,
            "type": self.token_type,
            "creator": self.creator,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "TokenDirectoryEntry":
        return cls(
            curve_id=record.get("curveId", ""),
            token_type=record.get("type", ""),
            name=record.get("name") or "",
            ticker=record.get("ticker") or "",
            creator=record.get("creator") or "",
            timestamp=int(record.get("timestamp", 0)),
        )


@dataclass(frozen=True)
class WalletCredential:
    index: int
    address: str
    private_key: str = field(default="", repr=False)

    @property
    def label(self) -> str:
        return f"Wallet {self.index + 1}"


@dataclass(frozen=True)
class TradeRequest:
    curve_id: str
    direction: TradeDirection
    amount: float = 0.0      # Native units to spend (buy)
    percentage: int = 0      # Share of holdings to sell, in (0, 100]


@dataclass
class TransactionOutcome:
    wallet_index: int
    success: bool
    duration_ms: float = 0.0
    tx_digest: Optional[str] = None
    error: Optional[str] = None


@dataclass
class TradeSummary:
    """Aggregate result of one multi-wallet buy or sell."""
    request: TradeRequest
    outcomes: List[TransactionOutcome] = field(default_factory=list)
    asset_type: Optional[str] = None
    duration_ms: float = 0.0
    error: Optional[str] = None
    reconciliation: Optional["asyncio.Task"] = None

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def success(self) -> bool:
        return self.success_count > 0


@dataclass(frozen=True)
class CoinRecord:
    coin_object_id: str
    coin_type: str
    balance: int
    version: str = ""
    digest: str = ""


@dataclass
class CoinPage:
    data: List[CoinRecord]
    next_cursor: Optional[str] = None
    has_next_page: bool = False
