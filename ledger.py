# Filename: ledger.py

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from models import CoinPage, CoinRecord, WalletCredential


class LedgerError(Exception):
    """Raised by a ledger client when a read or submission cannot be completed."""


@dataclass(frozen=True)
class ObjectArg:
    object_id: str


@dataclass(frozen=True)
class PureArg:
    value: Any
    kind: str = "u64"   # 'u64' or 'address'


@dataclass(frozen=True)
class GasCoinArg:
    pass


@dataclass(frozen=True)
class ResultArg:
    index: int


GAS_COIN = GasCoinArg()

Argument = Union[ObjectArg, PureArg, GasCoinArg, ResultArg]


def u64(value: int) -> PureArg:
    return PureArg(int(value), "u64")


def address(value: str) -> PureArg:
    return PureArg(value, "address")


@dataclass
class SplitCoins:
    coin: Argument
    amounts: List[Argument]


@dataclass
class MergeCoins:
    destination: Argument
    sources: List[Argument]


@dataclass
class MoveCall:
    target: str
    type_arguments: List[str]
    arguments: List[Argument]


Command = Union[SplitCoins, MergeCoins, MoveCall]


@dataclass
class TransactionPlan:
    """
    Programmable transaction described independently of any SDK.
    Each builder method returns a ResultArg pointing at the command's output.
    """
    sender: str
    gas_budget: int
    commands: List[Command] = field(default_factory=list)

    def _push(self, command: Command) -> ResultArg:
        self.commands.append(command)
        return ResultArg(len(self.commands) - 1)

    def split_coins(self, coin: Argument, amounts: List[Argument]) -> ResultArg:
        return self._push(SplitCoins(coin, list(amounts)))

    def merge_coins(self, destination: Argument, sources: List[Argument]) -> ResultArg:
        return self._push(MergeCoins(destination, list(sources)))

    def move_call(self, target: str, type_arguments: List[str], arguments: List[Argument]) -> ResultArg:
        return self._push(MoveCall(target, list(type_arguments), list(arguments)))

    @property
    def is_merge_only(self) -> bool:
        return bool(self.commands) and all(isinstance(c, MergeCoins) for c in self.commands)


@dataclass
class ExecutionReceipt:
    digest: str
    status: str                     # 'success' or 'failure' as reported by the ledger
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class LedgerClient(ABC):
    """Narrow ledger capability consumed by the chain queries and the trade executor."""

    @abstractmethod
    async def get_object(self, object_id: str) -> Dict[str, Any]:
        """Returns {'type': ..., 'content': ...} or raises LedgerError."""

    @abstractmethod
    async def get_balance(self, owner: str, coin_type: str) -> int:
        """Total balance of `coin_type` held by `owner`."""

    @abstractmethod
    async def get_coins(self, owner: str, coin_type: str) -> List[CoinRecord]:
        """All coin objects of one type owned by `owner`."""

    @abstractmethod
    async def get_all_coins(self, owner: str, cursor: Optional[str] = None, limit: int = 100) -> CoinPage:
        """One page of every coin owned by `owner`."""

    @abstractmethod
    async def sign_and_execute(self, plan: TransactionPlan, wallet: WalletCredential) -> ExecutionReceipt:
        """Signs `plan` with the wallet key, submits it and waits for local execution."""
