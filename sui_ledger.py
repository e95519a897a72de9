"""
Client ledger Sui
Lectures via JSON-RPC (aiohttp), signature et exécution via pysui.
"""

import logging
from typing import Any, Dict, List, Optional

from pysui import SuiConfig
from pysui.sui.sui_clients.async_client import SuiClient as AsyncSuiClient
from pysui.sui.sui_txn.async_transaction import SuiTransactionAsync
from pysui.sui.sui_types.address import SuiAddress
from pysui.sui.sui_types.scalars import ObjectID, SuiU64

from ledger import (
    ExecutionReceipt,
    GasCoinArg,
    LedgerClient,
    LedgerError,
    MergeCoins,
    MoveCall,
    ObjectArg,
    PureArg,
    ResultArg,
    SplitCoins,
    TransactionPlan,
)
from models import CoinPage, CoinRecord, WalletCredential
from transport import ProxyHttpClient

logger = logging.getLogger("SuiLedger")


def _coin_record(raw: Dict[str, Any]) -> CoinRecord:
    return CoinRecord(
        coin_object_id=raw["coinObjectId"],
        coin_type=raw.get("coinType", ""),
        balance=int(raw.get("balance", 0)),
        version=str(raw.get("version", "")),
        digest=raw.get("digest", ""),
    )


def derive_address(private_key: str, rpc_url: str) -> str:
    """Adresse Sui correspondant à une clé privée (format keystore ou suiprivkey)."""
    cfg = SuiConfig.user_config(rpc_url=rpc_url, prv_keys=[private_key])
    return str(cfg.active_address)


class SuiLedgerClient(LedgerClient):
    def __init__(self, rpc_url: str, http: ProxyHttpClient):
        self.rpc_url = rpc_url
        self.http = http
        self._signers: Dict[str, AsyncSuiClient] = {}
        self._request_id = 0

    # ------------------------------------------------------------------ reads

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        self._request_id += 1
        body = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        payload = await self.http.post(self.rpc_url, body)
        if not isinstance(payload, dict):
            raise LedgerError(f"{method}: unexpected response {payload!r}")
        if payload.get("error"):
            raise LedgerError(f"{method}: {payload['error']}")
        return payload.get("result")

    async def get_object(self, object_id: str) -> Dict[str, Any]:
        result = await self._rpc("sui_getObject", [object_id, {"showType": True, "showContent": True}])
        data = (result or {}).get("data")
        if not data:
            raise LedgerError(f"Object {object_id} not found: {(result or {}).get('error')}")
        return {"type": data.get("type"), "content": data.get("content")}

    async def get_balance(self, owner: str, coin_type: str) -> int:
        result = await self._rpc("suix_getBalance", [owner, coin_type])
        return int((result or {}).get("totalBalance", 0))

    async def get_coins(self, owner: str, coin_type: str) -> List[CoinRecord]:
        coins: List[CoinRecord] = []
        cursor = None
        while True:
            result = await self._rpc("suix_getCoins", [owner, coin_type, cursor, 50]) or {}
            coins.extend(_coin_record(c) for c in result.get("data") or [])
            cursor = result.get("nextCursor")
            if not result.get("hasNextPage") or not cursor:
                return coins

    async def get_all_coins(self, owner: str, cursor: Optional[str] = None, limit: int = 100) -> CoinPage:
        result = await self._rpc("suix_getAllCoins", [owner, cursor, limit]) or {}
        return CoinPage(
            data=[_coin_record(c) for c in result.get("data") or []],
            next_cursor=result.get("nextCursor"),
            has_next_page=bool(result.get("hasNextPage")),
        )

    # ------------------------------------------------------------------ writes

    def _signer(self, wallet: WalletCredential) -> AsyncSuiClient:
        client = self._signers.get(wallet.address)
        if client is None:
            cfg = SuiConfig.user_config(rpc_url=self.rpc_url, prv_keys=[wallet.private_key])
            client = self._signers[wallet.address] = AsyncSuiClient(cfg)
        return client

    def _argument(self, txn: SuiTransactionAsync, arg, results: List[Any]):
        if isinstance(arg, GasCoinArg):
            return txn.gas
        if isinstance(arg, ObjectArg):
            return ObjectID(arg.object_id)
        if isinstance(arg, ResultArg):
            return results[arg.index]
        if isinstance(arg, PureArg):
            if arg.kind == "address":
                return SuiAddress(arg.value)
            return SuiU64(arg.value)
        raise LedgerError(f"Unsupported argument {arg!r}")

    async def sign_and_execute(self, plan: TransactionPlan, wallet: WalletCredential) -> ExecutionReceipt:
        client = self._signer(wallet)
        txn = SuiTransactionAsync(client=client, initial_sender=SuiAddress(plan.sender))

        results: List[Any] = []
        for command in plan.commands:
            if isinstance(command, SplitCoins):
                result = await txn.split_coin(
                    coin=self._argument(txn, command.coin, results),
                    amounts=[self._argument(txn, a, results) for a in command.amounts],
                )
            elif isinstance(command, MergeCoins):
                result = await txn.merge_coins(
                    merge_to=self._argument(txn, command.destination, results),
                    merge_from=[self._argument(txn, s, results) for s in command.sources],
                )
            elif isinstance(command, MoveCall):
                result = await txn.move_call(
                    target=command.target,
                    arguments=[self._argument(txn, a, results) for a in command.arguments],
                    type_arguments=list(command.type_arguments),
                )
            else:
                raise LedgerError(f"Unsupported command {command!r}")
            results.append(result)

        response = await txn.execute(gas_budget=str(plan.gas_budget))
        if not response.is_ok():
            logger.error(f"[TX] Execution failed for {plan.sender}: {response.result_string}")
            return ExecutionReceipt(digest="", status="failure", error=str(response.result_string))

        data = response.result_data
        status = data.effects.status
        return ExecutionReceipt(digest=data.digest, status=status.status, error=getattr(status, "error", None))

    async def close(self):
        for client in self._signers.values():
            await client.close()
        self._signers.clear()
