"""
Typed decoding of indexer payloads.

The GraphQL indexer returns Move event contents as nested tagged unions, e.g.
{"Struct": [{"name": "creator", "value": {"Address": [12, 250, ...]}}, ...]}.
Decoders here validate the fields they need and raise EventDecodeError for the
single item being decoded, so callers can skip it and keep the rest of a batch.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class EventDecodeError(ValueError):
    pass


@dataclass(frozen=True)
class LaunchEvent:
    curve_id: str
    creator: str
    coin_name: str = ""
    ticker: str = ""
    description: Optional[str] = None
    image_url: Optional[str] = None
    twitter: Optional[str] = None
    website: Optional[str] = None
    telegram: Optional[str] = None


@dataclass(frozen=True)
class FunctionCall:
    digest: str
    sender: str


def bytes_to_hex(raw: Any) -> str:
    """Byte arrays (ID / Address) come back as lists of ints; some indexers already send hex."""
    if isinstance(raw, str):
        value = raw.lower()
        return value if value.startswith("0x") else "0x" + value
    if isinstance(raw, list) and raw and all(isinstance(b, int) and 0 <= b <= 255 for b in raw):
        return "0x" + bytes(raw).hex()
    raise EventDecodeError(f"Not a byte array: {raw!r}")


def struct_fields(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict) or not isinstance(data.get("Struct"), list):
        raise EventDecodeError("Event data is not a Struct")
    fields = {}
    for item in data["Struct"]:
        if isinstance(item, dict) and "name" in item:
            fields[item["name"]] = item.get("value")
    return fields


def decode_text(value: Any) -> Optional[str]:
    """Reads a String value, unwrapping Option<String> / Url structs when present."""
    if value is None:
        return None
    if isinstance(value, dict):
        if "String" in value:
            return value["String"]
        if "Option" in value:
            return decode_text(value["Option"])
        if "Struct" in value:
            for item in value["Struct"] or []:
                text = decode_text((item or {}).get("value"))
                if text is not None:
                    return text
            return None
    raise EventDecodeError(f"Unexpected text value: {value!r}")


def _first_event_data(node: Dict[str, Any]) -> Any:
    events = ((node.get("effects") or {}).get("events") or {}).get("nodes") or []
    if not events:
        raise EventDecodeError("Transaction has no events")
    return ((events[0] or {}).get("contents") or {}).get("data")


def decode_launch_event(node: Dict[str, Any]) -> LaunchEvent:
    fields = struct_fields(_first_event_data(node))

    curve = fields.get("curve_id")
    if not isinstance(curve, dict) or "ID" not in curve:
        raise EventDecodeError("curve_id not found in transaction block data")
    creator = fields.get("creator")
    if not isinstance(creator, dict) or "Address" not in creator:
        raise EventDecodeError("creator address not found in transaction block data")

    return LaunchEvent(
        curve_id=bytes_to_hex(curve["ID"]),
        creator=bytes_to_hex(creator["Address"]),
        coin_name=decode_text(fields.get("coin_name")) or "",
        ticker=decode_text(fields.get("ticker")) or "",
        description=decode_text(fields.get("description")),
        image_url=decode_text(fields.get("image_url")),
        twitter=decode_text(fields.get("twitter")),
        website=decode_text(fields.get("website")),
        telegram=decode_text(fields.get("telegram")),
    )


def decode_function_call(node: Dict[str, Any]) -> FunctionCall:
    sender = (node.get("sender") or {}).get("address")
    if not sender:
        raise EventDecodeError("Transaction has no sender")
    return FunctionCall(digest=node.get("digest") or "", sender=sender.lower())


def transaction_nodes(payload: Any) -> List[Dict[str, Any]]:
    return (((payload or {}).get("data") or {}).get("transactionBlocks") or {}).get("nodes") or []
