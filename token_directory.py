# Filename: token_directory.py

import json
import logging
import os
import random
import string
from typing import Dict, Optional

from models import TokenDirectoryEntry

logger = logging.getLogger("TokenDirectory")

_LISTING_ALPHABET = string.digits + string.ascii_lowercase


def new_listing_id(length: int = 6) -> str:
    return "".join(random.choice(_LISTING_ALPHABET) for _ in range(length))


class TokenDirectory:
    """Launched tokens keyed by listing id, stored in data/tokens.json."""

    def __init__(self, path: str = "data/tokens.json"):
        self.path = path
        directory = os.path.dirname(self.path)
        if directory and not os.path.exists(directory):
            logger.info("Creating data directory...")
            os.makedirs(directory, exist_ok=True)
        if not os.path.exists(self.path):
            logger.info(f"Initializing {self.path}...")
            self._write({})

    def _write(self, records: Dict[str, dict]):
        with open(self.path, "w") as f:
            json.dump(records, f, indent=2)

    def _load(self) -> Dict[str, dict]:
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("token directory is not a JSON object")
            return data
        except (OSError, ValueError) as e:
            logger.error(f"Error loading tokens: {e}")
            self._write({})
            return {}

    def store(self, listing_id: str, entry: TokenDirectoryEntry) -> bool:
        records = self._load()
        if any(r.get("curveId") == entry.curve_id for r in records.values()):
            return False
        records[listing_id] = entry.to_record()
        try:
            self._write(records)
        except OSError as e:
            logger.error(f"Error storing token data: {e}")
            return False
        return True

    def get(self, listing_id: str) -> Optional[TokenDirectoryEntry]:
        record = self._load().get(listing_id)
        return TokenDirectoryEntry.from_record(record) if record else None

    def is_duplicate(self, curve_id: str) -> bool:
        return any(r.get("curveId") == curve_id for r in self._load().values())

    def find_by_type(self, token_type: str) -> Optional[TokenDirectoryEntry]:
        for record in self._load().values():
            if record and record.get("type") == token_type:
                return TokenDirectoryEntry.from_record(record)
        return None

    def all(self) -> Dict[str, TokenDirectoryEntry]:
        return {k: TokenDirectoryEntry.from_record(v) for k, v in self._load().items() if v}
