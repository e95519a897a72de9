# Filename: settings.py

import json
import logging
import os
from typing import Any, Dict, Optional

logger = logging.getLogger("settings")


class SettingsStore:
    """
    Flat key-value settings shared with the chat front-end.
    Flags are stored as the strings "true" / "false".
    """

    def __init__(self, path: str = "settings.json"):
        self.path = path

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            self._write({})
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, ValueError) as e:
            logger.error(f"Error reading settings: {e}")
            return {}

    def _write(self, settings: Dict[str, Any]):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(settings, f, indent=2)

    def get(self, name: str) -> Optional[Any]:
        settings = self._read()
        if name not in settings:
            logger.error(f"{name} is not set")
            return None
        return settings[name]

    def set(self, name: str, value: Any):
        settings = self._read()
        settings[name] = value
        self._write(settings)

    def is_enabled(self, name: str) -> bool:
        value = self.get(name)
        return value is True or value == "true"
