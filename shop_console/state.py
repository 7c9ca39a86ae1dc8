import json
import logging
import os

logger = logging.getLogger(__name__)

FILE_EXPIRY_NOTIFIED = "file-expiry-notified"


class ConsoleState:
    """Small persisted key/value flags for the console (JSON file)."""

    def __init__(self, path: str = "console_state.json"):
        self.path = path
        self.values = self._load()

    def _load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return {}

    def get(self, key: str, default=None):
        return self.values.get(key, default)

    def set(self, key: str, value):
        self.values[key] = value
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.values, f, indent=4)

    def should_show_expiry_notice(self) -> bool:
        """True exactly once per state file; the notice is marked shown."""
        if self.get(FILE_EXPIRY_NOTIFIED) is True:
            return False
        self.set(FILE_EXPIRY_NOTIFIED, True)
        return True
