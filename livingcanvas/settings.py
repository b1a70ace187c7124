"""
Key-value settings store for Living Canvas.

Holds the active provider/model selection, API keys and saved prompts in a
single JSON file. Values are not validated; callers decide what they store.
"""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .config import config

logger = logging.getLogger(__name__)

SAVED_PROMPTS_KEY = "savedPrompts"


class SettingsStore:
    """
    A small JSON-backed key-value map.
    """

    def __init__(self, settings_path: Optional[Union[str, Path]] = None):
        """
        Initialize the settings store.

        Args:
            settings_path: Path to the settings file (defaults to config value)
        """
        self.settings_path = Path(settings_path or config.settings_filename)
        self._values: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self.load()

    def load(self) -> None:
        """Load settings from disk; a missing or broken file yields empty settings."""
        try:
            with open(self.settings_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            self._values = data if isinstance(data, dict) else {}
        except FileNotFoundError:
            self._values = {}
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load settings from {self.settings_path}: {e}")
            self._values = {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value
            self._save()

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._values:
                return False
            del self._values[key]
            self._save()
            return True

    def all(self) -> Dict[str, Any]:
        return dict(self._values)

    def save_prompt(self, name: str, text: str) -> None:
        """
        Persist a named prompt for later reuse, replacing one with the same name.
        """
        prompts = dict(self.get(SAVED_PROMPTS_KEY) or {})
        prompts[name] = {"text": text, "saved_at": datetime.now().isoformat(timespec="seconds")}
        self.set(SAVED_PROMPTS_KEY, prompts)
        logger.info(f"Prompt \"{name}\" saved")

    def get_saved_prompts(self) -> Dict[str, str]:
        return {
            name: entry.get("text", "") if isinstance(entry, dict) else str(entry)
            for name, entry in (self.get(SAVED_PROMPTS_KEY) or {}).items()
        }

    def _save(self) -> None:
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.settings_path.name}.", dir=self.settings_path.parent)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._values, f, indent=2, sort_keys=True)
            os.replace(tmp_name, self.settings_path)
        except Exception:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
