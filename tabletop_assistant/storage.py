"""Key-value persistence sinks for permission and configuration state."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable


@runtime_checkable
class SettingsStore(Protocol):
    """Key-value persistence contract consumed by the permission store."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class MemorySettingsStore:
    """Settings kept in a dict; used for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._data


class JsonFileSettingsStore:
    """Settings persisted as a single JSON object on disk.

    The file is read once on construction and rewritten on every ``set``.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = logging.getLogger(__name__)
        self._data: Dict[str, Any] = {}
        if self.path.exists():
            with open(self.path, "r", encoding="utf-8") as f:
                self._data = json.load(f) or {}
            self.logger.debug(f"Loaded {len(self._data)} settings from {self.path}")

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2, sort_keys=True, default=str)
