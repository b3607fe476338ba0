"""Persisted set of rule patterns the user never wants suggested again."""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterator, MutableMapping, Set

logger = logging.getLogger(__name__)

DISMISSED_PATTERNS_KEY = "ledgerwise-dismissed-rule-patterns"


def normalize_pattern(pattern: str) -> str:
    return pattern.lower()


class DismissalStore(ABC):
    """Remembers permanently dismissed suggestion patterns (case-insensitive)."""

    @abstractmethod
    def is_dismissed(self, pattern: str) -> bool:
        pass

    @abstractmethod
    def dismiss(self, pattern: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def patterns(self) -> Set[str]:
        pass


class KeyValueDismissalStore(DismissalStore):
    """
    Dismissal store kept under one namespaced key of any string key-value store.

    The value is a JSON array of lower-cased patterns. A plain dict gives a
    process-local store; JsonFileStore survives restarts.
    """

    def __init__(self, store: MutableMapping[str, str], key: str = DISMISSED_PATTERNS_KEY):
        self.store = store
        self.key = key

    def patterns(self) -> Set[str]:
        try:
            raw = self.store.get(self.key)
        except OSError as e:
            logger.warning(f"Could not read dismissed patterns: {e}")
            return set()

        if not raw:
            return set()

        try:
            values = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Ignoring corrupt dismissed patterns: {e}")
            return set()

        if not isinstance(values, list):
            logger.warning("Ignoring dismissed patterns that are not a list")
            return set()
        return {v for v in values if isinstance(v, str)}

    def is_dismissed(self, pattern: str) -> bool:
        return normalize_pattern(pattern) in self.patterns()

    def dismiss(self, pattern: str) -> None:
        patterns = self.patterns()
        patterns.add(normalize_pattern(pattern))
        try:
            self.store[self.key] = json.dumps(sorted(patterns))
        except OSError as e:
            logger.warning(f"Could not persist dismissed pattern '{pattern}': {e}")

    def clear(self) -> None:
        try:
            self.store.pop(self.key, None)
        except OSError as e:
            logger.warning(f"Could not clear dismissed patterns: {e}")


class JsonFileStore(MutableMapping[str, str]):
    """String key-value store persisted as a JSON object in a single file."""

    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except ValueError as e:
            logger.warning(f"Ignoring unreadable store {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Write to a temp file first so a crash never leaves half a file behind
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def __getitem__(self, key: str) -> str:
        return self._read()[key]

    def __setitem__(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def __delitem__(self, key: str) -> None:
        data = self._read()
        del data[key]
        self._write(data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._read())

    def __len__(self) -> int:
        return len(self._read())
