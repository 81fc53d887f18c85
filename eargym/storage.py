from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Set

from .errors import PersistenceError


class KeyValueStorage(Protocol):
	def get(self, key: str) -> Optional[str]: ...

	def set(self, key: str, value: str) -> None: ...


def default_data_path() -> Path:
	return Path.home() / ".eargym" / "data.json"


class JsonFileStorage:
	"""String key-value pairs kept in a single JSON object file."""

	def __init__(self, path: Optional[Path] = None) -> None:
		self.path = Path(path) if path is not None else default_data_path()
		self._lock = threading.Lock()

	def _load_raw(self, key: str) -> Dict[str, Any]:
		if not self.path.exists():
			return {}
		try:
			data = json.loads(self.path.read_text(encoding="utf-8"))
		except (OSError, ValueError, RecursionError) as e:
			raise PersistenceError(key, str(e)) from e
		if not isinstance(data, dict):
			raise PersistenceError(key, f"{self.path} does not hold a JSON object")
		return data

	def _save_raw(self, key: str, data: Dict[str, Any]) -> None:
		try:
			self.path.parent.mkdir(parents=True, exist_ok=True)
			fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".data-", suffix=".json")
			try:
				with os.fdopen(fd, "w", encoding="utf-8") as f:
					json.dump(data, f, indent=2)
				os.replace(tmp, self.path)
			except BaseException:
				Path(tmp).unlink(missing_ok=True)
				raise
		except OSError as e:
			raise PersistenceError(key, str(e)) from e

	def get(self, key: str) -> Optional[str]:
		with self._lock:
			value = self._load_raw(key).get(key)
		if value is None:
			return None
		if not isinstance(value, str):
			raise PersistenceError(key, f"expected a string, found {type(value).__name__}")
		return value

	def set(self, key: str, value: str) -> None:
		with self._lock:
			try:
				raw = self._load_raw(key)
			except PersistenceError:
				# unreadable file: start over rather than refusing every write
				raw = {}
			raw[key] = value
			self._save_raw(key, raw)


class MemoryStorage:
	"""In-process storage; ``fail_gets``/``fail_sets`` name keys that raise."""

	def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
		self.data: Dict[str, str] = dict(initial or {})
		self.fail_gets: Set[str] = set()
		self.fail_sets: Set[str] = set()
		self.set_calls = 0

	def get(self, key: str) -> Optional[str]:
		if key in self.fail_gets:
			raise PersistenceError(key, "read failure")
		return self.data.get(key)

	def set(self, key: str, value: str) -> None:
		self.set_calls += 1
		if key in self.fail_sets:
			raise PersistenceError(key, "write failure")
		self.data[key] = value
