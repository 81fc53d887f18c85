"""Durable ledger of experience points and completed learning items.

One instance is created at startup, ``load()``-ed once, shared by every
screen that completes something, and ``dispose()``-d at shutdown. All
mutation goes through ``mark_complete``.
"""

from __future__ import annotations

import asyncio
import json
from typing import Callable, List, Optional

import structlog

from .errors import EarGymError, PersistenceError
from .models import ProgressRecord
from .storage import KeyValueStorage

logger = structlog.get_logger(__name__)

XP_KEY = "@user_xp"
COMPLETED_KEY = "@completed_lessons"

WarningCallback = Callable[[EarGymError], None]


def _parse_xp(raw: str) -> int:
	xp = int(raw.strip())
	if xp < 0:
		raise ValueError(f"negative xp {xp}")
	return xp


def _parse_completed(raw: str) -> List[str]:
	items = json.loads(raw)
	if not isinstance(items, list) or not all(isinstance(i, str) for i in items):
		raise ValueError("completed items must be a JSON list of strings")
	# keep first occurrence order, drop duplicates
	return list(dict.fromkeys(items))


class ProgressStore:
	def __init__(self, storage: KeyValueStorage, on_warning: Optional[WarningCallback] = None) -> None:
		self._storage = storage
		self._on_warning = on_warning
		self._record = ProgressRecord()
		self._lock = asyncio.Lock()
		self._loaded = False
		self._disposed = False

	@property
	def is_loading(self) -> bool:
		return not self._loaded

	@property
	def xp(self) -> int:
		return self._record.xp

	@property
	def completed_items(self) -> List[str]:
		return list(self._record.completed_items)

	@property
	def record(self) -> ProgressRecord:
		return self._record.model_copy(deep=True)

	def is_completed(self, item_id: str) -> bool:
		return item_id in self._record.completed_items

	async def load(self) -> ProgressRecord:
		"""Read the persisted record. Never raises; bad data yields an empty record.

		Completions requested while the read is in flight wait for it.
		"""
		async with self._lock:
			record = ProgressRecord()
			try:
				raw_xp, raw_items = await asyncio.to_thread(self._read_both)
				if raw_xp is not None:
					record.xp = _parse_xp(raw_xp)
				if raw_items is not None:
					record.completed_items = _parse_completed(raw_items)
			except (PersistenceError, ValueError, RecursionError) as e:
				logger.warning("progress_load_failed", error=str(e))
				record = ProgressRecord()
				self._warn(e if isinstance(e, EarGymError) else PersistenceError(XP_KEY, str(e)))
			self._record = record
			self._loaded = True
		logger.info("progress_loaded", xp=record.xp, completed=len(record.completed_items))
		return self.record

	def _read_both(self):
		return self._storage.get(XP_KEY), self._storage.get(COMPLETED_KEY)

	def _write_both(self, xp: int, items: List[str]) -> None:
		# items before xp: a partial write may lose xp but never pays an item twice
		self._storage.set(COMPLETED_KEY, json.dumps(items))
		self._storage.set(XP_KEY, str(xp))

	async def mark_complete(self, item_id: str, earned_xp: int) -> bool:
		"""Credit ``earned_xp`` for ``item_id`` once.

		Returns False if the item was already completed. Memory is updated
		before the durable write; a write that still fails after one retry
		is reported as a warning and the in-memory update is kept.
		"""
		if earned_xp < 0:
			raise ValueError("earned_xp must be >= 0")
		if self._disposed:
			raise RuntimeError("ProgressStore has been disposed")
		async with self._lock:
			if not self._loaded:
				raise RuntimeError("ProgressStore.load() must run before mark_complete")
			if item_id in self._record.completed_items:
				logger.debug("progress_already_complete", item_id=item_id)
				return False
			self._record = ProgressRecord(
				xp=self._record.xp + earned_xp,
				completed_items=[*self._record.completed_items, item_id],
			)
			snapshot = self.record
			await self._persist(snapshot)
		logger.info("progress_item_completed", item_id=item_id, earned_xp=earned_xp, xp=snapshot.xp)
		return True

	async def _persist(self, snapshot: ProgressRecord) -> None:
		for attempt in (1, 2):
			try:
				await asyncio.to_thread(self._write_both, snapshot.xp, snapshot.completed_items)
				return
			except PersistenceError as e:
				logger.warning("progress_write_failed", attempt=attempt, key=e.key, error=e.message)
				if attempt == 2:
					self._warn(e)

	def _warn(self, err: EarGymError) -> None:
		if self._on_warning is not None:
			self._on_warning(err)

	async def dispose(self) -> None:
		# wait for an in-flight write before refusing further mutation
		async with self._lock:
			self._disposed = True
		logger.debug("progress_disposed")
