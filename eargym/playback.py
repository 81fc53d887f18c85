"""Ownership of live audio clips.

The manager is the only component that holds decoded clips. Every clip
it starts is tracked until released, and every timer it schedules is
an asyncio task it can cancel, so ``release_all()`` leaves nothing
behind when the owning screen goes away.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Iterable, List, Optional, Protocol, Set

import structlog

from .errors import PlaybackError

logger = structlog.get_logger(__name__)

DEFAULT_GAP_MS = 600
DEFAULT_RELEASE_AFTER_MS = 2000


class ClipBackend(Protocol):
	async def fetch_and_decode(self, clip_id: str) -> Any: ...

	def start(self, playable: Any) -> None: ...

	def release(self, playable: Any) -> None: ...


_handle_ids = count(1)


@dataclass(eq=False)
class ClipHandle:
	clip_id: str
	playable: Any = field(repr=False)
	id: int = field(default_factory=lambda: next(_handle_ids))
	released: bool = False


class AudioResourceManager:
	def __init__(
		self,
		backend: ClipBackend,
		gap_ms: int = DEFAULT_GAP_MS,
		release_after_ms: int = DEFAULT_RELEASE_AFTER_MS,
	) -> None:
		if release_after_ms < 0:
			raise ValueError("release_after_ms must be >= 0")
		self.backend = backend
		self.gap_ms = gap_ms
		self.release_after_ms = release_after_ms
		self._handles: Set[ClipHandle] = set()
		self._tasks: Set[asyncio.Task] = set()
		self._busy = False
		self._generation = 0

	@property
	def is_busy(self) -> bool:
		return self._busy

	@property
	def active_handles(self) -> int:
		return len(self._handles)

	async def __aenter__(self) -> "AudioResourceManager":
		return self

	async def __aexit__(self, *exc: object) -> None:
		self.release_all()

	async def _acquire(self, clip_id: str) -> ClipHandle:
		try:
			playable = await self.backend.fetch_and_decode(clip_id)
		except PlaybackError:
			raise
		except Exception as e:
			raise PlaybackError(clip_id, str(e)) from e
		handle = ClipHandle(clip_id=clip_id, playable=playable)
		self._handles.add(handle)
		try:
			self.backend.start(playable)
		except Exception as e:
			self.release(handle)
			raise PlaybackError(clip_id, str(e)) from e
		return handle

	async def play(self, clip_id: str) -> ClipHandle:
		"""Start one clip; it is released automatically after ``release_after_ms``."""
		handle = await self._acquire(clip_id)
		self._schedule_release([handle], on_done=None)
		return handle

	async def play_sequence(self, first: str, second: str, gap_ms: Optional[int] = None) -> bool:
		"""Play ``first``, wait ``gap_ms`` from its start, then play ``second``.

		Returns False when another sequence is still in flight or when
		teardown cancelled this one. Raises PlaybackError if either clip
		fails; whatever was already started is released first.
		"""
		if self._busy:
			logger.debug("audio_sequence_rejected", first=first, second=second)
			return False
		self._busy = True
		generation = self._generation
		gap = self.gap_ms if gap_ms is None else gap_ms
		task = asyncio.ensure_future(self._run_sequence(first, second, gap, generation))
		self._track(task)
		try:
			return await task
		except asyncio.CancelledError:
			if generation != self._generation:
				return False
			raise

	async def _run_sequence(self, first: str, second: str, gap_ms: int, generation: int) -> bool:
		acquired: List[ClipHandle] = []
		try:
			acquired.append(await self._acquire(first))
			await asyncio.sleep(gap_ms / 1000.0)
			acquired.append(await self._acquire(second))
		except BaseException as e:
			for h in acquired:
				self.release(h)
			if generation == self._generation:
				self._busy = False
			if isinstance(e, PlaybackError):
				logger.warning("audio_sequence_failed", clip_id=e.clip_id, error=e.message)
			raise
		self._schedule_release(acquired, on_done=self._sequence_finished)
		return True

	def _sequence_finished(self) -> None:
		self._busy = False

	def _schedule_release(self, handles: Iterable[ClipHandle], on_done) -> None:
		handles = list(handles)

		async def release_later() -> None:
			await asyncio.sleep(self.release_after_ms / 1000.0)
			for h in handles:
				self.release(h)
			if on_done is not None:
				on_done()

		self._track(asyncio.ensure_future(release_later()))

	def _track(self, task: asyncio.Task) -> None:
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)

	def release(self, handle: ClipHandle) -> None:
		if handle.released:
			return
		handle.released = True
		self._handles.discard(handle)
		try:
			self.backend.release(handle.playable)
		except Exception as e:
			logger.warning("audio_release_failed", clip_id=handle.clip_id, error=str(e))

	def release_all(self) -> None:
		"""Cancel pending timers and release every outstanding clip."""
		self._generation += 1
		pending = list(self._tasks)
		for task in pending:
			task.cancel()
		self._tasks.clear()
		for h in list(self._handles):
			self.release(h)
		self._busy = False
		if pending or self._handles:
			logger.debug("audio_released_all", cancelled=len(pending))
