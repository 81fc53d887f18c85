import asyncio
from typing import List, Set

import pytest

from eargym.errors import PlaybackError
from eargym.playback import AudioResourceManager
from eargym.progress import ProgressStore
from eargym.storage import MemoryStorage


class FakePlayable:
	def __init__(self, clip_id: str) -> None:
		self.clip_id = clip_id
		self.release_count = 0


class FakeBackend:
	"""Records every fetch/start/release; clip ids in ``fail``/``fail_start`` raise."""

	def __init__(self) -> None:
		self.fail: Set[str] = set()
		self.fail_start: Set[str] = set()
		self.fetched: List[str] = []
		self.started: List[str] = []
		self.start_times: List[float] = []
		self.playables: List[FakePlayable] = []

	async def fetch_and_decode(self, clip_id: str) -> FakePlayable:
		self.fetched.append(clip_id)
		await asyncio.sleep(0)
		if clip_id in self.fail:
			raise PlaybackError(clip_id, "decode failed")
		p = FakePlayable(clip_id)
		self.playables.append(p)
		return p

	def start(self, playable: FakePlayable) -> None:
		if playable.clip_id in self.fail_start:
			raise RuntimeError("no output device")
		self.started.append(playable.clip_id)
		self.start_times.append(asyncio.get_running_loop().time())

	def release(self, playable: FakePlayable) -> None:
		playable.release_count += 1

	@property
	def live(self) -> List[FakePlayable]:
		return [p for p in self.playables if p.release_count == 0]


@pytest.fixture
def backend() -> FakeBackend:
	return FakeBackend()


@pytest.fixture
def audio(backend: FakeBackend) -> AudioResourceManager:
	return AudioResourceManager(backend, gap_ms=10, release_after_ms=30)


@pytest.fixture
def storage() -> MemoryStorage:
	return MemoryStorage()


@pytest.fixture
def progress(storage: MemoryStorage) -> ProgressStore:
	return ProgressStore(storage)
