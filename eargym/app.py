"""Wiring of the engine's services from Settings, for the screens that host them."""

from __future__ import annotations

import random
from typing import Callable, Optional

from .audio import StreamingClipBackend
from .config import Settings, configure_logging, get_settings
from .errors import EarGymError
from .playback import AudioResourceManager, ClipBackend
from .progress import ProgressStore
from .session import QuizSession
from .storage import JsonFileStorage, KeyValueStorage
from .theory import INTERVALS, build_palette


async def start_progress_store(
	settings: Optional[Settings] = None,
	storage: Optional[KeyValueStorage] = None,
	on_warning: Optional[Callable[[EarGymError], None]] = None,
) -> ProgressStore:
	"""Create the process-wide progress store and load it."""
	settings = settings or get_settings()
	store = ProgressStore(storage or JsonFileStorage(settings.data_path), on_warning=on_warning)
	await store.load()
	return store


def default_backend(settings: Settings) -> ClipBackend:
	return StreamingClipBackend(timeout=settings.FETCH_TIMEOUT_S)


def new_interval_session(
	progress: Optional[ProgressStore],
	settings: Optional[Settings] = None,
	backend: Optional[ClipBackend] = None,
	rng: Optional[random.Random] = None,
	on_warning: Optional[Callable[[EarGymError], None]] = None,
) -> QuizSession:
	settings = settings or get_settings()
	audio = AudioResourceManager(
		backend or default_backend(settings),
		gap_ms=settings.NOTE_GAP_MS,
		release_after_ms=settings.RELEASE_AFTER_MS,
	)
	return QuizSession(
		audio,
		progress=progress,
		total_questions=settings.TOTAL_QUESTIONS,
		settle_delay_ms=settings.SETTLE_DELAY_MS,
		rng=rng,
		intervals=INTERVALS,
		palette=build_palette(settings.CLIP_BASE_URL),
		on_warning=on_warning,
	)


def init(settings: Optional[Settings] = None) -> Settings:
	settings = settings or get_settings()
	configure_logging(settings.ENVIRONMENT)
	return settings
