"""One interval-recognition quiz run, from the first question to the limit."""

from __future__ import annotations

import asyncio
import enum
import random
import uuid
from typing import Callable, List, Optional, Sequence

import structlog

from .errors import EarGymError, PersistenceError, PlaybackError
from .models import GuessState, Interval, Pitch, Question, SessionState, SessionSummary
from .playback import AudioResourceManager
from .progress import ProgressStore
from .theory import INTERVALS, PALETTE, validate_catalog
from .trainer import award_xp, generate_question

logger = structlog.get_logger(__name__)

DEFAULT_TOTAL_QUESTIONS = 10
DEFAULT_SETTLE_DELAY_MS = 500
HOT_STREAK = 3


class Phase(str, enum.Enum):
	PLAYING = "playing"
	ANSWERED = "answered"
	OVER = "over"


class QuizSession:
	def __init__(
		self,
		audio: AudioResourceManager,
		progress: Optional[ProgressStore] = None,
		total_questions: int = DEFAULT_TOTAL_QUESTIONS,
		settle_delay_ms: int = DEFAULT_SETTLE_DELAY_MS,
		rng: Optional[random.Random] = None,
		intervals: Sequence[Interval] = INTERVALS,
		palette: Sequence[Pitch] = PALETTE,
		item_id: Optional[str] = None,
		on_warning: Optional[Callable[[EarGymError], None]] = None,
	) -> None:
		validate_catalog(intervals, palette)
		self.audio = audio
		self.progress = progress
		self.settle_delay_ms = settle_delay_ms
		self.rng = rng or random.Random()
		self.intervals = tuple(intervals)
		self.palette = tuple(palette)
		self.item_id = item_id or f"interval-session-{uuid.uuid4().hex}"
		self.on_warning = on_warning
		self.warnings: List[EarGymError] = []

		self._state = SessionState(total_questions=total_questions)
		self._guess = GuessState()
		self._question: Optional[Question] = None
		self._cue_task: Optional[asyncio.Task] = None
		self._answered = 0
		self._correct = 0
		self._best_streak = 0

	# read-only views

	@property
	def question(self) -> Question:
		if self._question is None:
			raise RuntimeError("Session has not been started")
		return self._question

	@property
	def guess(self) -> GuessState:
		return self._guess.model_copy()

	@property
	def state(self) -> SessionState:
		return self._state.model_copy()

	@property
	def phase(self) -> Phase:
		if self._state.is_over:
			return Phase.OVER
		return Phase.ANSWERED if self._guess.has_guessed else Phase.PLAYING

	@property
	def is_correct(self) -> Optional[bool]:
		if not self._guess.has_guessed or self._question is None:
			return None
		return self._guess.selected_answer == self._question.answer

	@property
	def is_hot_streak(self) -> bool:
		return self._state.streak >= HOT_STREAK

	@property
	def progress_fraction(self) -> float:
		return self._state.question_index / self._state.total_questions

	# transitions

	def start(self) -> Question:
		"""Show the first question. Must be called from a running event loop."""
		if self._question is not None:
			raise RuntimeError("Session already started")
		asyncio.get_running_loop()
		self._next_question()
		logger.info("session_started", item_id=self.item_id, total_questions=self._state.total_questions)
		return self.question

	def submit_guess(self, answer: str) -> bool:
		"""Score ``answer`` for the current question. Only the first guess counts."""
		if self._state.is_over or self._question is None or self._guess.has_guessed:
			return False
		self._guess = GuessState(has_guessed=True, selected_answer=answer)
		self._answered += 1
		if answer == self._question.answer:
			earned = award_xp(self._state.streak)
			self._state.streak += 1
			self._state.score += earned
			self._correct += 1
			self._best_streak = max(self._best_streak, self._state.streak)
			logger.debug("guess_correct", earned=earned, streak=self._state.streak, score=self._state.score)
		else:
			self._state.streak = 0
			logger.debug("guess_wrong", answer=answer, expected=self._question.answer)
		return True

	async def advance(self) -> Phase:
		if self._state.is_over:
			return Phase.OVER
		if not self._guess.has_guessed:
			raise RuntimeError("advance() called before a guess was submitted")
		if self._state.question_index + 1 >= self._state.total_questions:
			await self._finish()
			return Phase.OVER
		self._state.question_index += 1
		self._next_question()
		return Phase.PLAYING

	async def replay(self) -> bool:
		"""Play the current question again. False if busy, failed or over."""
		if self._state.is_over or self._question is None:
			return False
		return await self._play_current()

	async def close(self) -> None:
		if self._cue_task is not None:
			self._cue_task.cancel()
			self._cue_task = None
		self.audio.release_all()

	def summary(self) -> SessionSummary:
		return SessionSummary(
			item_id=self.item_id,
			score=self._state.score,
			answered=self._answered,
			correct=self._correct,
			best_streak=self._best_streak,
		)

	# internals

	def _next_question(self) -> None:
		if self._question is not None:
			# the previous question's tones are discarded with it
			self.audio.release_all()
		self._question = generate_question(self.rng, self.intervals, self.palette)
		self._guess = GuessState()
		self._cue_audio()

	def _cue_audio(self) -> None:
		if self._cue_task is not None:
			self._cue_task.cancel()
		self._cue_task = asyncio.get_running_loop().create_task(self._delayed_play())
		self._cue_task.add_done_callback(self._cue_done)

	def _cue_done(self, task: asyncio.Task) -> None:
		if task.cancelled():
			return
		exc = task.exception()
		if exc is not None:
			logger.error("audio_cue_failed", item_id=self.item_id, error=str(exc), exc_info=exc)

	async def _delayed_play(self) -> None:
		await asyncio.sleep(self.settle_delay_ms / 1000.0)
		await self._play_current()

	async def _play_current(self) -> bool:
		root, target = self.question.clip_pair(self.palette)
		try:
			return await self.audio.play_sequence(root, target)
		except PlaybackError as e:
			self._warn(e)
			return False

	async def _finish(self) -> None:
		self._state.is_over = True
		await self.close()
		logger.info("session_over", item_id=self.item_id, score=self._state.score, correct=self._correct)
		if self.progress is None:
			return
		try:
			await self.progress.mark_complete(self.item_id, self._state.score)
		except (PersistenceError, RuntimeError) as e:
			self._warn(e if isinstance(e, EarGymError) else PersistenceError(self.item_id, str(e)))

	def _warn(self, err: EarGymError) -> None:
		logger.warning("session_warning", item_id=self.item_id, error=err.message)
		self.warnings.append(err)
		if self.on_warning is not None:
			self.on_warning(err)
