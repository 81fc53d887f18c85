from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Pitch(BaseModel):
	model_config = ConfigDict(frozen=True)

	index: int = Field(ge=0)
	name: str
	clip_id: str


class Interval(BaseModel):
	model_config = ConfigDict(frozen=True)

	name: str
	semitones: int = Field(gt=0)


class Question(BaseModel):
	model_config = ConfigDict(frozen=True)

	root_index: int = Field(ge=0)
	interval: Interval
	options: Tuple[str, ...]
	answer: str

	@model_validator(mode="after")
	def _answer_is_offered(self) -> "Question":
		if self.answer != self.interval.name:
			raise ValueError("answer must be the interval name")
		if self.answer not in self.options:
			raise ValueError("answer must be one of the options")
		return self

	@property
	def target_index(self) -> int:
		return self.root_index + self.interval.semitones

	def clip_pair(self, palette: Sequence[Pitch]) -> Tuple[str, str]:
		"""Clip ids for (root, target) in the given palette."""
		return palette[self.root_index].clip_id, palette[self.target_index].clip_id


class GuessState(BaseModel):
	has_guessed: bool = False
	selected_answer: Optional[str] = None


class SessionState(BaseModel):
	score: int = Field(default=0, ge=0)
	streak: int = Field(default=0, ge=0)
	question_index: int = Field(default=0, ge=0)
	total_questions: int = Field(default=10, ge=1)
	is_over: bool = False


class SessionSummary(BaseModel):
	item_id: str
	score: int
	answered: int
	correct: int
	best_streak: int


class ProgressRecord(BaseModel):
	xp: int = Field(default=0, ge=0)
	completed_items: List[str] = Field(default_factory=list)
