from __future__ import annotations

import random
from typing import Optional, Sequence

from .errors import InvariantViolation
from .models import Interval, Pitch, Question
from .theory import INTERVALS, PALETTE, interval_names, max_root_index

BASE_XP = 10
STREAK_BONUS_XP = 20
STREAK_BONUS_THRESHOLD = 2

_default_rng = random.Random()


def award_xp(streak: int) -> int:
	"""XP for a correct answer given the streak before it is incremented."""
	return STREAK_BONUS_XP if streak >= STREAK_BONUS_THRESHOLD else BASE_XP


def generate_question(
	rng: Optional[random.Random] = None,
	intervals: Sequence[Interval] = INTERVALS,
	palette: Sequence[Pitch] = PALETTE,
) -> Question:
	"""Pick an interval and a root that keeps the target inside the palette.

	Every catalog interval is offered as an option, shuffled.
	"""
	if not intervals:
		raise InvariantViolation("Interval catalog is empty")
	rng = rng or _default_rng
	interval = rng.choice(list(intervals))
	max_root = max_root_index(interval, len(palette))
	if max_root < 0:
		raise InvariantViolation(f"No valid root for {interval.name} in a {len(palette)}-pitch palette")
	root = rng.randint(0, max_root)
	names = interval_names(intervals)
	options = rng.sample(names, k=len(names))
	return Question(
		root_index=root,
		interval=interval,
		options=tuple(options),
		answer=interval.name,
	)
