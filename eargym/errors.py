"""Error types shared by the ear-training engine and the progress store."""

from __future__ import annotations

from typing import Optional


class EarGymError(Exception):
	"""Base exception for all eargym errors."""

	def __init__(self, message: str) -> None:
		self.message = message
		super().__init__(self.message)


class PlaybackError(EarGymError):
	"""A clip could not be fetched, decoded or started. Retryable."""

	def __init__(self, clip_id: str, reason: Optional[str] = None) -> None:
		self.clip_id = clip_id
		msg = f"Could not play clip {clip_id}"
		if reason:
			msg = f"{msg}: {reason}"
		super().__init__(msg)


class PersistenceError(EarGymError):
	"""Durable storage read or write failed."""

	def __init__(self, key: str, reason: Optional[str] = None) -> None:
		self.key = key
		msg = f"Storage access failed for {key}"
		if reason:
			msg = f"{msg}: {reason}"
		super().__init__(msg)


class InvariantViolation(EarGymError):
	"""The interval catalog and pitch palette do not fit together."""
