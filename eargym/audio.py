SR = 44100

import asyncio
import io
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, cast

import numpy as np
import numpy.typing as npt
import requests
import soundfile as sf
import structlog

from .errors import PlaybackError
from .theory import clip_note_name, midi_to_freq, note_to_midi

logger = structlog.get_logger(__name__)


def tone(freq: float, dur: float, waveform: str = "sine") -> npt.NDArray[np.float32]:
	"""Generate a single tone with a simple attack/release envelope.

	Args:
		freq: Frequency in Hz
		dur: Duration in seconds
		waveform: One of {"sine","triangle","saw"}
	"""
	t = np.linspace(0.0, dur, int(SR * dur), endpoint=False, dtype=np.float32)
	omega = 2.0 * np.pi * freq
	if waveform == "sine":
		x = np.sin(omega * t).astype(np.float32)
	elif waveform == "triangle":
		x = ((2.0 / np.pi) * np.arcsin(np.sin(omega * t))).astype(np.float32)
	else:
		phase = (freq * t).astype(np.float32)
		x = (2.0 * (phase - np.floor(phase + 0.5))).astype(np.float32)

	# 5ms attack, 50ms release
	attack = int(0.005 * SR)
	release = int(0.050 * SR)
	env = np.ones_like(x, dtype=np.float32)
	if attack > 0:
		env[:attack] = np.linspace(0.0, 1.0, attack, endpoint=False, dtype=np.float32)
	if release > 0:
		env[-release:] = np.linspace(1.0, 0.0, release, endpoint=False, dtype=np.float32)

	y = (x * env).astype(np.float32)
	return cast(npt.NDArray[np.float32], y)


def decode(data: bytes) -> tuple:
	"""Decode an encoded clip into mono float32 samples and its sample rate."""
	samples, sr = sf.read(io.BytesIO(data), dtype="float32")
	if samples.ndim == 2:
		samples = samples.mean(axis=1).astype(np.float32)
	return samples, int(sr)


@dataclass(eq=False)
class Clip:
	"""A decoded clip plus the output stream playing it, if started."""

	clip_id: str
	samples: npt.NDArray[np.float32] = field(repr=False)
	samplerate: int = SR
	stream: Any = field(default=None, repr=False)
	position: int = 0

	def fill(self, outdata: Any, frames: int) -> bool:
		"""Copy the next ``frames`` samples into ``outdata``; False once exhausted."""
		chunk = self.samples[self.position:self.position + frames]
		n = len(chunk)
		outdata[:n, 0] = chunk
		if n < frames:
			outdata[n:, 0] = 0.0
		self.position += n
		return n == frames


class _StreamingOutput:
	"""Plays each clip on its own sounddevice output stream so tones can overlap."""

	def __init__(self, volume: float = 0.9) -> None:
		self.volume = volume

	def start(self, clip: Clip) -> None:
		import sounddevice as sd

		samples = clip.samples * self.volume
		clip.samples = samples.astype(np.float32)

		def callback(outdata, frames, time_info, status) -> None:
			if not clip.fill(outdata, frames):
				raise sd.CallbackStop()

		clip.stream = sd.OutputStream(samplerate=clip.samplerate, channels=1, dtype="float32", callback=callback)
		clip.stream.start()

	def release(self, clip: Clip) -> None:
		stream, clip.stream = clip.stream, None
		if stream is None:
			return
		try:
			stream.stop()
		finally:
			stream.close()


class StreamingClipBackend(_StreamingOutput):
	"""Downloads clips over HTTP and decodes them with soundfile."""

	def __init__(self, timeout: float = 10.0, volume: float = 0.9, session: Optional[requests.Session] = None) -> None:
		super().__init__(volume=volume)
		self.timeout = timeout
		self._http = session or requests.Session()
		self._cache: Dict[str, tuple] = {}

	def _download(self, clip_id: str) -> bytes:
		response = self._http.get(clip_id, timeout=self.timeout)
		response.raise_for_status()
		return response.content

	async def fetch_and_decode(self, clip_id: str) -> Clip:
		cached = self._cache.get(clip_id)
		if cached is None:
			try:
				raw = await asyncio.to_thread(self._download, clip_id)
				cached = await asyncio.to_thread(decode, raw)
			except (requests.RequestException, RuntimeError) as e:
				logger.warning("clip_fetch_failed", clip_id=clip_id, error=str(e))
				raise PlaybackError(clip_id, str(e)) from e
			self._cache[clip_id] = cached
		samples, sr = cached
		return Clip(clip_id=clip_id, samples=samples, samplerate=sr)


class SynthClipBackend(_StreamingOutput):
	"""Offline backend that renders the clip's note name as a synthesized tone."""

	def __init__(self, dur: float = 1.5, waveform: str = "triangle", volume: float = 0.9) -> None:
		super().__init__(volume=volume)
		self.dur = dur
		self.waveform = waveform

	async def fetch_and_decode(self, clip_id: str) -> Clip:
		try:
			midi = note_to_midi(clip_note_name(clip_id))
		except ValueError as e:
			raise PlaybackError(clip_id, str(e)) from e
		samples = tone(midi_to_freq(midi), self.dur, self.waveform)
		return Clip(clip_id=clip_id, samples=samples, samplerate=SR)
