from __future__ import annotations

import re
from typing import List, Sequence, Tuple

from .errors import InvariantViolation
from .models import Interval, Pitch

INTERVALS: Tuple[Interval, ...] = (
	Interval(name="Minor 2nd", semitones=1),
	Interval(name="Major 3rd", semitones=4),
	Interval(name="Perfect 4th", semitones=5),
	Interval(name="Perfect 5th", semitones=7),
)

A4_MIDI = 69
A4_FREQ = 440.0

DEFAULT_CLIP_BASE_URL = "https://gleitz.github.io/midi-js-soundfonts/FluidR3_GM/acoustic_grand_piano-mp3/"

# C4 up to C5, flats spelled the way the soundfont names its files
PALETTE_NOTES: Tuple[str, ...] = (
	"C4", "Db4", "D4", "Eb4", "E4", "F4", "Gb4", "G4", "Ab4", "A4", "Bb4", "B4", "C5",
)

_PITCH_CLASS = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}
_NOTE_RE = re.compile(r"^([A-G])(b|#)?(-?\d+)$")


def build_palette(base_url: str = DEFAULT_CLIP_BASE_URL, notes: Sequence[str] = PALETTE_NOTES) -> Tuple[Pitch, ...]:
	base = base_url if base_url.endswith("/") else base_url + "/"
	return tuple(Pitch(index=i, name=n, clip_id=f"{base}{n}.mp3") for i, n in enumerate(notes))


PALETTE: Tuple[Pitch, ...] = build_palette()


def interval_names(intervals: Sequence[Interval] = INTERVALS) -> List[str]:
	return [i.name for i in intervals]


def interval_by_name(name: str, intervals: Sequence[Interval] = INTERVALS) -> Interval:
	for i in intervals:
		if i.name == name:
			return i
	raise KeyError(name)


def note_to_midi(note: str) -> int:
	"""Convert a note name such as ``Db4`` or ``C#5`` to a MIDI number (C4 = 60)."""
	m = _NOTE_RE.match(note)
	if m is None:
		raise ValueError(f"Not a note name: {note!r}")
	letter, accidental, octave = m.groups()
	pc = _PITCH_CLASS[letter]
	if accidental == "b":
		pc -= 1
	elif accidental == "#":
		pc += 1
	return (int(octave) + 1) * 12 + pc


def clip_note_name(clip_id: str) -> str:
	"""Note name a clip id refers to, e.g. ``.../Db4.mp3`` -> ``Db4``."""
	stem = clip_id.rstrip("/").rsplit("/", 1)[-1]
	return stem.split(".", 1)[0]


def midi_to_freq(m: int) -> float:
	return float(A4_FREQ * (2.0 ** ((m - A4_MIDI) / 12.0)))


def max_root_index(interval: Interval, palette_size: int) -> int:
	return palette_size - 1 - interval.semitones


def validate_catalog(intervals: Sequence[Interval] = INTERVALS, palette: Sequence[Pitch] = PALETTE) -> None:
	"""Raise InvariantViolation if some interval cannot fit in the palette."""
	if not intervals:
		raise InvariantViolation("Interval catalog is empty")
	names = interval_names(intervals)
	if len(set(names)) != len(names):
		raise InvariantViolation("Interval names must be unique")
	for i in intervals:
		if max_root_index(i, len(palette)) < 0:
			raise InvariantViolation(
				f"{i.name} spans {i.semitones} semitones but the palette only has {len(palette)} pitches"
			)
