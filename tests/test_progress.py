import asyncio
import json

import pytest

from eargym.errors import PersistenceError
from eargym.progress import COMPLETED_KEY, XP_KEY, ProgressStore
from eargym.storage import JsonFileStorage, MemoryStorage


@pytest.mark.asyncio
async def test_first_launch_starts_empty(progress):
	assert progress.is_loading
	record = await progress.load()
	assert not progress.is_loading
	assert record.xp == 0
	assert record.completed_items == []


@pytest.mark.asyncio
async def test_mark_complete_is_idempotent(progress, storage):
	await progress.load()
	assert await progress.mark_complete("l_02", 50) is True
	assert progress.xp == 50
	assert progress.completed_items == ["l_02"]

	assert await progress.mark_complete("l_02", 50) is False
	assert progress.xp == 50
	assert progress.completed_items == ["l_02"]
	assert storage.data == {XP_KEY: "50", COMPLETED_KEY: '["l_02"]'}


@pytest.mark.asyncio
async def test_concurrent_completions_are_serialized(progress):
	await progress.load()
	results = await asyncio.gather(*(progress.mark_complete("th_01", 30) for _ in range(5)))
	assert results.count(True) == 1
	assert progress.xp == 30

	await asyncio.gather(*(progress.mark_complete(f"l_{i:02d}", 10) for i in range(5)))
	assert progress.xp == 80
	assert len(progress.completed_items) == 6


@pytest.mark.asyncio
async def test_round_trip_through_fresh_store(tmp_path):
	path = tmp_path / "data.json"
	first = ProgressStore(JsonFileStorage(path))
	await first.load()
	await first.mark_complete("l_01", 40)
	await first.mark_complete("interval-session-abc", 180)
	await first.dispose()

	second = ProgressStore(JsonFileStorage(path))
	record = await second.load()
	assert record == first.record
	assert record.xp == 220
	assert record.completed_items == ["l_01", "interval-session-abc"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
	"xp_raw, items_raw",
	[
		("abc", None),
		("-5", None),
		("10", "{not json"),
		("10", '{"l_01": true}'),
		("10", "[1, 2]"),
		("10", "[" * 100000 + "]" * 100000),
	],
)
async def test_malformed_data_falls_back_to_empty(xp_raw, items_raw):
	data = {XP_KEY: xp_raw}
	if items_raw is not None:
		data[COMPLETED_KEY] = items_raw
	warnings = []
	store = ProgressStore(MemoryStorage(data), on_warning=warnings.append)
	record = await store.load()
	assert record.xp == 0
	assert record.completed_items == []
	assert len(warnings) == 1


@pytest.mark.asyncio
async def test_corrupt_file_does_not_crash_startup(tmp_path):
	path = tmp_path / "data.json"
	path.write_text("]]garbage")
	store = ProgressStore(JsonFileStorage(path))
	record = await store.load()
	assert record.xp == 0

	nested = tmp_path / "nested.json"
	nested.write_text("[" * 100000 + "]" * 100000)
	assert (await ProgressStore(JsonFileStorage(nested)).load()).xp == 0

	# the next completion rewrites a readable file
	await store.mark_complete("l_01", 5)
	assert json.loads(path.read_text())[XP_KEY] == "5"


@pytest.mark.asyncio
async def test_write_failure_keeps_memory_update_and_warns(storage):
	warnings = []
	store = ProgressStore(storage, on_warning=warnings.append)
	await store.load()
	storage.fail_sets.add(XP_KEY)

	assert await store.mark_complete("l_03", 25) is True
	assert store.xp == 25
	assert store.is_completed("l_03")
	assert storage.set_calls == 4
	assert len(warnings) == 1
	assert isinstance(warnings[0], PersistenceError)
	assert warnings[0].key == XP_KEY


@pytest.mark.asyncio
async def test_write_retried_once(storage):
	store = ProgressStore(storage)
	await store.load()
	calls = {"n": 0}
	real_set = storage.set

	def flaky_set(key, value):
		calls["n"] += 1
		if calls["n"] == 1:
			raise PersistenceError(key, "busy")
		real_set(key, value)

	storage.set = flaky_set
	await store.mark_complete("l_04", 15)
	assert storage.data[XP_KEY] == "15"
	assert storage.data[COMPLETED_KEY] == '["l_04"]'


@pytest.mark.asyncio
async def test_negative_xp_and_disposed_store_rejected(progress):
	await progress.load()
	with pytest.raises(ValueError):
		await progress.mark_complete("l_05", -1)
	await progress.dispose()
	with pytest.raises(RuntimeError):
		await progress.mark_complete("l_05", 10)


@pytest.mark.asyncio
async def test_duplicate_ids_in_storage_are_collapsed():
	store = ProgressStore(MemoryStorage({XP_KEY: "70", COMPLETED_KEY: '["a", "b", "a"]'}))
	record = await store.load()
	assert record.xp == 70
	assert record.completed_items == ["a", "b"]


@pytest.mark.asyncio
async def test_failed_list_write_never_pays_twice_after_restart(storage):
	store = ProgressStore(storage)
	await store.load()
	storage.fail_sets.add(COMPLETED_KEY)
	await store.mark_complete("l_02", 50)
	assert XP_KEY not in storage.data

	storage.fail_sets.clear()
	restarted = ProgressStore(storage)
	await restarted.load()
	await restarted.mark_complete("l_02", 50)
	assert restarted.record.xp == 50
	assert restarted.completed_items == ["l_02"]


@pytest.mark.asyncio
async def test_completion_during_load_is_kept():
	store = ProgressStore(MemoryStorage({XP_KEY: "5", COMPLETED_KEY: '["l_01"]'}))
	await asyncio.gather(store.load(), store.mark_complete("l_02", 10))
	assert store.xp == 15
	assert store.completed_items == ["l_01", "l_02"]


@pytest.mark.asyncio
async def test_completion_before_load_rejected(progress):
	with pytest.raises(RuntimeError):
		await progress.mark_complete("l_01", 10)
	assert progress.xp == 0
