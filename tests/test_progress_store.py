import json

import pytest

import progress_store


class TickingClock:
    def __init__(self, start: int = 1_700_000_000_000, step: int = 1000):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now


class BrokenStore:
    def get(self, key):
        raise OSError("storage unavailable")

    def set(self, key, value):
        raise OSError("storage unavailable")

    def remove(self, key):
        raise OSError("storage unavailable")

    def keys(self):
        return []


class ErrorLog:
    def __init__(self):
        self.entries = []

    def __call__(self, label, exc=None):
        self.entries.append((label, exc))


def _tracker(store, scope="en_tr.forward.all", clock=None, on_error=None):
    return progress_store.PerformanceTracker(store, scope, clock=clock or TickingClock(), on_error=on_error)


def test_record_outcome_counts_mistakes():
    tracker = _tracker(progress_store.MemoryStore())
    for _ in range(3):
        tracker.record_outcome(1, False)
    for _ in range(2):
        tracker.record_outcome(1, True)
    assert tracker.get(1)["mistakes"] == 1


def test_mistakes_never_negative():
    tracker = _tracker(progress_store.MemoryStore())
    outcomes = [True, True, False, True, True, True, False, False, True, True, True]
    for correct in outcomes:
        tracker.record_outcome(7, correct)
        assert tracker.get(7)["mistakes"] >= 0
    assert tracker.get(7)["mistakes"] == 0


def test_record_outcome_sets_last_seen_from_clock():
    clock = TickingClock(start=5000, step=250)
    tracker = _tracker(progress_store.MemoryStore(), clock=clock)
    stat = tracker.record_outcome(3, False)
    assert stat == {"mistakes": 1, "lastSeen": 5250}
    assert tracker.stats[3] == {"mistakes": 1, "lastSeen": 5250}


def test_unknown_item_is_defaulted():
    tracker = _tracker(progress_store.MemoryStore())
    assert tracker.get(99) == {"mistakes": 0, "lastSeen": 0}
    assert 99 not in tracker.stats
    tracker.record_outcome(99, True)
    assert tracker.stats[99]["mistakes"] == 0


def test_record_outcome_persists_full_mapping():
    store = progress_store.MemoryStore()
    tracker = _tracker(store, scope="tr_ru.reverse.A1")
    tracker.record_outcome(1, False)
    tracker.record_outcome(2, True)
    raw = json.loads(store.get("lingua.srs.tr_ru.reverse.A1"))
    assert set(raw) == {"1", "2"}
    assert raw["1"]["mistakes"] == 1
    assert raw["2"]["mistakes"] == 0


def test_state_survives_reload(tmp_path):
    path = str(tmp_path / "store.json")
    tracker = _tracker(progress_store.JsonFileStore(path))
    for item_id, correct in [(1, False), (2, False), (1, False), (3, True), (2, True)]:
        tracker.record_outcome(item_id, correct)
    expected = {k: dict(v) for k, v in tracker.stats.items()}

    restarted = _tracker(progress_store.JsonFileStore(path))
    assert restarted.stats == expected
    assert restarted.load() == expected


def test_scopes_are_independent():
    store = progress_store.MemoryStore()
    first = _tracker(store, scope="en_tr.forward.all")
    second = _tracker(store, scope="en_tr.reverse.all")
    first.record_outcome(1, False)
    assert second.reload() == {}
    assert _tracker(store, scope="en_tr.forward.all").get(1)["mistakes"] == 1


def test_clear_removes_persisted_state():
    store = progress_store.MemoryStore()
    tracker = _tracker(store)
    tracker.record_outcome(1, False)
    tracker.clear()
    assert tracker.stats == {}
    assert store.get(tracker.key) is None
    assert _tracker(store).stats == {}


@pytest.mark.parametrize("raw", [
    "not json",
    "[1, 2, 3]",
    '{"abc": {"mistakes": 1, "lastSeen": 0}}',
    '{"1": {"mistakes": -1, "lastSeen": 0}}',
    '{"1": {"mistakes": 1}}',
    '{"1": {"mistakes": "2", "lastSeen": 0}}',
    '{"1": {"mistakes": true, "lastSeen": 0}}',
    '{"1": [1, 0]}',
])
def test_corrupt_state_loads_empty(raw):
    store = progress_store.MemoryStore({"lingua.srs.s": raw})
    errors = ErrorLog()
    tracker = _tracker(store, scope="s", on_error=errors)
    assert tracker.stats == {}
    assert len(errors.entries) == 1


def test_valid_state_is_parsed_with_int_keys():
    raw = '{"4": {"mistakes": 2, "lastSeen": 1700000000000}}'
    tracker = _tracker(progress_store.MemoryStore({"lingua.srs.s": raw}), scope="s")
    assert tracker.stats == {4: {"mistakes": 2, "lastSeen": 1700000000000}}


def test_broken_storage_degrades_to_memory():
    errors = ErrorLog()
    tracker = _tracker(BrokenStore(), on_error=errors)
    assert tracker.stats == {}
    tracker.record_outcome(1, False)
    tracker.record_outcome(1, False)
    assert tracker.get(1)["mistakes"] == 2
    tracker.clear()
    assert tracker.stats == {}
    labels = [label for label, _ in errors.entries]
    assert labels[0].startswith("progress read failed")
    assert any(label.startswith("progress save failed") for label in labels)
    assert all(isinstance(exc, OSError) for _, exc in errors.entries)


def test_json_file_store_handles_missing_and_corrupt_files(tmp_path):
    path = tmp_path / "store.json"
    store = progress_store.JsonFileStore(str(path))
    assert store.get("x") is None
    path.write_text("{broken", encoding="utf-8")
    assert progress_store.JsonFileStore(str(path)).keys() == []
    store.set("a", "1")
    store.remove("a")
    store.remove("missing")
    assert progress_store.JsonFileStore(str(path)).get("a") is None


def test_scores_and_accuracy():
    store = progress_store.MemoryStore()
    assert progress_store.load_score(store, "en_tr") == {"total": 0, "correct": 0}
    assert progress_store.accuracy({"total": 0, "correct": 0}) == 0
    for correct in (True, True, False):
        progress_store.record_score(store, "en_tr", correct)
    score = progress_store.load_score(store, "en_tr")
    assert score == {"total": 3, "correct": 2}
    assert progress_store.accuracy(score) == 67


def test_bad_score_values_read_as_zero():
    store = progress_store.MemoryStore({"lingua.total.en_tr": "lots", "lingua.correct.en_tr": "-4"})
    assert progress_store.load_score(store, "en_tr") == {"total": 0, "correct": 0}


def test_reset_progress_clears_scores_and_scopes():
    store = progress_store.MemoryStore()
    progress_store.record_score(store, "en_tr", True)
    progress_store.record_score(store, "tr_ru", True)
    _tracker(store, scope="en_tr.forward.all").record_outcome(1, False)
    _tracker(store, scope="en_tr.reverse.A1").record_outcome(2, False)
    progress_store.reset_progress(store, "en_tr", ["en_tr.forward.all", "en_tr.reverse.A1"])
    assert store.keys() == ["lingua.correct.tr_ru", "lingua.total.tr_ru"]
