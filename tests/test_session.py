import random

import progress_store
import session
import training


class FixedClock:
    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


def _make_session(expected: str = "apple", mode: str = "write", items=None):
    store = progress_store.MemoryStore()
    tracker = progress_store.PerformanceTracker(store, "en_tr.forward.all", clock=FixedClock())
    items = items or [{"id": 1, "prompt": "elma", "expected": expected}]
    drill = session.DrillSession(store, "en_tr", items, tracker, mode=mode, rng=random.Random(4))
    drill.next_item()
    return drill, store, tracker


def test_one_letter_off_is_correct_and_shows_hint():
    drill, store, tracker = _make_session()
    verdict = drill.submit("appl")
    assert verdict["correct"] is True
    assert training.HINT_ONE_OFF in verdict["feedback"]
    assert verdict["feedback"].startswith(f"[color={session.OK_COLOR}]Correct: apple")
    assert tracker.get(1)["mistakes"] == 0


def test_two_letters_off_is_wrong_and_shows_hint():
    drill, store, tracker = _make_session()
    verdict = drill.submit("apl")
    assert verdict["correct"] is False
    assert training.HINT_TWO_OFF in verdict["feedback"]
    assert "Wrong. Answer: apple" in verdict["feedback"]


def test_exact_answer_has_no_hint():
    drill, _store, _tracker = _make_session()
    verdict = drill.submit(" Apple ")
    assert verdict["feedback"] == f"[color={session.OK_COLOR}]Correct: apple[/color]"


def test_first_answer_is_the_one_recorded():
    drill, store, tracker = _make_session()
    first = drill.submit("apl")
    second = drill.submit("apple")
    assert first["correct"] is False
    assert second is None
    assert tracker.get(1)["mistakes"] == 1
    assert progress_store.load_score(store, "en_tr") == {"total": 1, "correct": 0}


def test_next_item_allows_a_new_answer():
    drill, store, tracker = _make_session()
    drill.submit("apl")
    drill.next_item()
    drill.submit("apple")
    assert tracker.get(1)["mistakes"] == 0
    assert progress_store.load_score(store, "en_tr") == {"total": 2, "correct": 1}


def test_submit_before_any_item_is_ignored():
    store = progress_store.MemoryStore()
    tracker = progress_store.PerformanceTracker(store, "s")
    drill = session.DrillSession(store, "en_tr", [{"id": 1, "prompt": "p", "expected": "e"}], tracker)
    assert drill.submit("e") is None
    assert tracker.stats == {}


def test_choice_mode_needs_exact_answer():
    items = [
        {"id": 1, "prompt": "apple", "expected": "elma"},
        {"id": 2, "prompt": "bread", "expected": "ekmek"},
        {"id": 3, "prompt": "cat", "expected": "kedi"},
    ]
    drill, _store, tracker = _make_session(mode="mcq", items=items)
    assert drill.current_item["expected"] in drill.options
    assert len(drill.options) == 3
    near_miss = drill.current_item["expected"] + "x"
    verdict = drill.submit(near_miss)
    assert verdict["correct"] is False
    assert verdict["hint"] == ""
    assert tracker.get(drill.current_item["id"])["mistakes"] == 1


def test_score_save_failure_is_reported():
    class ScoreFailStore(progress_store.MemoryStore):
        def set(self, key, value):
            if key.startswith(progress_store.TOTAL_KEY_PREFIX):
                raise OSError("disk full")
            super().set(key, value)

    errors = []
    store = ScoreFailStore()
    tracker = progress_store.PerformanceTracker(store, "s", clock=FixedClock())
    drill = session.DrillSession(store, "en_tr", [{"id": 1, "prompt": "p", "expected": "e"}], tracker,
                                 on_error=lambda label, exc: errors.append(label))
    drill.next_item()
    verdict = drill.submit("e")
    assert verdict["correct"] is True
    assert errors == ["score save failed"]
    assert tracker.get(1)["lastSeen"] == FixedClock()()
