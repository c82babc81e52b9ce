from __future__ import annotations

import json
import os
from typing import Callable

from training import now_millis

SRS_KEY_PREFIX = "lingua.srs."
TOTAL_KEY_PREFIX = "lingua.total."
CORRECT_KEY_PREFIX = "lingua.correct."


class MemoryStore:
    def __init__(self, data: dict | None = None):
        self._data = dict(data or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class JsonFileStore:
    """String key-value store kept as one JSON object on disk.

    The file is read once and rewritten in full on every change. A missing or
    unreadable file starts out as an empty store.
    """

    def __init__(self, path: str):
        self.path = path
        self._data = self._read()

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8", errors="replace") as handle:
                data = json.load(handle)
        except (OSError, ValueError):
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write(self) -> None:
        folder = os.path.dirname(self.path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as handle:
            json.dump(self._data, handle, ensure_ascii=False, indent=2)

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._write()

    def remove(self, key: str) -> None:
        if key in self._data:
            self._data.pop(key)
            self._write()

    def keys(self) -> list[str]:
        return sorted(self._data)


def srs_key(scope: str) -> str:
    return f"{SRS_KEY_PREFIX}{scope}"


def _is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def parse_tracker_state(data) -> dict[int, dict]:
    if not isinstance(data, dict):
        raise ValueError("tracker state must be a mapping")
    state = {}
    for key, stat in data.items():
        try:
            item_id = int(key)
        except (TypeError, ValueError):
            raise ValueError(f"invalid item id {key!r}") from None
        if str(item_id) != str(key).strip():
            raise ValueError(f"invalid item id {key!r}")
        if not isinstance(stat, dict):
            raise ValueError(f"invalid stat for item {item_id}")
        mistakes = stat.get("mistakes")
        last_seen = stat.get("lastSeen")
        if not _is_count(mistakes) or not _is_count(last_seen):
            raise ValueError(f"invalid stat for item {item_id}")
        state[item_id] = {"mistakes": mistakes, "lastSeen": last_seen}
    return state


def dump_tracker_state(state: dict) -> str:
    payload = {
        str(item_id): {"mistakes": stat["mistakes"], "lastSeen": stat["lastSeen"]}
        for item_id, stat in sorted(state.items())
    }
    return json.dumps(payload, separators=(",", ":"))


class PerformanceTracker:
    """Mistake counts and last-seen times for the items of one scope.

    State is loaded on construction and written back in full after every
    recorded outcome. Storage failures never reach the caller: they are passed
    to ``on_error`` and the tracker keeps working from memory.
    """

    def __init__(self, store, scope: str, *, clock: Callable[[], int] | None = None,
                 on_error: Callable[[str, Exception | None], None] | None = None):
        self.store = store
        self.scope = scope
        self._clock = clock or now_millis
        self._on_error = on_error
        self._state: dict[int, dict] = self.load()

    @property
    def key(self) -> str:
        return srs_key(self.scope)

    @property
    def stats(self) -> dict[int, dict]:
        return self._state

    def _report(self, label: str, exc: Exception | None = None) -> None:
        if self._on_error is not None:
            self._on_error(f"{label} ({self.scope})", exc)

    def load(self) -> dict[int, dict]:
        try:
            raw = self.store.get(self.key)
        except Exception as exc:
            self._report("progress read failed", exc)
            return {}
        if raw is None:
            return {}
        try:
            return parse_tracker_state(json.loads(raw))
        except (TypeError, ValueError) as exc:
            self._report("progress data corrupt", exc)
            return {}

    def reload(self) -> dict[int, dict]:
        self._state = self.load()
        return self._state

    def get(self, item_id: int) -> dict:
        stat = self._state.get(item_id)
        if stat is None:
            return {"mistakes": 0, "lastSeen": 0}
        return dict(stat)

    def record_outcome(self, item_id: int, was_correct: bool) -> dict:
        current = self.get(item_id)
        mistakes = max(0, current["mistakes"] + (-1 if was_correct else 1))
        stat = {"mistakes": mistakes, "lastSeen": int(self._clock())}
        self._state[int(item_id)] = stat
        self._persist()
        return dict(stat)

    def _persist(self) -> None:
        try:
            self.store.set(self.key, dump_tracker_state(self._state))
        except Exception as exc:
            self._report("progress save failed", exc)

    def clear(self) -> None:
        self._state = {}
        try:
            self.store.remove(self.key)
        except Exception as exc:
            self._report("progress reset failed", exc)


def _read_count(store, key: str) -> int:
    raw = store.get(key)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return 0
    return max(0, value)


def load_score(store, dataset_key: str) -> dict:
    return {
        "total": _read_count(store, f"{TOTAL_KEY_PREFIX}{dataset_key}"),
        "correct": _read_count(store, f"{CORRECT_KEY_PREFIX}{dataset_key}"),
    }


def record_score(store, dataset_key: str, correct: bool) -> dict:
    score = load_score(store, dataset_key)
    score["total"] += 1
    if correct:
        score["correct"] += 1
    store.set(f"{TOTAL_KEY_PREFIX}{dataset_key}", str(score["total"]))
    store.set(f"{CORRECT_KEY_PREFIX}{dataset_key}", str(score["correct"]))
    return score


def accuracy(score: dict) -> int:
    total = score.get("total", 0)
    if not total:
        return 0
    return round(100 * score.get("correct", 0) / total)


def reset_progress(store, dataset_key: str, scopes) -> None:
    store.remove(f"{TOTAL_KEY_PREFIX}{dataset_key}")
    store.remove(f"{CORRECT_KEY_PREFIX}{dataset_key}")
    for scope in scopes:
        store.remove(srs_key(scope))
