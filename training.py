from __future__ import annotations

import math
import random
import time
from typing import Callable, Sequence

FUZZY_TOLERANCE = 1
RECENCY_CAP = 4.0
MIN_ELAPSED_SECONDS = 1.0

HINT_ONE_OFF = "(almost there - 1 letter off)"
HINT_TWO_OFF = "(close - 2 letters off)"


class NoItemsError(ValueError):
    """Raised when the scheduler is asked to pick from an empty item list."""


def now_millis() -> int:
    return int(time.time() * 1000)


def normalize_answer(text: str) -> str:
    # whitespace-only input counts as nothing typed
    if not isinstance(text, str):
        return ""
    return text.strip().lower()


def levenshtein(a: str, b: str) -> int:
    a = normalize_answer(a)
    b = normalize_answer(b)
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            ins = cur[j - 1] + 1
            delete = prev[j] + 1
            sub = prev[j - 1] + (0 if ca == cb else 1)
            cur.append(min(ins, delete, sub))
        prev = cur
    return prev[-1]


def exact_match(user: str, expected: str) -> bool:
    return normalize_answer(user) == normalize_answer(expected)


def fuzzy_match(user: str, expected: str) -> bool:
    if exact_match(user, expected):
        return True
    return levenshtein(user, expected) <= FUZZY_TOLERANCE


def proximity_hint(user: str, expected: str) -> str:
    if not normalize_answer(user):
        return ""
    dist = levenshtein(user, expected)
    if dist == 1:
        return HINT_ONE_OFF
    if dist == 2:
        return HINT_TWO_OFF
    return ""


def analyze_answer(user: str, expected: str, *, fuzzy: bool = True) -> dict:
    """Verdict for one submitted answer.

    Free-text modes use ``fuzzy=True`` (one typo tolerated, hint shown),
    multiple-choice modes pass ``fuzzy=False`` and only accept exact matches.
    """
    exact = exact_match(user, expected)
    if fuzzy:
        correct = exact or fuzzy_match(user, expected)
        hint = "" if exact else proximity_hint(user, expected)
    else:
        correct = exact
        hint = ""
    return {
        "correct": correct,
        "exact": exact,
        "distance": levenshtein(user, expected),
        "hint": hint,
    }


def _stat_for(stats: dict, item_id: int) -> dict:
    stat = stats.get(item_id)
    if not isinstance(stat, dict):
        return {"mistakes": 0, "lastSeen": 0}
    return stat


def item_weight(stat: dict, now_ms: int, *, recency_cap: float = RECENCY_CAP,
                min_elapsed_seconds: float = MIN_ELAPSED_SECONDS) -> float:
    mistakes = max(0, int(stat.get("mistakes", 0) or 0))
    last_seen = int(stat.get("lastSeen", 0) or 0)
    elapsed = max(min_elapsed_seconds, (now_ms - last_seen) / 1000)
    recency = min(recency_cap, math.log2(elapsed + 1))
    return (1 + mistakes) * recency


def pick_next(
    items: Sequence[dict],
    stats: dict,
    *,
    rng: random.Random | None = None,
    clock: Callable[[], int] | None = None,
    recency_cap: float = RECENCY_CAP,
    min_elapsed_seconds: float = MIN_ELAPSED_SECONDS,
) -> dict:
    """Pick the next practice item, favouring missed and long-unseen items.

    Each item is weighted by ``(1 + mistakes) * min(cap, log2(elapsed + 1))``
    and one draw is taken over the cumulative weights in item order.
    """
    if not items:
        raise NoItemsError("no practice items to choose from")
    rng = rng or random
    now_ms = (clock or now_millis)()
    weights = [
        item_weight(_stat_for(stats, item["id"]), now_ms,
                    recency_cap=recency_cap, min_elapsed_seconds=min_elapsed_seconds)
        for item in items
    ]
    total = sum(weights)
    r = rng.random() * total
    for item, weight in zip(items, weights):
        r -= weight
        if r <= 0:
            return item
    # float rounding can leave a sliver of r after the last item
    return rng.choice(list(items))


def build_choices(item: dict, items: Sequence[dict], *, count: int = 4,
                  rng: random.Random | None = None) -> list[str]:
    rng = rng or random
    correct = item.get("expected", "")
    pool = []
    for other in items:
        answer = other.get("expected", "")
        if answer and answer != correct and answer not in pool:
            pool.append(answer)
    rng.shuffle(pool)
    options = [correct] + pool[:max(0, count - 1)]
    rng.shuffle(options)
    return options
