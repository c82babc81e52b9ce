from __future__ import annotations

import random

import progress_store
import training

OK_COLOR = "00cc66"
FAIL_COLOR = "ff4444"
MCQ_OPTION_COUNT = 4


def feedback_markup(correct: bool, expected: str, hint: str = "") -> str:
    if correct:
        text = f"[color={OK_COLOR}]Correct: {expected}[/color]"
    else:
        text = f"[color={FAIL_COLOR}]Wrong. Answer: {expected}[/color]"
    if hint:
        text += f" {hint}"
    return text


class DrillSession:
    """One run of questions over a fixed item list.

    Every submitted answer is recorded exactly once: the first submission for
    the current item goes to the tracker and the score counters, later ones
    are ignored until the next item is drawn.
    """

    def __init__(self, store, dataset_key: str, items: list[dict], tracker, *,
                 mode: str = "write", rng: random.Random | None = None, on_error=None):
        self.store = store
        self.dataset_key = dataset_key
        self.items = items
        self.tracker = tracker
        self.mode = mode
        self.rng = rng or random
        self._on_error = on_error
        self.current_item = None
        self.options = []
        self.answered = False

    def next_item(self) -> dict:
        self.current_item = training.pick_next(self.items, self.tracker.stats, rng=self.rng)
        self.answered = False
        self.options = []
        if self.mode == "mcq":
            self.options = training.build_choices(self.current_item, self.items,
                                                  count=MCQ_OPTION_COUNT, rng=self.rng)
        return self.current_item

    def submit(self, text: str) -> dict | None:
        if self.current_item is None or self.answered:
            return None
        expected = self.current_item["expected"]
        verdict = training.analyze_answer(text, expected, fuzzy=(self.mode != "mcq"))
        self.answered = True
        self.tracker.record_outcome(self.current_item["id"], verdict["correct"])
        try:
            progress_store.record_score(self.store, self.dataset_key, verdict["correct"])
        except Exception as exc:
            if self._on_error is not None:
                self._on_error("score save failed", exc)
        verdict["feedback"] = feedback_markup(verdict["correct"], expected, verdict["hint"])
        return verdict
