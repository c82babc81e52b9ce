from __future__ import annotations

import os
from typing import Iterable

import yaml

SEED_DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")
DATASET_EXT = ".yaml"
LEVELS = ("A1", "A2", "B1", "B2", "C1", "C2")
DIRECTIONS = ("forward", "reverse")
MODES = ("write", "mcq")

# (mode, direction) -> (prompt field, expected field)
QUESTION_FIELDS = {
    ("write", "forward"): ("dst", "src"),
    ("write", "reverse"): ("src", "dst"),
    ("mcq", "forward"): ("src", "dst"),
    ("mcq", "reverse"): ("dst", "src"),
}


def dataset_path(dataset_key: str, data_dir: str = SEED_DATA_DIR) -> str:
    return os.path.join(data_dir, f"{dataset_key}{DATASET_EXT}")


def available_datasets(data_dir: str = SEED_DATA_DIR) -> list[str]:
    if not os.path.isdir(data_dir):
        return []
    return sorted(
        name[:-len(DATASET_EXT)]
        for name in os.listdir(data_dir)
        if name.endswith(DATASET_EXT)
    )


def normalize_dataset(data: dict) -> dict:
    if not isinstance(data, dict):
        raise ValueError("invalid dataset format")
    meta = data.get("meta", {})
    if not isinstance(meta, dict):
        meta = {}
    entries = data.get("entries", [])
    if not isinstance(entries, list):
        raise ValueError("invalid entries list")

    seen = set()
    cleaned = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValueError("invalid entry")
        entry_id = entry.get("id")
        if not isinstance(entry_id, int) or isinstance(entry_id, bool):
            raise ValueError(f"invalid entry id {entry_id!r}")
        if entry_id in seen:
            raise ValueError(f"duplicate entry id {entry_id}")
        seen.add(entry_id)
        src = entry.get("src")
        dst = entry.get("dst")
        if not isinstance(src, str) or not isinstance(dst, str):
            raise ValueError(f"entry {entry_id} needs src and dst text")
        level = entry.get("level")
        if level is not None and level not in LEVELS:
            raise ValueError(f"entry {entry_id} has unknown level {level!r}")
        cleaned.append({
            "id": entry_id,
            "src": src,
            "dst": dst,
            "pos": entry.get("pos"),
            "level": level,
        })
    return {"meta": meta, "entries": cleaned}


def load_dataset(path: str) -> dict:
    with open(path, "r", encoding="utf-8", errors="replace") as handle:
        data = yaml.safe_load(handle) or {}
    return normalize_dataset(data)


def filter_by_level(entries: Iterable[dict], levels: Iterable[str] | None) -> list[dict]:
    wanted = set(levels or ())
    if not wanted:
        return list(entries)
    return [entry for entry in entries if entry.get("level") in wanted]


def build_items(entries: Iterable[dict], direction: str, mode: str = "write") -> list[dict]:
    if direction not in DIRECTIONS:
        raise ValueError(f"unknown direction {direction!r}")
    if mode not in MODES:
        raise ValueError(f"unknown mode {mode!r}")
    prompt_field, expected_field = QUESTION_FIELDS[(mode, direction)]
    items = []
    for entry in entries:
        items.append({
            "id": entry["id"],
            "prompt": entry[prompt_field],
            "expected": entry[expected_field],
            "pos": entry.get("pos"),
            "level": entry.get("level"),
        })
    return items


def scope_key(dataset_key: str, direction: str, levels: Iterable[str] | None = None) -> str:
    chosen = [level for level in LEVELS if level in set(levels or ())]
    level_part = "+".join(chosen) if chosen else "all"
    return f"{dataset_key}.{direction}.{level_part}"
