from __future__ import annotations

import json
from datetime import datetime

import yaml

from progress_store import (
    CORRECT_KEY_PREFIX,
    SRS_KEY_PREFIX,
    TOTAL_KEY_PREFIX,
    dump_tracker_state,
    load_score,
    parse_tracker_state,
    srs_key,
)

BACKUP_EXT = ".lingua"
ALLOWED_BACKUP_EXTS = (BACKUP_EXT, ".yaml", ".yml")


def ensure_backup_extension(path: str) -> str:
    lower = path.lower()
    if lower.endswith(ALLOWED_BACKUP_EXTS):
        return path
    return f"{path}{BACKUP_EXT}"


def build_backup_payload(store) -> dict:
    srs = {}
    datasets = set()
    for key in store.keys():
        if key.startswith(SRS_KEY_PREFIX):
            scope = key[len(SRS_KEY_PREFIX):]
            try:
                srs[scope] = parse_tracker_state(json.loads(store.get(key)))
            except (TypeError, ValueError):
                continue
        elif key.startswith(TOTAL_KEY_PREFIX):
            datasets.add(key[len(TOTAL_KEY_PREFIX):])
        elif key.startswith(CORRECT_KEY_PREFIX):
            datasets.add(key[len(CORRECT_KEY_PREFIX):])
    return {
        "meta": {"created": datetime.now().isoformat(timespec="seconds")},
        "srs": srs,
        "scores": {dataset: load_score(store, dataset) for dataset in sorted(datasets)},
    }


def normalize_backup_payload(data: dict) -> dict:
    if not isinstance(data, dict):
        raise ValueError("invalid backup format")

    srs = data.get("srs", {})
    if not isinstance(srs, dict):
        raise ValueError("invalid srs data")
    scopes = {}
    for scope, state in srs.items():
        scopes[str(scope)] = parse_tracker_state(state)

    scores = data.get("scores", {})
    if not isinstance(scores, dict):
        raise ValueError("invalid scores data")
    cleaned_scores = {}
    for dataset, score in scores.items():
        if not isinstance(score, dict):
            raise ValueError(f"invalid score for {dataset}")
        total = score.get("total", 0)
        correct = score.get("correct", 0)
        if not isinstance(total, int) or not isinstance(correct, int) or not 0 <= correct <= total:
            raise ValueError(f"invalid score for {dataset}")
        cleaned_scores[str(dataset)] = {"total": total, "correct": correct}

    meta = data.get("meta", {})
    return {
        "meta": meta if isinstance(meta, dict) else {},
        "srs": scopes,
        "scores": cleaned_scores,
    }


def scan_backup_payload(payload: dict) -> dict:
    srs = payload.get("srs", {}) if isinstance(payload, dict) else {}
    scores = payload.get("scores", {}) if isinstance(payload, dict) else {}
    item_count = 0
    datasets = set()
    for scope, state in srs.items() if isinstance(srs, dict) else []:
        if isinstance(state, dict):
            item_count += len(state)
        datasets.add(str(scope).split(".", 1)[0])
    for dataset in scores if isinstance(scores, dict) else []:
        datasets.add(str(dataset))
    return {
        "datasets": sorted(datasets),
        "scope_count": len(srs) if isinstance(srs, dict) else 0,
        "item_count": item_count,
    }


def restore_payload(store, payload: dict) -> None:
    for scope, state in payload.get("srs", {}).items():
        store.set(srs_key(scope), dump_tracker_state(state))
    for dataset, score in payload.get("scores", {}).items():
        store.set(f"{TOTAL_KEY_PREFIX}{dataset}", str(score["total"]))
        store.set(f"{CORRECT_KEY_PREFIX}{dataset}", str(score["correct"]))


def dump_payload_to_yaml_bytes(payload: dict) -> bytes:
    text = yaml.safe_dump(payload, sort_keys=False, allow_unicode=True)
    return text.encode("utf-8")


def load_payload_from_yaml_bytes(raw: bytes) -> dict:
    data = yaml.safe_load(raw.decode("utf-8", errors="replace")) or {}
    if not isinstance(data, dict):
        raise ValueError("invalid yaml structure")
    return data


def load_payload_from_path(path: str) -> dict:
    with open(path, "r", encoding="utf-8", errors="replace") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError("invalid yaml structure")
    return data


def persist_payload_to_file(path: str, payload: dict) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=False, allow_unicode=True)
